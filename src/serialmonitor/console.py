"""
A console front end for the monitor.

    serialmonitor --list
    serialmonitor --port COM3 --baud 115200

Each line typed is sent to the port; sent and received data are printed as they are logged.
The monitor stops at end of input or on Ctrl-C.
"""
import argparse
import logging
import sys
import threading
from queue import Queue, Empty

from serialmonitor.config.config import load_settings
from serialmonitor.display import LogEntryAddedEvent, LogClearedEvent
from serialmonitor.monitor import Monitor, build_monitor
from serialmonitor.session import MonitorError

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='serialmonitor', description="Sends lines to a serial port and "
                                                                      "shows what the port sends back.")
    parser.add_argument('--port', help="the port to open, defaults to the first available port. "
                                       "pyserial URLs such as loop:// are accepted")
    parser.add_argument('--baud', type=int, help="the baud rate, defaults to the configured default")
    parser.add_argument('--list', action='store_true', help="list the available ports and exit")
    parser.add_argument('--config', metavar='DIR', help="a directory holding a serialmonitor.cfg override")
    parser.add_argument('--verbose', '-v', action='store_true', help="log debug output")
    return parser.parse_args(argv)


def configure_logging(verbose=False, stream=sys.stderr):
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


class ConsoleView:
    """ prints notifications from the monitor. """

    def __init__(self, output):
        self.output = output

    def __call__(self, event):
        if isinstance(event, LogEntryAddedEvent):
            self.show(event.entry.line)
        elif isinstance(event, LogClearedEvent):
            self.show("-- log cleared --")

    def show(self, text):
        print(text, file=self.output, flush=True)


def read_lines(source, lines: Queue):
    """ queues each line of the source, then None at the end. """
    try:
        for line in source:
            lines.put(line)
    finally:
        lines.put(None)


def run(monitor: Monitor, port, baud_rate=None, source=None, output=None):
    """
    Connects and relays lines from source until it ends.
    :param source: the lines to send, defaults to stdin
    :param output: where log lines are printed, defaults to stdout
    :return: the exit status
    """
    source = sys.stdin if source is None else source
    view = ConsoleView(sys.stdout if output is None else output)
    monitor.notifications += view
    try:
        monitor.connect(port, baud_rate)
    except (MonitorError, ValueError) as e:
        monitor.publish()
        view.show(str(e))
        return 1
    view.show(str(monitor.status))
    lines = Queue()
    reader = threading.Thread(target=read_lines, args=(source, lines), name='serialmonitor-input', daemon=True)
    monitor.start()
    reader.start()
    try:
        while True:
            monitor.publish()
            try:
                line = lines.get(timeout=monitor.poll_interval)
            except Empty:
                continue
            if line is None:
                break
            try:
                monitor.send_text(line)
            except MonitorError as e:
                view.show(str(e))
    except KeyboardInterrupt:
        pass
    finally:
        try:
            monitor.stop()
        except MonitorError as e:
            view.show(str(e))
        monitor.publish()
        view.show(str(monitor.status))
    return 0


def main(argv=None):
    args = parse_args(argv)
    configure_logging(args.verbose)
    monitor = build_monitor(load_settings(args.config))
    ports, port = monitor.refresh_ports(args.port)
    if args.list:
        for p in ports:
            print(p)
        return 0
    port = args.port or port
    if port is None:
        print("No ports available", file=sys.stderr)
        return 1
    try:
        return run(monitor, port, args.baud)
    finally:
        try:
            monitor.dispose()
        except MonitorError as e:
            print(e, file=sys.stderr)


if __name__ == '__main__':
    sys.exit(main())
