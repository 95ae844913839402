"""
The monitor that a user interface drives: choose a port and baud rate, connect, send text,
and watch the log of what was sent and received.

The monitor never touches widgets. A user interface reads the log and status, and either listens on
`log.events` and `session.events` directly (handlers then run on whichever thread appended or changed state),
or listens on `notifications` and calls publish() from its own thread.
"""
import logging

from serialmonitor.conduit.discovery import PortDirectory
from serialmonitor.conduit.serial_conduit import SerialTransport
from serialmonitor.config.config import MonitorSettings, load_settings
from serialmonitor.display import LogFormatter, MessageLog, tobytes
from serialmonitor.protocol.framing import build_framer
from serialmonitor.protocol.loop import PeriodicLoop
from serialmonitor.session import TransportSession, ConnectionConfig, NotConnectedError, FrameReceivedEvent
from serialmonitor.support.events import QueuedEventSource

logger = logging.getLogger(__name__)


class Monitor:
    """
    Couples a session to the log.

    :param session: the session with the port
    :param directory: offers the ports and baud rates
    :param formatter: turns payloads into log entries
    :param poll_interval: seconds between ticks when started
    :param line_terminator: appended to text sent with send_text()
    """

    def __init__(self, session: TransportSession, directory: PortDirectory, formatter: LogFormatter=None,
                 poll_interval=0.1, line_terminator='\n'):
        self.session = session
        self.directory = directory
        self.formatter = formatter or LogFormatter()
        self.poll_interval = poll_interval
        self.line_terminator = line_terminator
        self.log = MessageLog()
        self.notifications = QueuedEventSource()
        self.ticker = None
        session.frames += self._frame_received
        session.events += self.notifications.fire
        self.log.events += self.notifications.fire

    @property
    def status(self):
        return self.session.status

    @property
    def baud_rates(self):
        return self.directory.baud_rates

    def select_baud_rate(self, current=None):
        return self.directory.select_baud_rate(current)

    def refresh_ports(self, selection=None):
        """ :return: a tuple of (ports, selection). See PortDirectory.refresh """
        return self.directory.refresh(selection)

    def connect(self, port, baud_rate=None):
        """ Opens the port at the given baud rate, or the default rate when none is given.
        Rates other than those offered are used as they are.
        :raises PortUnavailableError: when the port cannot be opened
        :raises ValueError: when the baud rate is not a positive integer
        """
        if baud_rate is None:
            baud_rate = self.select_baud_rate()
        self.session.connect(ConnectionConfig(port, baud_rate))

    def disconnect(self):
        return self.session.disconnect()

    def send_text(self, text):
        """
        Sends a line of text. Leading and trailing whitespace is removed, and blank text is not sent.
        The log shows the text without the line terminator.
        :return: the log entry, or None when nothing was sent
        :raises NotConnectedError: when the port is not open, even for blank text
        :raises WriteFailureError: when the text could not be written. Nothing is logged.
        """
        if not self.session.is_open:
            raise NotConnectedError("Connection is not open!")
        text = text.strip()
        if not text:
            return None
        self.session.send(tobytes(text + self.line_terminator, self.formatter.encoding))
        return self.log.append(self.formatter.sent(text))

    def send(self, data):
        """ Sends bytes as they are, and logs them. """
        data = tobytes(data, self.formatter.encoding)
        self.session.send(data)
        return self.log.append(self.formatter.sent(data))

    def _frame_received(self, event: FrameReceivedEvent):
        self.log.append(self.formatter.received(event.frame))

    def tick(self, now=None):
        """ Logs the next completed frame, if there is one.
        :return: the frame
        """
        return self.session.tick(now)

    def publish(self):
        """ delivers queued notifications on the calling thread. """
        return self.notifications.publish()

    def entries(self):
        return self.log.entries()

    def clear(self):
        """ Empties the log. The connection is unaffected. """
        self.log.clear()

    def start(self):
        """ ticks on a background thread every poll_interval seconds. """
        if self.ticker is None:
            self.ticker = PeriodicLoop(self.tick, self.poll_interval, name='serialmonitor-ticker')
        self.ticker.start()

    def stop(self):
        """ stops ticking and closes the port. """
        if self.ticker is not None:
            self.ticker.stop()
        self.disconnect()

    def dispose(self):
        """ stops, then detaches from the session even if closing the port failed. """
        try:
            self.stop()
        finally:
            self._detach()

    def _detach(self):
        self.session.frames -= self._frame_received
        self.session.events -= self.notifications.fire
        self.log.events -= self.notifications.fire
        self.session.dispose()


def build_monitor(settings: MonitorSettings=None, transport=None) -> Monitor:
    """
    Assembles a monitor from the settings, by default those loaded from the configuration files.
    :param transport: defaults to the serial transport
    """
    settings = settings or load_settings()
    transport = transport or SerialTransport(settings.read_timeout, settings.write_timeout)

    def framer_factory():
        return build_framer(settings)

    session = TransportSession(transport, framer_factory, settings.flush_on_close)
    directory = PortDirectory(transport, settings.baud_rates, settings.default_baud_rate)
    return Monitor(session, directory, LogFormatter(settings.encoding),
                   poll_interval=settings.poll_interval, line_terminator=settings.line_terminator)
