import unittest
from datetime import datetime
from unittest.mock import Mock, patch

import timeout_decorator
from hamcrest import assert_that, is_, none, calling, raises, empty, instance_of, contains_string

from serialmonitor.config.config import MonitorSettings
from serialmonitor.display import Direction, LogFormatter, LogEntryAddedEvent, LogClearedEvent
from serialmonitor.monitor import Monitor, build_monitor
from serialmonitor.protocol.framing import QuiescenceFramer, DelimiterFramer
from serialmonitor.session import TransportSession, NotConnectedError, WriteFailureError, PortUnavailableError, \
    SessionState, SessionStateChangedEvent, CloseFailureError
from serialmonitor.conduit.discovery import PortDirectory
from serialmonitor.session_test import FakeTransport

noon = datetime(2024, 5, 1, 12, 30, 5, 250000)


class MonitorTest(unittest.TestCase):

    def setUp(self):
        self.transport = FakeTransport(ports=("COM1", "COM3"))
        session = TransportSession(self.transport, lambda: QuiescenceFramer(0.1, 0.1, clock=Mock(return_value=0)))
        self.sut = Monitor(session, PortDirectory(self.transport), LogFormatter(clock=Mock(return_value=noon)))

    def connect(self):
        self.sut.connect("COM3", 9600)

    def test_initial_state(self):
        assert_that(self.sut.entries(), is_(empty()))
        assert_that(str(self.sut.status), is_("No connection"))
        assert_that(self.sut.baud_rates, is_((9600, 19200, 38400, 57600, 115200)))

    def test_refresh_ports(self):
        assert_that(self.sut.refresh_ports("COM3"), is_((("COM1", "COM3"), "COM3")))
        assert_that(self.sut.refresh_ports("COM9"), is_((("COM1", "COM3"), "COM1")))

    def test_connect_uses_default_baud_rate(self):
        self.sut.connect("COM3")
        assert_that(self.sut.status.baud_rate, is_(9600))

    def test_connect_with_unlisted_baud_rate(self):
        self.sut.connect("COM3", 250000)
        assert_that(self.transport.opened[0][:2], is_(("COM3", 250000)))
        assert_that(str(self.sut.status), is_("Connected to COM3 at 250000 baud"))

    def test_connect_with_invalid_baud_rate(self):
        assert_that(calling(self.sut.connect).with_args("COM3", 0), raises(ValueError))
        assert_that(self.transport.opened, is_([]))

    def test_connect_failure(self):
        self.transport.open_error = OSError("port not found")
        assert_that(calling(self.sut.connect).with_args("COM3", 9600), raises(PortUnavailableError))
        assert_that(self.sut.status.connected, is_(False))
        assert_that(self.sut.entries(), is_(empty()))

    def test_send_text_logs_transmit_entry(self):
        self.connect()
        entry = self.sut.send_text("ping")
        assert_that(self.transport.written[0][1], is_(b"ping\n"))
        assert_that(entry.direction, is_(Direction.SENT))
        assert_that(entry.line, is_('[12:30:05] TRANSMIT DATA: "ping", Total: 4 byte'))
        assert_that(self.sut.entries(), is_((entry,)))

    def test_send_text_strips_whitespace(self):
        self.connect()
        entry = self.sut.send_text("  ping \r\n")
        assert_that(self.transport.written[0][1], is_(b"ping\n"))
        assert_that(entry.text, is_("ping"))

    def test_send_text_uses_configured_terminator(self):
        self.sut.line_terminator = '\r\n'
        self.connect()
        self.sut.send_text("ping")
        assert_that(self.transport.written[0][1], is_(b"ping\r\n"))

    def test_blank_text_is_ignored(self):
        self.connect()
        assert_that(self.sut.send_text("   "), is_(none()))
        assert_that(self.sut.send_text(""), is_(none()))
        assert_that(self.transport.written, is_([]))
        assert_that(self.sut.entries(), is_(empty()))

    def test_send_text_when_closed(self):
        assert_that(calling(self.sut.send_text).with_args("ping"), raises(NotConnectedError, "not open"))
        assert_that(calling(self.sut.send_text).with_args(""), raises(NotConnectedError))
        assert_that(self.sut.entries(), is_(empty()))
        assert_that(self.sut.status.state, is_(SessionState.CLOSED))

    def test_send_failure_is_not_logged(self):
        self.connect()
        self.transport.write_error = OSError("write timeout")
        assert_that(calling(self.sut.send_text).with_args("ping"), raises(WriteFailureError))
        assert_that(self.sut.entries(), is_(empty()))
        assert_that(self.sut.status.connected, is_(True))

    def test_send_bytes(self):
        self.connect()
        entry = self.sut.send(b"AT\r")
        assert_that(self.transport.written[0][1], is_(b"AT\r"))
        assert_that(entry.line, is_('[12:30:05] TRANSMIT DATA: "AT[0x0D]", Total: 3 byte'))

    def test_received_chunks_form_one_entry(self):
        self.connect()
        framer = self.sut.session.framer
        framer.on_bytes_received(b"ab", 0)
        framer.on_bytes_received(b"cd\r\n", 0.02)
        assert_that(self.sut.tick(0.06), is_(none()))
        assert_that(self.sut.entries(), is_(empty()))
        assert_that(self.sut.tick(0.13), is_(b"abcd\r\n"))
        assert_that(self.sut.log.lines(), is_(['[12:30:05] RECEIVE DATA: "abcd[0x0D][0x0A]", Total: 6 byte']))

    def test_frames_separated_by_silence_are_separate_entries(self):
        self.connect()
        framer = self.sut.session.framer
        framer.on_bytes_received(b"one", 0)
        self.sut.tick(0.2)
        framer.on_bytes_received(b"two", 0.3)
        self.sut.tick(0.5)
        assert_that([e.text for e in self.sut.entries()], is_(["one", "two"]))

    def test_clear_empties_log_only(self):
        self.connect()
        self.sut.send_text("ping")
        self.sut.clear()
        assert_that(self.sut.entries(), is_(empty()))
        assert_that(self.sut.status.connected, is_(True))
        assert_that(self.sut.send_text("again").text, is_("again"))
        assert_that(len(self.sut.entries()), is_(1))

    def test_clear_when_empty(self):
        self.sut.clear()
        assert_that(self.sut.entries(), is_(empty()))

    def test_flushed_frame_is_logged_on_disconnect(self):
        self.sut.session.flush_on_close = True
        self.connect()
        self.transport.deliver(b"tail")
        self.sut.disconnect()
        assert_that(self.sut.log.lines(), is_(['[12:30:05] RECEIVE DATA: "tail", Total: 4 byte']))

    def test_notifications_are_published_on_demand(self):
        listener = Mock()
        self.sut.notifications += listener
        self.connect()
        entry = self.sut.send_text("ping")
        self.sut.clear()
        listener.assert_not_called()
        assert_that(self.sut.publish(), is_(4))
        assert_that([c[0][0] for c in listener.call_args_list], is_([
            SessionStateChangedEvent(self.sut.session, SessionState.CLOSED, SessionState.OPENING),
            SessionStateChangedEvent(self.sut.session, SessionState.OPENING, SessionState.OPEN),
            LogEntryAddedEvent(self.sut.log, entry),
            LogClearedEvent(self.sut.log)]))

    def test_stop_disconnects(self):
        self.connect()
        self.sut.stop()
        assert_that(self.sut.status.connected, is_(False))

    @timeout_decorator.timeout(5)
    def test_start_ticks_in_background(self):
        self.sut.poll_interval = 0.01
        self.sut.tick = Mock(wraps=self.sut.tick)
        self.connect()
        self.sut.start()
        try:
            while self.sut.tick.call_count < 2:
                pass
        finally:
            self.sut.stop()
        assert_that(self.sut.ticker.alive, is_(False))

    def test_dispose_detaches_listeners(self):
        self.sut.dispose()
        assert_that(self.sut.session.frames.handlers(), is_(()))
        assert_that(self.transport.received.handlers(), is_(()))

    def test_dispose_detaches_when_close_fails(self):
        self.connect()
        self.transport.close_error = OSError("device busy")
        assert_that(calling(self.sut.dispose), raises(CloseFailureError))
        assert_that(self.sut.session.frames.handlers(), is_(()))
        assert_that(self.transport.received.handlers(), is_(()))


class BuildMonitorTest(unittest.TestCase):

    def test_built_from_settings(self):
        settings = MonitorSettings()
        settings.baud_rates = (9600, 115200)
        settings.default_baud_rate = 115200
        settings.line_terminator = '\r\n'
        settings.poll_interval = 0.05
        transport = FakeTransport()
        sut = build_monitor(settings, transport)
        assert_that(sut.baud_rates, is_((9600, 115200)))
        assert_that(sut.select_baud_rate(), is_(115200))
        assert_that(sut.line_terminator, is_('\r\n'))
        assert_that(sut.poll_interval, is_(0.05))
        sut.connect("COM3")
        assert_that(sut.session.framer, is_(instance_of(QuiescenceFramer)))

    def test_delimiter_policy(self):
        settings = MonitorSettings()
        settings.framing_policy = 'delimiter'
        sut = build_monitor(settings, FakeTransport())
        sut.connect("COM3", 9600)
        assert_that(sut.session.framer, is_(instance_of(DelimiterFramer)))

    @patch('serialmonitor.monitor.load_settings')
    def test_loads_settings_by_default(self, load_settings):
        load_settings.return_value = MonitorSettings()
        sut = build_monitor(transport=FakeTransport())
        load_settings.assert_called_once_with()
        assert_that(str(sut.status), contains_string("No connection"))

    def test_default_monitor_uses_packaged_configuration(self):
        sut = build_monitor()
        try:
            assert_that(sut.baud_rates, is_((9600, 19200, 38400, 57600, 115200)))
            assert_that(sut.select_baud_rate(), is_(9600))
            assert_that(sut.poll_interval, is_(0.1))
            assert_that(sut.line_terminator, is_('\n'))
            assert_that(sut.session.framer_factory(), is_(instance_of(QuiescenceFramer)))
            assert_that(str(sut.status), is_("No connection"))
        finally:
            sut.dispose()
