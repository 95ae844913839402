"""
Turns sent and received payloads into log entries for display.

Each entry is rendered as one line:

    [12:30:05] RECEIVE DATA: "abcd[0x0D][0x0A]", Total: 6 byte

Carriage returns and line feeds are shown as markers so a frame always fits on one line, while the
byte count always reports the raw payload length.
"""
import logging
import threading
from collections import namedtuple
from datetime import datetime
from enum import Enum

from serialmonitor.support.events import EventSource
from serialmonitor.support.mixins import ValueObject

logger = logging.getLogger(__name__)

default_encoding = 'latin-1'

control_char_markers = {
    '\r': '[0x0D]',
    '\n': '[0x0A]',
}

_control_char_table = str.maketrans(control_char_markers)


def tobytes(arg, encoding=default_encoding):
    """
    Converts a string to bytes
    >>> tobytes("abc")
    b'abc'
    >>> tobytes(b"abc")
    b'abc'
    """
    if isinstance(arg, str):
        arg = arg.encode(encoding)
    return bytes(arg)


def render_control_chars(data, encoding=default_encoding):
    """
    Replaces carriage return and line feed with visible markers. Everything else passes through.
    >>> render_control_chars("ok\\r\\n")
    'ok[0x0D][0x0A]'
    >>> render_control_chars(b"")
    ''
    """
    if not isinstance(data, str):
        data = bytes(data).decode(encoding, errors='replace')
    return data.translate(_control_char_table)


class Direction(Enum):
    """ Which way a payload travelled. The value is the label used in the log, the tag is the display colour. """
    SENT = ('TRANSMIT DATA', 'lime')
    RECEIVED = ('RECEIVE DATA', 'cyan')

    def __init__(self, label, tag):
        self.label = label
        self.tag = tag


class LogEntry(namedtuple('LogEntry', 'direction timestamp text byte_count')):
    """ One immutable line of the monitor log. """
    __slots__ = ()

    timestamp_format = '%H:%M:%S'

    @property
    def label(self):
        return self.direction.label

    @property
    def tag(self):
        return self.direction.tag

    @property
    def time_text(self):
        return self.timestamp.strftime(self.timestamp_format)

    @property
    def line(self):
        return '[%s] %s: "%s", Total: %d byte' % (self.time_text, self.label, self.text, self.byte_count)

    def __str__(self):
        return self.line


class LogFormatter:
    """
    Builds log entries from raw payloads.
    :param encoding: used to decode received bytes for display and to encode text payloads for counting.
    :param clock: a callable returning the current wall-clock time as a datetime
    """

    def __init__(self, encoding=default_encoding, clock=datetime.now):
        self.encoding = encoding
        self.clock = clock

    def format(self, direction: Direction, payload, now: datetime=None) -> LogEntry:
        raw = tobytes(payload, self.encoding)
        now = self.clock() if now is None else now
        return LogEntry(direction, now.replace(microsecond=0), render_control_chars(raw, self.encoding), len(raw))

    def sent(self, payload, now=None):
        return self.format(Direction.SENT, payload, now)

    def received(self, payload, now=None):
        return self.format(Direction.RECEIVED, payload, now)


class LogEvent(ValueObject):
    def __init__(self, log):
        self.log = log


class LogEntryAddedEvent(LogEvent):
    """ An entry was appended to the log. """
    def __init__(self, log, entry):
        super().__init__(log)
        self.entry = entry


class LogClearedEvent(LogEvent):
    """ The log was emptied. """


class MessageLog:
    """
    The ordered, append-only sequence of entries shown to the user. Entries are never changed or
    removed individually; clear() empties the whole log.

    Appends may come from several threads. Listeners on `events` are called on the appending thread
    with LogEntryAddedEvent and LogClearedEvent.
    """

    def __init__(self):
        self._entries = []
        self._lock = threading.Lock()
        self.events = EventSource()

    def append(self, entry: LogEntry):
        with self._lock:
            self._entries.append(entry)
        logger.debug("%s", entry)
        self.events.fire(LogEntryAddedEvent(self, entry))
        return entry

    def entries(self):
        with self._lock:
            return tuple(self._entries)

    def lines(self):
        return [entry.line for entry in self.entries()]

    def clear(self):
        with self._lock:
            self._entries = []
        self.events.fire(LogClearedEvent(self))

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __iter__(self):
        return iter(self.entries())
