"""
The lifecycle of one monitored port: opening and closing it, sending, and framing what it receives.
"""
import logging
import threading
from enum import Enum

from serialmonitor.conduit.base import Transport, Conduit
from serialmonitor.protocol.framing import Framer, QuiescenceFramer
from serialmonitor.support.events import EventSource
from serialmonitor.support.mixins import ValueObject

logger = logging.getLogger(__name__)


class MonitorError(Exception):
    """ Base class for the errors reported to the user. None of them are fatal. """


class PortUnavailableError(MonitorError):
    """ The port could not be opened: it is missing, in use, or access was denied. """


class WriteFailureError(MonitorError):
    """ Data could not be sent. """


class NotConnectedError(WriteFailureError):
    """ Data was sent while no port was open. """


class CloseFailureError(MonitorError):
    """ The port could not be closed. Whether it is still open is unknown. """


class SessionStateError(MonitorError):
    """ The operation is not possible in the session's current state. """


class SessionState(Enum):
    CLOSED = 'closed'
    OPENING = 'opening'
    OPEN = 'open'
    CLOSING = 'closing'
    INDETERMINATE = 'indeterminate'     # closing failed, the port may or may not still be open


class ConnectionConfig(ValueObject):
    """ The port and baud rate of a session. Fixed for as long as the session is open. """

    def __init__(self, port, baud_rate):
        if not isinstance(baud_rate, int) or baud_rate <= 0:
            raise ValueError("baud rate must be a positive integer: %r" % (baud_rate,))
        self._port = port
        self._baud_rate = baud_rate

    @property
    def port(self):
        return self._port

    @property
    def baud_rate(self):
        return self._baud_rate

    def __hash__(self):
        return hash((self._port, self._baud_rate))

    def __repr__(self):
        return 'ConnectionConfig(%r, %d)' % (self._port, self._baud_rate)


class ConnectionStatus(ValueObject):
    """ What the user is told about the connection. """

    def __init__(self, state: SessionState, config: ConnectionConfig=None):
        self.state = state
        self.config = config

    @classmethod
    def disconnected(cls):
        return cls(SessionState.CLOSED)

    @property
    def connected(self):
        return self.state is SessionState.OPEN

    @property
    def port(self):
        return self.config.port if self.config else None

    @property
    def baud_rate(self):
        return self.config.baud_rate if self.config else None

    def __str__(self):
        if self.state is SessionState.OPEN:
            return "Connected to %s at %d baud" % (self.port, self.baud_rate)
        if self.state is SessionState.INDETERMINATE:
            return "Connection state unknown for %s" % self.port
        if self.state is SessionState.OPENING:
            return "Connecting to %s" % self.port
        if self.state is SessionState.CLOSING:
            return "Disconnecting from %s" % self.port
        return "No connection"

    def __repr__(self):
        return 'ConnectionStatus(%s, %r)' % (self.state.name, self.config)


class SessionEvent(ValueObject):
    def __init__(self, session):
        self.session = session


class SessionStateChangedEvent(SessionEvent):
    """ The session moved from one state to another. """
    def __init__(self, session, previous: SessionState, current: SessionState):
        super().__init__(session)
        self.previous = previous
        self.current = current


class FrameReceivedEvent(SessionEvent):
    """ A complete frame was received. """
    def __init__(self, session, frame: bytes):
        super().__init__(session)
        self.frame = frame


def default_framer():
    return QuiescenceFramer()


class TransportSession:
    """
    Owns the connection to one port over a transport.

    Bytes arriving from the transport are handed to a framer, which is created afresh each time the port is
    opened. tick() must be called periodically to release completed frames; each frame is fired on `frames`
    as a FrameReceivedEvent and returned. State changes are fired on `events`.

    Failures are raised as MonitorError subclasses and never retried.

    :param transport: the transport that opens the port
    :param framer_factory: creates the framer used while the port is open
    :param flush_on_close: when True, bytes still buffered at close are released as a final frame,
        otherwise they are discarded.
    """

    def __init__(self, transport: Transport, framer_factory=default_framer, flush_on_close=False):
        self.transport = transport
        self.framer_factory = framer_factory
        self.flush_on_close = flush_on_close
        self.events = EventSource()
        self.frames = EventSource()
        self._state = SessionState.CLOSED
        self._config = None
        self._handle = None             # type: Conduit
        self._framer = None             # type: Framer
        self._lock = threading.RLock()
        transport.received += self._bytes_received

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def framer(self) -> Framer:
        return self._framer

    @property
    def is_open(self):
        return self._state is SessionState.OPEN

    @property
    def status(self) -> ConnectionStatus:
        with self._lock:
            if self._state is SessionState.CLOSED:
                return ConnectionStatus.disconnected()
            return ConnectionStatus(self._state, self._config)

    def _set_state(self, state):
        previous, self._state = self._state, state
        if previous is not state:
            logger.debug("session %s -> %s", previous.name, state.name)
            self.events.fire(SessionStateChangedEvent(self, previous, state))

    def connect(self, config: ConnectionConfig):
        """
        Opens the port described by config.
        If the port is already open with the same configuration, this returns quietly.
        :raises PortUnavailableError: when the transport cannot open the port. The session stays closed.
        :raises SessionStateError: when the session is not closed
        """
        with self._lock:
            if self._state is SessionState.OPEN and config == self._config:
                return
            if self._state is not SessionState.CLOSED:
                raise SessionStateError("cannot connect to %s while the session is %s" %
                                        (config.port, self._state.value))
            self._config = config
            self._set_state(SessionState.OPENING)
            try:
                framer = self.framer_factory()
                handle = self.transport.open(config.port, config.baud_rate)
            except Exception as e:
                logger.warning("unable to open port %s: %s", config.port, e)
                self._config = None
                self._set_state(SessionState.CLOSED)
                raise PortUnavailableError("Connection error: %s" % e) from e
            self._framer = framer
            self._handle = handle
            self._set_state(SessionState.OPEN)
            logger.info("connected to %s at %d baud", config.port, config.baud_rate)

    def disconnect(self):
        """
        Closes the port. Buffered bytes are discarded, or released as a final frame when flush_on_close is set.
        Disconnecting a closed session does nothing.
        :return: the final frame, if one was released
        :raises CloseFailureError: when the transport fails to close the port. The session is then
            INDETERMINATE, and disconnect may be called again.
        """
        with self._lock:
            if self._state is SessionState.CLOSED:
                return None
            if self._state not in (SessionState.OPEN, SessionState.INDETERMINATE):
                raise SessionStateError("cannot disconnect while the session is %s" % self._state.value)
            self._set_state(SessionState.CLOSING)
            try:
                self.transport.close(self._handle)
            except Exception as e:
                logger.error("unable to close port %s: %s", self._config.port, e)
                self._set_state(SessionState.INDETERMINATE)
                raise CloseFailureError("Error closing connection: %s" % e) from e
            frame = self._release_pending()
            port = self._config.port
            self._handle = None
            self._framer = None
            self._config = None
            self._set_state(SessionState.CLOSED)
            logger.info("disconnected from %s", port)
        if frame:
            self.frames.fire(FrameReceivedEvent(self, frame))
        return frame

    def _release_pending(self):
        framer = self._framer
        if framer is None:
            return None
        if self.flush_on_close:
            return framer.flush()
        framer.discard()
        return None

    def send(self, data):
        """
        Writes data to the open port.
        :raises NotConnectedError: when the port is not open
        :raises WriteFailureError: when the transport fails to write. The session stays open.
        """
        with self._lock:
            if self._state is not SessionState.OPEN:
                raise NotConnectedError("Connection is not open!")
            handle = self._handle
        try:
            self.transport.write(handle, data)
        except Exception as e:
            logger.warning("unable to send to %s: %s", self._config.port if self._config else None, e)
            raise WriteFailureError("Send error: %s" % e) from e

    def _bytes_received(self, handle, data):
        """ called by the transport, on its own thread, as bytes arrive. """
        framer = self._framer
        if handle is self._handle and self._state is SessionState.OPEN and framer is not None:
            framer.on_bytes_received(data)

    def tick(self, now=None):
        """
        Releases a completed frame, if any. Does nothing unless the port is open.
        :param now: the current time on the framer's clock
        :return: the frame, or None
        """
        with self._lock:
            framer = self._framer
            if self._state is not SessionState.OPEN or framer is None:
                return None
            frame = framer.tick(now)
        if frame:
            logger.debug("received frame of %d bytes", len(frame))
            self.frames.fire(FrameReceivedEvent(self, frame))
        return frame

    def dispose(self):
        """ stops listening to the transport. """
        self.transport.received -= self._bytes_received
