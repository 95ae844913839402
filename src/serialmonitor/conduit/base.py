from abc import abstractmethod
from io import IOBase

from serialmonitor.support.events import EventSource


class Conduit:
    """
    A conduit allows two-way communication. It provides an file-like input endpoint and a file-like output endpoint.
    """

    @property
    @abstractmethod
    def target(self):
        raise NotImplementedError

    @property
    @abstractmethod
    def input(self) -> IOBase:
        """ fetches the I/O stream that provides input.
            Callers can use the usual readXXX() methods. """
        raise NotImplementedError

    @property
    @abstractmethod
    def output(self) -> IOBase:
        """ fetches the I/O stream that provides output.
            Callers can use the usual writeXXX() methods. """
        raise NotImplementedError

    @property
    @abstractmethod
    def open(self) -> bool:
        """ determines if this conduit is open. When open, the streams provided by
            input and output can be read from/written to."""
        raise NotImplementedError

    @abstractmethod
    def close(self):
        """
        Closes both the input and output streams.
        """
        raise NotImplementedError


class Transport:
    """
    The platform boundary used by a session: enumerates ports, opens them and moves bytes.

    Open ports are represented by a handle, which is a Conduit. Bytes arriving on an open handle
    are delivered asynchronously by firing the `received` event source with (handle, data),
    typically from a thread owned by the transport.
    """

    def __init__(self):
        self.received = EventSource()

    @abstractmethod
    def list_ports(self):
        """
        :return: an ordered sequence of the identifiers of the ports currently available.
        """
        raise NotImplementedError

    @abstractmethod
    def open(self, port, baud_rate) -> Conduit:
        """
        Opens the given port. Raises an exception if the port cannot be opened.
        :return: the handle for the open port
        """
        raise NotImplementedError

    @abstractmethod
    def close(self, handle: Conduit):
        """ Closes an open port. Raises an exception if the port could not be closed. """
        raise NotImplementedError

    @abstractmethod
    def write(self, handle: Conduit, data: bytes):
        """ Writes all of data to the open port, raising an exception on failure. """
        raise NotImplementedError
