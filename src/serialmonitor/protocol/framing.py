"""
Framing policies that cut an unstructured stream of received bytes into frames.

Transports deliver bytes in chunks that have nothing to do with the sender's messages. A framer collects
these chunks and decides when a run of bytes makes one frame. Chunks may be handed to a framer from any
thread via on_bytes_received(); they are queued, and only the thread that calls tick(), flush() or discard()
touches the accumulated bytes, so appending and flushing never interleave.
"""
import logging
import time
from abc import abstractmethod
from queue import Queue, Empty

logger = logging.getLogger(__name__)


class ReceiveAccumulator:
    """ The bytes received since the last frame, and when the most recent of them arrived. """

    def __init__(self):
        self.buffer = bytearray()
        self.last_arrival = None

    def append(self, data, arrival_time):
        self.buffer += data
        self.last_arrival = arrival_time

    def take(self, count=None) -> bytes:
        """ removes and returns the first count bytes, or all of them. """
        if count is None or count >= len(self.buffer):
            taken, self.buffer = bytes(self.buffer), bytearray()
        else:
            taken = bytes(self.buffer[:count])
            del self.buffer[:count]
        return taken

    def discard(self):
        self.buffer = bytearray()

    def __len__(self):
        return len(self.buffer)

    def __bool__(self):
        return len(self.buffer) > 0


class Framer:
    """
    Base class for framing policies.

    :param clock: the time source used to stamp arrivals and ticks when no time is given.
        Times are in seconds.
    """

    def __init__(self, clock=time.monotonic):
        self.clock = clock
        self.accumulator = ReceiveAccumulator()
        self._arrivals = Queue()

    def on_bytes_received(self, data, now=None):
        """ Queues received bytes. Safe to call from any thread.
        :param data: the bytes received
        :param now: the arrival time, defaults to the framer's clock.
        """
        if data:
            self._arrivals.put((bytes(data), self.clock() if now is None else now))

    def _drain(self):
        """ moves queued arrivals into the accumulator in the order they arrived. """
        while True:
            try:
                data, arrival_time = self._arrivals.get_nowait()
            except Empty:
                return
            self.accumulator.append(data, arrival_time)

    @property
    def pending(self):
        """ the number of bytes accumulated but not yet framed, including those still queued. """
        self._drain()
        return len(self.accumulator)

    def tick(self, now=None):
        """
        Called periodically. Returns a completed frame, or None when there is no frame yet.
        """
        self._drain()
        if not self.accumulator:
            return None
        return self._next_frame(self.clock() if now is None else now)

    @abstractmethod
    def _next_frame(self, now):
        """ Template method: returns the next completed frame from a non-empty accumulator, or None. """
        raise NotImplementedError

    def flush(self):
        """ Returns everything received so far as a frame regardless of the policy, or None if nothing is pending. """
        self._drain()
        return self.accumulator.take() if self.accumulator else None

    def discard(self):
        """ Drops everything received so far.
        :return: the number of bytes dropped
        """
        self._drain()
        count = len(self.accumulator)
        self.accumulator.discard()
        if count:
            logger.debug("discarded %d pending bytes", count)
        return count


class QuiescenceFramer(Framer):
    """
    A frame is complete once no bytes have arrived for idle_threshold seconds.

    Ticks are normally scheduled every poll_interval seconds, so a frame is released between
    idle_threshold and idle_threshold + poll_interval after its last byte.
    """

    def __init__(self, idle_threshold=0.1, poll_interval=0.1, clock=time.monotonic):
        super().__init__(clock)
        if idle_threshold < 0:
            raise ValueError("idle threshold must not be negative: %s" % idle_threshold)
        self.idle_threshold = idle_threshold
        self.poll_interval = poll_interval

    def quiet(self, now):
        return now - self.accumulator.last_arrival >= self.idle_threshold

    def _next_frame(self, now):
        return self.accumulator.take() if self.quiet(now) else None


class DelimiterFramer(Framer):
    """
    A frame ends with the delimiter, which is kept in the frame. Each tick releases at most one frame.

    When an idle threshold is given, an undelimited tail is released once no bytes have arrived for that long,
    otherwise it waits for its delimiter.
    """

    def __init__(self, delimiter=b'\n', idle_threshold=None, poll_interval=0.1, clock=time.monotonic):
        super().__init__(clock)
        if not delimiter:
            raise ValueError("delimiter must not be empty")
        self.delimiter = bytes(delimiter)
        self.idle_threshold = idle_threshold
        self.poll_interval = poll_interval

    def _next_frame(self, now):
        end = self.accumulator.buffer.find(self.delimiter)
        if end >= 0:
            return self.accumulator.take(end + len(self.delimiter))
        if self.idle_threshold is not None and now - self.accumulator.last_arrival >= self.idle_threshold:
            return self.accumulator.take()
        return None


def build_framer(settings, clock=time.monotonic) -> Framer:
    """ creates the framer selected by the settings. """
    if settings.framing_policy == 'quiescence':
        return QuiescenceFramer(settings.idle_threshold, settings.poll_interval, clock)
    if settings.framing_policy == 'delimiter':
        delimiter = settings.delimiter.encode(settings.encoding)
        return DelimiterFramer(delimiter, settings.delimiter_idle_threshold, settings.poll_interval, clock)
    raise ValueError("unknown framing policy '%s'" % settings.framing_policy)
