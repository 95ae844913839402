"""
Background threads that repeatedly run a function: the transport reader and the framer ticker.
"""
import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class AsyncLoop:
    """ Continually runs a given function on a background thread.
        Exceptions are logged and posted to the exception handler, and the loop carries on.
        The background thread is registered as a daemon.
    """

    def __init__(self, fn: Callable=None, args=(), name=None, log=logger):
        """
        :param fn the function to run
        :param args arguments to pass to fn
        :param name the name given to the background thread
        """
        self.fn = fn
        self.args = args
        self.name = name
        self.stop_event = threading.Event()
        self.background_thread = None
        self.logger = log
        self._lock = threading.Lock()

    def start(self):
        """
        Starts the background thread. Calling start on a running loop does nothing.
        """
        with self._lock:
            if self.background_thread is None:
                self.stop_event.clear()
                t = threading.Thread(target=self._run, name=self.name, daemon=True)
                self.background_thread = t
                t.start()

    def exception_handler(self, e):
        self.logger.exception(e)

    def _run(self):
        """ The processing loop for the background thread.
             Invokes the callable for as long as the stop signal is not received.
        """
        self._do(self.startup)
        while self.running():
            self._do(self.loop)
        self._do(self.shutdown)
        self.logger.debug("background thread %s exiting", self.name)

    def _do(self, callme):
        """ runs a function and captures any exceptions """
        try:
            callme()
        except Exception as e:
            time.sleep(0)
            self.exception_handler(e)

    def startup(self):
        """ template method called when the thread starts"""
        pass

    def loop(self):
        self.fn(*self.args)

    def shutdown(self):
        """ template method called when the thread exits """
        pass

    def running(self):
        return not self.stop_event.is_set()

    @property
    def alive(self):
        thread = self.background_thread
        return thread is not None and thread.is_alive()

    def stop(self):
        """ signals the thread to stop and waits for it to finish, unless called from the thread itself. """
        self.stop_event.set()
        with self._lock:
            thread = self.background_thread
            self.background_thread = None
        if thread and thread is not threading.current_thread():
            thread.join()


class PeriodicLoop(AsyncLoop):
    """
    Runs a function at a fixed interval on a background thread.
    The wait between calls is interrupted as soon as the loop is stopped.
    """

    def __init__(self, fn: Callable, interval, args=(), name=None, log=logger):
        """
        :param interval the number of seconds between calls
        """
        super().__init__(fn, args, name, log)
        self.interval = interval

    def loop(self):
        if not self.stop_event.wait(self.interval):
            self.fn(*self.args)
