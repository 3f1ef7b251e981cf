"""
Runs work on daemon background threads.
"""
import logging
import threading

logger = logging.getLogger(__name__)


class AsyncLoop:
    """
    Calls loop() repeatedly on a daemon thread until stop() is called.
    Subclasses override loop(), or pass the function to call. Anything raised by loop() goes to
    exception_handler() and the loop carries on.
    """

    def __init__(self, fn=None, args=(), name=None, log=logger):
        """
        :param fn: called by the default loop() with args
        :param name: the thread name, shown in logs
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
        Starts the background thread. Has no effect if the thread was already started.
        """
        with self._lock:
            if self.background_thread is not None:
                return
            t = threading.Thread(target=self._run, name=self.name, daemon=True)
            self.background_thread = t
        t.start()

    def exception_handler(self, e):
        self.logger.exception(e)

    def _run(self):
        self._do(self.startup)
        while self.running():
            self._do(self.loop)
        self._do(self.shutdown)
        self.logger.debug("background thread %s exiting" % threading.current_thread().name)

    def _do(self, step):
        try:
            step()
        except Exception as e:
            self.exception_handler(e)

    def startup(self):
        """ called once on the background thread before the first loop() """

    def loop(self):
        self.fn(*self.args)

    def shutdown(self):
        """ called once on the background thread after the last loop() """

    def running(self):
        return not self.stop_event.is_set()

    def stop(self, join=True, timeout=None):
        """
        Signals the background thread to stop.
        :param join: when True, waits for the thread to exit. The wait is skipped when called
            from the background thread itself.
        :param timeout: the maximum time to wait for the thread to exit.
        """
        self.stop_event.set()
        with self._lock:
            thread = self.background_thread
            self.background_thread = None
        if join and thread and thread is not threading.current_thread():
            thread.join(timeout)
