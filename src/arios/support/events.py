import logging
import threading

logger = logging.getLogger(__name__)


class EventSource(object):
    """
    A list of handlers that are called with the arguments passed to fire().

    Handlers may be added and removed from any thread, including from within a handler.
    Each handler is invoked on the thread that fires the event. An exception raised by one handler
    is logged and does not prevent the remaining handlers from being called, so that a faulty
    listener cannot break the component that fires the event.
    """

    def __init__(self, log=logger):
        self._handlers = []
        self._lock = threading.Lock()
        self.logger = log

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        with self._lock:
            self._handlers.append(handler)
        return self

    def remove(self, handler):
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)
        return self

    def handlers(self):
        with self._lock:
            return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        for handler in self.handlers():
            try:
                handler(*args, **kwargs)
            except Exception as e:
                self.logger.exception("event handler %s failed: %s" % (handler, e))

    def fire_all(self, events):
        for e in events:
            self.fire(e)
