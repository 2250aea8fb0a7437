"""
Minimal synchronous event sources.

Handlers are called in the thread that fires the event, in the order they
were added.
"""

import threading


class EventSource:
    """A list of handlers fired together."""

    def __init__(self):
        self._handlers = []
        self._lock = threading.Lock()

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def __len__(self):
        return len(self._handlers)

    def add(self, handler):
        with self._lock:
            self._handlers.append(handler)
        return self

    def remove(self, handler):
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)
        return self

    def clear(self):
        with self._lock:
            self._handlers.clear()

    def handlers(self):
        with self._lock:
            return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        # snapshot so handlers may unsubscribe themselves while firing
        for handler in self.handlers():
            handler(*args, **kwargs)
