import threading
from contextlib import contextmanager


class ReadWriteLock:
    """Many readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read_locked(self):
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self):
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class TaskCounter:
    """An integer that is changed and read in one step."""

    def __init__(self, value: int = 0):
        self._lock = threading.Lock()
        self._value = value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def add(self, count: int = 1) -> int:
        with self._lock:
            self._value += count
            return self._value

    def done(self) -> int:
        """Count one task as finished and return how many remain."""
        with self._lock:
            if self._value <= 0:
                raise AssertionError("more tasks finished than were started")
            self._value -= 1
            return self._value
