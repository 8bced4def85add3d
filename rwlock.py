"""Reader/writer lock guarding the reminder store.

Any number of readers may hold the lock together; a writer holds it alone.
Waiting writers block new readers so a steady stream of scans cannot starve
an insert.
"""

import threading
from contextlib import contextmanager


class ReadWriteLock:
    """Writer-preferring shared/exclusive lock built on a Condition."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def acquire_read(self):
        """Block while a writer holds or waits for the lock, then join the readers."""
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        """Leave the readers; the last one out wakes waiting writers."""
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        """Block until no reader or writer holds the lock, then take it exclusively."""
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            except BaseException:
                self._waiting_writers -= 1
                self._cond.notify_all()
                raise
            self._waiting_writers -= 1
            self._writer = True

    def release_write(self):
        """Release exclusive ownership and wake every waiter."""
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write() called without a matching acquire_write()")
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self):
        """Context manager holding the lock shared."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self):
        """Context manager holding the lock exclusively."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
