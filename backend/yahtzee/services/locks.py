import threading
import weakref
from contextlib import contextmanager


class LockRegistry:
    """Keyed re-entrant locks, one per match id or player id.

    Matches never share a lock, so they progress independently. Locks are
    re-entrant so an operation that already holds a key (e.g. ``forfeit``
    finishing the match) can call into another locked operation.

    Entries are weak: a key's lock lives only while some thread holds or
    waits on it, so finished matches and idle players leave nothing behind.

    Lock order when both are needed: match first, then player.
    """

    def __init__(self, name):
        self.name = name
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def _lock_for(self, key):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key):
        lock = self._lock_for(key)
        with lock:
            yield

    def __len__(self):
        with self._guard:
            return len(self._locks)
