"""
Per-key locking.

The order store and the subscription registry serialize read-modify-write
cycles per record instead of holding one lock around all processing.
A key's lock only exists while some thread holds or waits for it.
"""

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """A map of key -> threading.Lock, reference-counted by holders and waiters."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for `key` for the duration of the block."""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._entries)
