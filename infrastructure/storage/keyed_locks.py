from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        # Threads holding or waiting on `lock`.
        self.holders = 0


class KeyedLocks:
    """
    Re-entrant locks, one per key, that exist only while someone uses them.

    Used to serialize load -> mutate -> save cycles on the same username
    while leaving different usernames fully independent. An entry is
    dropped as soon as its last holder releases it, so looking up many
    distinct keys does not grow the map.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
