from __future__ import annotations

import threading
from typing import Dict, List, Optional

from domain.models import ResetToken
from domain.repositories import ResetTokenStore


class InMemoryResetTokenStore(ResetTokenStore):
    """
    Process-local implementation of `ResetTokenStore`.

    Tokens do not survive a restart. Access is guarded by a lock because
    the periodic cleanup runs on its own thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: Dict[str, ResetToken] = {}

    def put(self, token: ResetToken) -> None:
        with self._lock:
            self._tokens[token.token] = token

    def get(self, token: str) -> Optional[ResetToken]:
        with self._lock:
            return self._tokens.get(token)

    def delete(self, token: str) -> None:
        with self._lock:
            self._tokens.pop(token, None)

    def all(self) -> List[ResetToken]:
        with self._lock:
            return list(self._tokens.values())

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()
