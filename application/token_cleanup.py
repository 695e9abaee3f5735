from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from application.password_reset import PasswordResetService

DEFAULT_CLEANUP_INTERVAL = 300.0


class TokenCleanupScheduler:
    """
    Runs `PasswordResetService.cleanup_expired_tokens` on a fixed interval.

    The sweep happens on a daemon thread so request handling never waits
    on it. The hosting process owns the lifecycle: call `start()` on
    startup and `stop()` on shutdown.
    """

    def __init__(
        self,
        reset_service: PasswordResetService,
        interval_seconds: float = DEFAULT_CLEANUP_INTERVAL,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._service = reset_service
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="reset-token-cleanup", daemon=True
        )
        self._thread.start()
        logger.info("Reset token cleanup every {}s", self._interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._service.cleanup_expired_tokens()
            except Exception:
                # Keep the timer alive; the next tick retries.
                logger.exception("Reset token cleanup failed")
