from __future__ import annotations

from typing import List, Optional


class LedgerError(Exception):
    """
    Base class for every failure raised by the account/ledger core.

    Each error carries a stable machine-readable `code` so that the
    application layer can map it to a structured result without parsing
    the message, plus an optional list of field-level messages.
    """

    default_code = "LEDGER_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.errors = list(errors) if errors else []

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "errors": list(self.errors),
        }


class ValidationError(LedgerError):
    """Bad input shape or range; user-correctable."""

    default_code = "VALIDATION_ERROR"


class NotFoundError(LedgerError):
    """Unknown account, lot or token."""

    default_code = "NOT_FOUND"


class ConflictError(LedgerError):
    """Duplicate username, self-trade, insufficient cash and similar clashes."""

    default_code = "CONFLICT"


class LockedError(LedgerError):
    """Operation blocked because the account has not unlocked the game yet."""

    default_code = "GAME_LOCKED"


class AuthError(LedgerError):
    """Bad credentials or an invalid/expired reset token."""

    default_code = "AUTH_FAILED"


class DecryptionError(LedgerError):
    """
    A stored payload could not be decrypted (corruption or key mismatch).

    The message is meant for logs only; callers surface a generic
    "account unavailable" instead.
    """

    default_code = "DECRYPTION_FAILED"


class StorageError(LedgerError):
    """File-level I/O failure while reading or writing account data."""

    default_code = "STORAGE_ERROR"
