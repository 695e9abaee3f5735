from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from loguru import logger

from application.validation import validate_password, validate_password_change
from domain.errors import LedgerError
from domain.models import ResetToken
from domain.repositories import AccountRepository, PasswordHasher, ResetTokenStore

DEFAULT_TOKEN_TTL = timedelta(minutes=15)

# Same message whether or not the address is known, so it reveals nothing
# beyond the failed lookup itself.
UNKNOWN_EMAIL_MESSAGE = "No account found for that email address"
ACCOUNT_UNAVAILABLE_MESSAGE = "Account unavailable, please try again later"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ResetRequestResult:
    success: bool
    message: str
    token: Optional[str] = None
    expiry: Optional[datetime] = None


@dataclass
class TokenVerification:
    valid: bool
    message: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None


@dataclass
class PasswordUpdateResult:
    success: bool
    message: str
    errors: List[str] = field(default_factory=list)


@dataclass
class TokenInfo:
    """Admin view of an outstanding token."""

    token: str
    username: str
    email: str
    expiry: datetime
    expired: bool


class PasswordResetService:
    """
    Issues, verifies and consumes time-limited password reset tokens, and
    handles password changes for signed-in users.

    Tokens live in the injected `ResetTokenStore`; expiry is checked lazily
    on every verification and swept in bulk by `cleanup_expired_tokens`,
    which the hosting process calls on a timer.
    """

    def __init__(
        self,
        account_repo: AccountRepository,
        password_hasher: PasswordHasher,
        token_store: ResetTokenStore,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._account_repo = account_repo
        self._hasher = password_hasher
        self._tokens = token_store
        self._ttl = token_ttl
        self._clock = clock

    @staticmethod
    def generate_token() -> str:
        return secrets.token_hex(32)

    def create_reset_request(self, email: str) -> ResetRequestResult:
        normalized = (email or "").strip().lower()
        if not normalized:
            return ResetRequestResult(False, UNKNOWN_EMAIL_MESSAGE)

        # Linear scan; acceptable at this scale.
        account = next(
            (a for a in self._account_repo.list_all() if a.email.lower() == normalized),
            None,
        )
        if account is None:
            return ResetRequestResult(False, UNKNOWN_EMAIL_MESSAGE)

        record = ResetToken(
            token=self.generate_token(),
            username=account.username,
            email=account.email,
            expiry=self._clock() + self._ttl,
        )
        self._tokens.put(record)
        logger.info(
            "Issued password reset token for {} (expires {})",
            account.username,
            record.expiry.isoformat(),
        )
        return ResetRequestResult(
            True,
            "Password reset instructions sent to your email",
            token=record.token,
            expiry=record.expiry,
        )

    def verify_reset_token(self, token: str) -> TokenVerification:
        record = self._tokens.get(token) if token else None
        if record is None:
            return TokenVerification(False, "Invalid reset token")

        if record.is_expired(self._clock()):
            self._tokens.delete(token)
            return TokenVerification(False, "Reset token has expired")

        return TokenVerification(True, username=record.username, email=record.email)

    def reset_password(self, token: str, new_password: str) -> PasswordUpdateResult:
        verification = self.verify_reset_token(token)
        if not verification.valid:
            return PasswordUpdateResult(False, verification.message)

        strength = validate_password(new_password)
        if not strength.valid:
            return PasswordUpdateResult(False, strength.message, [strength.message])

        try:
            updated = self._store_password(verification.username, new_password)
        except LedgerError as exc:
            logger.error("Password reset for {} failed: {}", verification.username, exc.message)
            return PasswordUpdateResult(False, ACCOUNT_UNAVAILABLE_MESSAGE)

        if not updated:
            # The account vanished after the token was issued.
            self._tokens.delete(token)
            return PasswordUpdateResult(False, "Invalid reset token")

        self._tokens.delete(token)
        logger.info("Password reset completed for {}", verification.username)
        return PasswordUpdateResult(True, "Password has been reset successfully")

    def change_password(
        self,
        username: str,
        current_password: str,
        new_password: str,
        confirm_password: Optional[str] = None,
    ) -> PasswordUpdateResult:
        try:
            account = self._account_repo.load(username)
        except LedgerError as exc:
            logger.error("Password change for {} failed: {}", username, exc.message)
            return PasswordUpdateResult(False, ACCOUNT_UNAVAILABLE_MESSAGE)

        if account is None:
            return PasswordUpdateResult(False, "User not found")

        if not self._hasher.verify(current_password or "", account.password_hash):
            return PasswordUpdateResult(False, "Current password is incorrect")

        check = validate_password_change(current_password, new_password, confirm_password)
        if not check.valid:
            return PasswordUpdateResult(False, check.errors[0], check.errors)

        try:
            self._store_password(username, new_password)
        except LedgerError as exc:
            logger.error("Password change for {} failed: {}", username, exc.message)
            return PasswordUpdateResult(False, ACCOUNT_UNAVAILABLE_MESSAGE)

        logger.info("Password changed for {}", username)
        return PasswordUpdateResult(True, "Password changed successfully")

    def _store_password(self, username: str, password: str) -> bool:
        password_hash = self._hasher.hash(password)
        return self._account_repo.update(
            username,
            {"password_hash": password_hash, "last_password_change": self._clock()},
        )

    def cleanup_expired_tokens(self) -> int:
        now = self._clock()
        removed = 0
        for record in self._tokens.all():
            if record.is_expired(now):
                self._tokens.delete(record.token)
                removed += 1
        if removed:
            logger.info("Swept {} expired reset token(s)", removed)
        return removed

    def get_reset_token_info(self, token: str) -> Optional[TokenInfo]:
        record = self._tokens.get(token)
        if record is None:
            return None
        return self._to_info(record)

    def list_reset_tokens(self) -> List[TokenInfo]:
        return [self._to_info(r) for r in self._tokens.all()]

    def _to_info(self, record: ResetToken) -> TokenInfo:
        return TokenInfo(
            token=record.token,
            username=record.username,
            email=record.email,
            expiry=record.expiry,
            expired=record.is_expired(self._clock()),
        )
