from __future__ import annotations

from passlib.context import CryptContext

from domain.repositories import PasswordHasher


class BcryptPasswordHasher(PasswordHasher):
    """bcrypt hashing via passlib; `rounds` is the bcrypt cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        if not password or not password_hash:
            return False
        try:
            return self._context.verify(password, password_hash)
        except ValueError:
            # Malformed or unrecognised hash.
            return False
