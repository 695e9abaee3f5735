from __future__ import annotations

from pathlib import Path
from typing import Any, ContextManager, Dict, List, Optional, Protocol

from .models import Account, ResetToken


class AccountRepository(Protocol):
    """
    Persistence abstraction for reader accounts, keyed by username.

    Implementations are responsible for:
    - Mapping between the stored representation and the `Account` model.
    - Hiding any file / encryption details from the application layer.
    """

    def save(self, account: Account) -> None:
        """Persist `account`, overwriting any previous record (last write wins)."""

        ...

    def create(self, account: Account) -> None:
        """
        Persist a brand-new account.

        Raises `ConflictError` if a record for the username already exists.
        """

        ...

    def load(self, username: str) -> Optional[Account]:
        """Return the account for `username`, or None if it is not registered."""

        ...

    def update(self, username: str, fields: Dict[str, Any]) -> bool:
        """
        Load, shallow-merge `fields` into the account and save it.

        Returns False if the account does not exist.
        """

        ...

    def delete(self, username: str) -> bool:
        ...

    def exists(self, username: str) -> bool:
        ...

    def list_all(self) -> List[Account]:
        """
        Return every readable account.

        Unreadable records are skipped (and logged), never aborting the listing.
        """

        ...

    def locked(self, username: str) -> ContextManager[None]:
        """
        Hold the per-username lock for a load -> mutate -> save cycle.

        Only serializes callers within one process.
        """

        ...

    def backup(self) -> Path:
        """Snapshot every readable account into a single backup file."""

        ...

    def restore(self, backup_path: Path) -> int:
        """Write every account from a backup file; return how many were restored."""

        ...


class ResetTokenStore(Protocol):
    """
    Storage for outstanding password reset tokens.

    The default implementation is an in-process map; a deployment can swap
    in an external, time-indexed store without touching the service.
    """

    def put(self, token: ResetToken) -> None:
        ...

    def get(self, token: str) -> Optional[ResetToken]:
        ...

    def delete(self, token: str) -> None:
        ...

    def all(self) -> List[ResetToken]:
        ...

    def clear(self) -> None:
        ...


class PasswordHasher(Protocol):
    """One-way password hashing."""

    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        ...


class KeyProvider(Protocol):
    """Supplies the symmetric key used to encrypt account records."""

    def get_key(self) -> bytes:
        """Return a urlsafe base64-encoded 32-byte key."""

        ...
