from __future__ import annotations

import json
import os
import re
import tempfile
from contextlib import contextmanager
from dataclasses import fields as dataclass_fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from loguru import logger

from domain.errors import ConflictError, DecryptionError, StorageError
from domain.models import Account
from domain.repositories import AccountRepository
from infrastructure.crypto.fernet_cipher import FernetCipher
from infrastructure.storage.keyed_locks import KeyedLocks

ACCOUNT_SUFFIX = ".enc"
BACKUP_DIR_NAME = "backups"

_ACCOUNT_FIELDS = {f.name for f in dataclass_fields(Account)}


class EncryptedFileAccountRepository(AccountRepository):
    """
    File-backed implementation of `AccountRepository`.

    Each account lives in its own encrypted file named after a
    filesystem-safe form of the username. The storage directory is created
    on construction if needed.
    """

    def __init__(self, storage_dir: Union[str, os.PathLike], cipher: FernetCipher) -> None:
        self._dir = Path(storage_dir)
        self._cipher = cipher
        self._locks = KeyedLocks()
        self._ensure_directory()

    @property
    def storage_dir(self) -> Path:
        return self._dir

    def _ensure_directory(self) -> None:
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create storage directory {self._dir}") from exc
        logger.info("Account storage initialised at {}", self._dir)

    @staticmethod
    def safe_filename(username: str) -> str:
        return re.sub(r"[^A-Za-z0-9_]", "_", username) + ACCOUNT_SUFFIX

    def _path_for(self, username: str) -> Path:
        return self._dir / self.safe_filename(username)

    def _write_atomic(self, path: Path, payload: str) -> None:
        # Write next to the target and rename over it, so a crash mid-write
        # never leaves a truncated record behind.
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=ACCOUNT_SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="ascii") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except OSError as exc:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise StorageError(f"Failed to write {path.name}") from exc

    def _read_file(self, path: Path) -> Account:
        try:
            ciphertext = path.read_text(encoding="ascii")
        except UnicodeDecodeError as exc:
            raise DecryptionError(f"{path.name} is not a valid encrypted record") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read {path.name}") from exc

        plaintext = self._cipher.decrypt(ciphertext)
        try:
            return Account.from_dict(json.loads(plaintext))
        except (ValueError, KeyError, TypeError) as exc:
            raise DecryptionError(f"{path.name} does not contain a valid account") from exc

    def save(self, account: Account) -> None:
        payload = self._cipher.encrypt(json.dumps(account.to_dict()))
        with self.locked(account.username):
            self._write_atomic(self._path_for(account.username), payload)
        logger.debug("Saved account {}", account.username)

    def create(self, account: Account) -> None:
        with self.locked(account.username):
            if self._path_for(account.username).exists():
                raise ConflictError("Username already exists", code="USERNAME_TAKEN")
            self.save(account)

    def load(self, username: str) -> Optional[Account]:
        path = self._path_for(username)
        if not path.exists():
            return None
        try:
            account = self._read_file(path)
        except DecryptionError:
            logger.error("Account file for {} could not be decrypted", username)
            raise
        # Different usernames can share a file on case-insensitive filesystems.
        if account.username != username:
            return None
        return account

    def update(self, username: str, fields: Dict[str, Any]) -> bool:
        unknown = set(fields) - _ACCOUNT_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {', '.join(sorted(unknown))}")

        with self.locked(username):
            account = self.load(username)
            if account is None:
                return False
            for name, value in fields.items():
                setattr(account, name, value)
            self.save(account)
            return True

    def delete(self, username: str) -> bool:
        with self.locked(username):
            path = self._path_for(username)
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise StorageError(f"Failed to delete {path.name}") from exc
        logger.info("Deleted account {}", username)
        return True

    def exists(self, username: str) -> bool:
        return self._path_for(username).exists()

    def list_all(self) -> List[Account]:
        accounts = []
        for path in sorted(self._dir.glob(f"*{ACCOUNT_SUFFIX}")):
            if path.name.startswith(".tmp-"):
                continue
            try:
                accounts.append(self._read_file(path))
            except (DecryptionError, StorageError) as exc:
                logger.warning("Skipping unreadable account file {}: {}", path.name, exc.message)
        return accounts

    @contextmanager
    def locked(self, username: str) -> Iterator[None]:
        # Keyed by file so usernames that share a file share a lock.
        with self._locks.hold(self.safe_filename(username)):
            yield

    def backup(self) -> Path:
        accounts = self.list_all()
        now = datetime.now(timezone.utc)
        document = {
            "timestamp": now.isoformat(),
            "user_count": len(accounts),
            "users": [a.to_dict() for a in accounts],
        }
        backup_dir = self._dir / BACKUP_DIR_NAME
        try:
            backup_dir.mkdir(exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create backup directory {backup_dir}") from exc

        path = backup_dir / f"backup_{now.strftime('%Y%m%dT%H%M%S%fZ')}{ACCOUNT_SUFFIX}"
        self._write_atomic(path, self._cipher.encrypt(json.dumps(document)))
        logger.info("Backed up {} account(s) to {}", len(accounts), path)
        return path

    def restore(self, backup_path: Path) -> int:
        try:
            ciphertext = Path(backup_path).read_text(encoding="ascii")
        except OSError as exc:
            raise StorageError(f"Failed to read backup {backup_path}") from exc

        try:
            document = json.loads(self._cipher.decrypt(ciphertext))
        except ValueError as exc:
            raise DecryptionError(f"Backup {backup_path} is not valid JSON") from exc

        restored = 0
        for data in document.get("users", []):
            try:
                account = Account.from_dict(data)
            except (ValueError, KeyError, TypeError):
                logger.warning("Skipping malformed account entry in backup {}", backup_path)
                continue
            self.save(account)
            restored += 1

        logger.info("Restored {} account(s) from {}", restored, backup_path)
        return restored
