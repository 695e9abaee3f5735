from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_ENCRYPTION_KEY = "your-encryption-key-change-in-production"


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}.") from None


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from the environment (and `.env`)."""

    storage_dir: str = "users"
    encryption_key: str = DEFAULT_ENCRYPTION_KEY
    encryption_salt: str = "rally-reader"
    reset_token_ttl_minutes: int = 15
    token_cleanup_interval_seconds: int = 300
    bcrypt_rounds: int = 12
    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        dotenv: bool = True,
    ) -> Settings:
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        return cls(
            storage_dir=env.get("STORAGE_DIR", cls.storage_dir),
            encryption_key=env.get("ENCRYPTION_KEY", cls.encryption_key),
            encryption_salt=env.get("ENCRYPTION_SALT", cls.encryption_salt),
            reset_token_ttl_minutes=_int_env(
                env, "RESET_TOKEN_TTL_MINUTES", cls.reset_token_ttl_minutes
            ),
            token_cleanup_interval_seconds=_int_env(
                env, "TOKEN_CLEANUP_INTERVAL_SECONDS", cls.token_cleanup_interval_seconds
            ),
            bcrypt_rounds=_int_env(env, "BCRYPT_ROUNDS", cls.bcrypt_rounds),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
        )

    @property
    def uses_default_key(self) -> bool:
        return self.encryption_key == DEFAULT_ENCRYPTION_KEY
