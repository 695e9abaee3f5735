import argparse
import json
import sys
from datetime import timedelta
from typing import List, Optional

from loguru import logger

from application.admin import (
    backup_accounts,
    delete_account,
    restore_accounts,
    search_users,
    user_stats,
)
from application.password_reset import PasswordResetService
from application.token_cleanup import TokenCleanupScheduler
from domain.repositories import AccountRepository, PasswordHasher
from infrastructure.config import Settings
from infrastructure.crypto.fernet_cipher import FernetCipher, StaticKeyProvider
from infrastructure.security.password_hasher import BcryptPasswordHasher
from infrastructure.storage.account_repository_file import EncryptedFileAccountRepository
from infrastructure.tokens.reset_token_store_memory import InMemoryResetTokenStore


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


def create_account_repository(settings: Settings) -> EncryptedFileAccountRepository:
    if settings.uses_default_key:
        logger.warning("ENCRYPTION_KEY is not set; using the insecure default key.")
    cipher = FernetCipher(StaticKeyProvider(settings.encryption_key, settings.encryption_salt))
    return EncryptedFileAccountRepository(settings.storage_dir, cipher)


def create_password_hasher(settings: Settings) -> BcryptPasswordHasher:
    return BcryptPasswordHasher(rounds=settings.bcrypt_rounds)


def create_reset_service(
    settings: Settings,
    account_repo: AccountRepository,
    password_hasher: PasswordHasher,
) -> PasswordResetService:
    return PasswordResetService(
        account_repo,
        password_hasher,
        InMemoryResetTokenStore(),
        token_ttl=timedelta(minutes=settings.reset_token_ttl_minutes),
    )


def create_token_cleanup(
    settings: Settings,
    reset_service: PasswordResetService,
) -> TokenCleanupScheduler:
    return TokenCleanupScheduler(reset_service, settings.token_cleanup_interval_seconds)


def _parse_criteria(pairs: List[str]) -> dict:
    criteria = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise SystemExit(f"Search criteria must look like FIELD=VALUE, got {pair!r}")
        criteria[name] = value
    return criteria


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger_main",
        description="Administrative commands for the encrypted account store.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("stats", help="show account totals and reading statistics")
    sub.add_parser("list", help="list every readable account")

    search = sub.add_parser("search", help="find accounts by field substring")
    search.add_argument("criteria", nargs="+", metavar="FIELD=VALUE")

    delete = sub.add_parser("delete", help="delete one account")
    delete.add_argument("username")

    sub.add_parser("backup", help="write an encrypted snapshot of all accounts")

    restore = sub.add_parser("restore", help="restore accounts from a snapshot")
    restore.add_argument("path")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    account_repo = create_account_repository(settings)

    if args.command == "stats":
        print(json.dumps(user_stats(account_repo), indent=2))
    elif args.command == "list":
        for account in account_repo.list_all():
            state = "locked" if account.game_locked else "unlocked"
            print(f"{account.username}\t{account.email}\t{state}\tcash={account.cash}")
    elif args.command == "search":
        matches = search_users(_parse_criteria(args.criteria), account_repo)
        print(json.dumps(matches, indent=2, default=str))
    elif args.command == "delete":
        if not delete_account(args.username, account_repo):
            print(f"No account named {args.username}")
            return 1
        print(f"Deleted {args.username}")
    elif args.command == "backup":
        print(backup_accounts(account_repo))
    elif args.command == "restore":
        print(f"Restored {restore_accounts(args.path, account_repo)} account(s)")

    return 0


if __name__ == "__main__":
    sys.exit(main())
