"""
Administrative / bulk operations over the account store.

These are not reachable by regular users; they back the `ledger_main`
command line and operational tooling.
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Mapping

from loguru import logger

from domain.models import Account
from domain.repositories import AccountRepository

SEARCHABLE_FIELDS = ("username", "name", "email", "favorite_genre", "bio")


def user_stats(account_repo: AccountRepository) -> Dict[str, Any]:
    """Aggregate counts and reading totals across every readable account."""

    accounts = account_repo.list_all()
    unlocked = [a for a in accounts if not a.game_locked]
    with_stats = [a for a in unlocked if a.reading_stats is not None]

    genres = Counter(a.favorite_genre for a in accounts if a.favorite_genre)

    average_pages = 0.0
    if with_stats:
        average_pages = round(
            sum(a.reading_stats.avg_pages_per_month for a in with_stats) / len(with_stats), 2
        )

    return {
        "total_users": len(accounts),
        "active_users": len(unlocked),
        "locked_users": len(accounts) - len(unlocked),
        "users_by_genre": dict(genres),
        "average_pages_per_month": average_pages,
        "total_pages_read": sum(a.reading_stats.pages_read for a in with_stats),
    }


def search_users(
    criteria: Mapping[str, str],
    account_repo: AccountRepository,
) -> List[Dict[str, Any]]:
    """
    Accounts where ANY of the given fields contains the given text
    (case-insensitive). Unknown field names raise ValueError.
    """

    unknown = set(criteria) - set(SEARCHABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot search on: {', '.join(sorted(unknown))}")

    needles = {k: v.lower() for k, v in criteria.items() if v}

    def matches(account: Account) -> bool:
        return any(
            needle in (getattr(account, name) or "").lower()
            for name, needle in needles.items()
        )

    return [a.to_public_dict() for a in account_repo.list_all() if matches(a)]


def delete_account(username: str, account_repo: AccountRepository) -> bool:
    deleted = account_repo.delete(username)
    if not deleted:
        logger.warning("Delete requested for unknown account {}", username)
    return deleted


def backup_accounts(account_repo: AccountRepository) -> Path:
    return account_repo.backup()


def restore_accounts(backup_path: Path, account_repo: AccountRepository) -> int:
    return account_repo.restore(Path(backup_path))
