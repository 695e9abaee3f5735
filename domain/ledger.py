"""
Price derivation and the cash/holdings state machine.

All functions here operate on in-memory `Account` objects and never touch
storage; the application layer wraps them in a load -> mutate -> save cycle.
Rule violations raise the typed errors from `domain.errors` before any
field is modified.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from .errors import ConflictError, LockedError, NotFoundError, ValidationError
from .models import Account, HabitEntry, ReadingStats, ShareLot

MIN_PRICE = 1
UNLOCK_DAYS_REQUIRED = 90
DAYS_PER_MONTH = 30


@dataclass
class SaleReceipt:
    """Outcome of selling one lot."""

    lot: ShareLot
    sale_price: int
    revenue: int
    realized_pnl: int


@dataclass
class LotView:
    """A held lot valued at its target's current price."""

    lot: ShareLot
    current_price: Optional[int]
    market_value: Optional[int]
    unrealized_pnl: Optional[int]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def current_price(account: Account) -> int:
    """
    Price of one share of `account`: pages of the last habit entry logged.

    Clamped to MIN_PRICE so that a zero-page day (or no history) can never
    produce a free share that could later be sold for a profit.
    """

    if not account.habit_history:
        return MIN_PRICE
    return max(account.habit_history[-1].pages, MIN_PRICE)


def ensure_unlocked(account: Account) -> None:
    if account.game_locked:
        raise LockedError(
            "Import at least 90 days of reading history to unlock trading.",
        )


def _validate_positive_amount(amount: object) -> None:
    if not _is_int(amount) or amount <= 0:
        raise ValidationError("Amount must be a positive whole number.")


def buy_shares(
    buyer: Account,
    target: Account,
    amount: int,
    now: Optional[datetime] = None,
) -> ShareLot:
    """
    Buy `amount` shares of `target` at its current price.

    - The buyer's cash is decreased by price * amount.
    - A new lot is appended; existing lots are never merged.
    """

    _validate_positive_amount(amount)
    ensure_unlocked(buyer)

    if buyer.id == target.id or buyer.username == target.username:
        raise ConflictError("You cannot buy your own stock.", code="SELF_TRADE")

    if target.game_locked:
        raise ConflictError(
            f"{target.username} has not unlocked trading yet.",
            code="TARGET_LOCKED",
        )

    price = current_price(target)
    cost = price * amount
    if buyer.cash < cost:
        raise ConflictError(
            f"Insufficient cash. Cost: {cost}, Available: {buyer.cash}",
            code="INSUFFICIENT_CASH",
        )

    lot = ShareLot(
        id=uuid.uuid4().hex,
        target_account_id=target.id,
        target_username=target.username,
        purchase_date=now or _utcnow(),
        purchase_price=price,
        amount=amount,
    )
    buyer.cash -= cost
    buyer.shares.append(lot)
    return lot


def find_lot(account: Account, lot_id: str) -> ShareLot:
    for lot in account.shares:
        if lot.id == lot_id:
            return lot
    raise NotFoundError(f"Share lot '{lot_id}' not found.", code="LOT_NOT_FOUND")


def lot_id_at(account: Account, index: object) -> str:
    """Translate a positional lot index into the lot's stable id."""

    if not _is_int(index) or index < 0 or index >= len(account.shares):
        raise NotFoundError(
            f"Invalid share index. You hold {len(account.shares)} lot(s).",
            code="LOT_NOT_FOUND",
        )
    return account.shares[index].id


def sell_lot(seller: Account, lot_id: str, target: Optional[Account]) -> SaleReceipt:
    """
    Sell one whole lot at the target's *current* price.

    `target` is the account the lot was bought from, as currently stored;
    None (or an account re-registered under the same username) means the
    lot can no longer be priced and the sale is rejected.
    """

    ensure_unlocked(seller)
    lot = find_lot(seller, lot_id)

    if target is None or target.id != lot.target_account_id:
        raise NotFoundError(
            f"{lot.target_username} no longer exists; this lot cannot be priced.",
            code="TARGET_NOT_FOUND",
        )

    price = current_price(target)
    revenue = price * lot.amount
    seller.cash += revenue
    seller.shares = [s for s in seller.shares if s.id != lot.id]

    return SaleReceipt(
        lot=lot,
        sale_price=price,
        revenue=revenue,
        realized_pnl=revenue - lot.amount * lot.purchase_price,
    )


def _validate_date(date: object) -> str:
    if not isinstance(date, str):
        raise ValidationError("Date must be a YYYY-MM-DD string.")
    try:
        datetime.strptime(date, "%Y-%m-%d")
    except ValueError:
        raise ValidationError("Date must be a YYYY-MM-DD string.") from None
    return date


def record_habit(
    account: Account,
    date: str,
    pages: int,
    book: Optional[str] = None,
) -> HabitEntry:
    """
    Log `pages` read on `date`.

    Repeat logs for the same date accumulate into one entry (several
    reading sessions a day). Any other date is appended, and the price
    follows the last entry logged.
    """

    ensure_unlocked(account)
    _validate_date(date)
    if not _is_int(pages) or pages < 0:
        raise ValidationError("Pages must be a non-negative whole number.")

    for entry in account.habit_history:
        if entry.date == date:
            entry.pages += pages
            if book:
                entry.book = book
            return entry

    entry = HabitEntry(date=date, pages=pages, book=book or None)
    account.habit_history.append(entry)
    return entry


def unlock_with_stats(
    account: Account,
    books_read: int,
    pages_read: int,
    daily_pages: Sequence[int],
    now: Optional[datetime] = None,
) -> ReadingStats:
    """
    Store imported reading history and unlock the game.

    Requires at least UNLOCK_DAYS_REQUIRED daily entries. The transition is
    one-way: a later import refreshes the stats but never re-locks.
    """

    errors: List[str] = []
    if not _is_int(books_read) or books_read < 0:
        errors.append("Books read must be a non-negative whole number.")
    if not _is_int(pages_read) or pages_read < 0:
        errors.append("Pages read must be a non-negative whole number.")

    daily = list(daily_pages) if daily_pages is not None else []
    if len(daily) < UNLOCK_DAYS_REQUIRED:
        errors.append(
            f"At least {UNLOCK_DAYS_REQUIRED} days of reading data are required "
            f"(got {len(daily)}).",
        )
    elif any(not _is_int(p) or p < 0 for p in daily):
        errors.append("Daily pages must be non-negative whole numbers.")

    if errors:
        raise ValidationError(errors[0], errors=errors)

    months = len(daily) / DAYS_PER_MONTH
    stats = ReadingStats(
        books_read=books_read,
        pages_read=pages_read,
        daily_pages=daily,
        avg_pages_per_month=round(sum(daily) / months, 2),
        avg_books_per_month=round(books_read / months, 2),
        imported_at=now or _utcnow(),
    )
    account.reading_stats = stats
    account.last_stats_update = stats.imported_at
    account.game_locked = False
    return stats


def portfolio_view(
    account: Account,
    price_lookup: Callable[[ShareLot], Optional[int]],
) -> List[LotView]:
    """
    Value every lot held by `account`.

    `price_lookup` returns the current price of a lot's target, or None if
    the target can no longer be resolved.
    """

    views = []
    for lot in account.shares:
        price = price_lookup(lot)
        if price is None:
            views.append(LotView(lot=lot, current_price=None, market_value=None, unrealized_pnl=None))
            continue
        value = price * lot.amount
        views.append(
            LotView(
                lot=lot,
                current_price=price,
                market_value=value,
                unrealized_pnl=value - lot.amount * lot.purchase_price,
            )
        )
    return views
