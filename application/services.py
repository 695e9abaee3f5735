from __future__ import annotations

import functools
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from application.password_reset import PasswordResetService
from application.validation import (
    VALID_GENRES,
    normalize_profile_fields,
    validate_profile_update,
    validate_registration,
)
from domain.errors import (
    AuthError,
    ConflictError,
    DecryptionError,
    LedgerError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from domain.ledger import (
    UNLOCK_DAYS_REQUIRED,
    buy_shares,
    current_price,
    ensure_unlocked,
    find_lot,
    lot_id_at,
    portfolio_view,
    record_habit,
    sell_lot,
    unlock_with_stats,
)
from domain.models import Account, ShareLot
from domain.repositories import AccountRepository, PasswordHasher

ACCOUNT_UNAVAILABLE = "Account unavailable, please try again later."
INVALID_CREDENTIALS = "Invalid username or password"


@dataclass
class OperationResult:
    """
    Uniform result of every external operation.

    On success `account` holds the caller's account with the password hash
    stripped; `data` carries any operation-specific payload. On failure
    `error_code`/`error_message` identify the problem and `errors` lists
    field-level messages.
    """

    success: bool
    account: Optional[Dict[str, Any]] = None
    data: Any = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _failure(exc: LedgerError) -> OperationResult:
    if isinstance(exc, (DecryptionError, StorageError)):
        # Internal details stay in the logs.
        logger.error("{}: {}", exc.code, exc.message)
        return OperationResult(
            success=False,
            error_code=exc.code,
            error_message=ACCOUNT_UNAVAILABLE,
            errors=[ACCOUNT_UNAVAILABLE],
        )
    return OperationResult(
        success=False,
        error_code=exc.code,
        error_message=exc.message,
        errors=exc.errors or [exc.message],
    )


def _returns_result(func: Callable[..., OperationResult]) -> Callable[..., OperationResult]:
    """Turn `LedgerError`s raised by an operation into a failed `OperationResult`."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> OperationResult:
        try:
            return func(*args, **kwargs)
        except LedgerError as exc:
            return _failure(exc)

    return wrapper


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_account(account_repo: AccountRepository, username: str) -> Account:
    account = account_repo.load(username) if username else None
    if account is None:
        raise NotFoundError(f"Account '{username}' not found.", code="ACCOUNT_NOT_FOUND")
    return account


def _ok(account: Account, data: Any = None, warnings: Optional[List[str]] = None) -> OperationResult:
    return OperationResult(
        success=True,
        account=account.to_public_dict(),
        data=data,
        warnings=list(warnings or []),
    )


# --- accounts ---------------------------------------------------------------


def register(
    fields: Mapping[str, Any],
    account_repo: AccountRepository,
    password_hasher: PasswordHasher,
) -> OperationResult:
    """
    Create a new, locked account with the starting cash grant.

    Duplicate usernames are reported as a conflict; every other problem is a
    validation failure listing all field errors at once.
    """

    check = validate_registration(fields, account_repo)
    if not check.valid:
        code = (
            "USERNAME_TAKEN"
            if "Username already exists" in check.errors
            else ValidationError.default_code
        )
        return OperationResult(
            success=False,
            error_code=code,
            error_message=check.errors[0],
            errors=check.errors,
            warnings=check.warnings,
        )

    account = Account(
        id=uuid.uuid4().hex,
        username=fields["username"],
        password_hash=password_hasher.hash(fields["password"]),
        email=fields["email"].strip().lower(),
        name=fields["name"].strip(),
        favorite_genre=fields["favorite_genre"],
        created_at=_utcnow(),
    )
    try:
        account_repo.create(account)
    except ConflictError as exc:
        # Lost a race with a concurrent registration of the same name.
        return OperationResult(
            success=False,
            error_code=exc.code,
            error_message=exc.message,
            errors=[exc.message],
            warnings=check.warnings,
        )
    except LedgerError as exc:
        return _failure(exc)

    logger.info("Registered account {}", account.username)
    return _ok(account, warnings=check.warnings)


@_returns_result
def login(
    username: str,
    password: str,
    account_repo: AccountRepository,
    password_hasher: PasswordHasher,
) -> OperationResult:
    # Unknown user and wrong password are reported identically.
    account = account_repo.load(username) if username else None
    if account is None or not password_hasher.verify(password or "", account.password_hash):
        raise AuthError(INVALID_CREDENTIALS)

    with account_repo.locked(username):
        account = _require_account(account_repo, username)
        account.last_login = _utcnow()
        account_repo.save(account)

    return _ok(account, data={"game_locked": account.game_locked})


@_returns_result
def get_profile(username: str, account_repo: AccountRepository) -> OperationResult:
    return _ok(_require_account(account_repo, username))


@_returns_result
def update_profile(
    username: str,
    fields: Mapping[str, Any],
    account_repo: AccountRepository,
) -> OperationResult:
    _require_account(account_repo, username)

    check = validate_profile_update(username, fields, account_repo)
    if not check.valid:
        raise ValidationError(check.errors[0], errors=check.errors)

    changes = normalize_profile_fields(fields)
    with account_repo.locked(username):
        account = _require_account(account_repo, username)
        preferences = changes.pop("preferences", None)
        for name, value in changes.items():
            setattr(account, name, value)
        if preferences is not None:
            account.preferences.update(preferences)
        account_repo.save(account)

    return _ok(account)


def list_genres() -> List[str]:
    return list(VALID_GENRES)


# --- passwords --------------------------------------------------------------


def request_password_reset(email: str, reset_service: PasswordResetService) -> OperationResult:
    result = reset_service.create_reset_request(email)
    if not result.success:
        return OperationResult(
            success=False,
            error_code=NotFoundError.default_code,
            error_message=result.message,
            errors=[result.message],
        )
    return OperationResult(
        success=True,
        data={"message": result.message, "token": result.token, "expiry": result.expiry},
    )


def reset_password(
    token: str,
    new_password: str,
    reset_service: PasswordResetService,
) -> OperationResult:
    result = reset_service.reset_password(token, new_password)
    if not result.success:
        code = (
            ValidationError.default_code if result.errors else AuthError.default_code
        )
        return OperationResult(
            success=False,
            error_code=code,
            error_message=result.message,
            errors=result.errors or [result.message],
        )
    return OperationResult(success=True, data={"message": result.message})


def change_password(
    username: str,
    current_password: str,
    new_password: str,
    reset_service: PasswordResetService,
    confirm_password: Optional[str] = None,
) -> OperationResult:
    result = reset_service.change_password(
        username, current_password, new_password, confirm_password
    )
    if not result.success:
        code = ValidationError.default_code if result.errors else AuthError.default_code
        return OperationResult(
            success=False,
            error_code=code,
            error_message=result.message,
            errors=result.errors or [result.message],
        )
    return OperationResult(success=True, data={"message": result.message})


# --- game gate --------------------------------------------------------------


@_returns_result
def get_game_status(username: str, account_repo: AccountRepository) -> OperationResult:
    account = _require_account(account_repo, username)
    stats = account.reading_stats.to_dict() if account.reading_stats else None
    return OperationResult(
        success=True,
        data={
            "locked": account.game_locked,
            "requires_stats": account.game_locked,
            "days_required": UNLOCK_DAYS_REQUIRED,
            "stats": stats,
        },
    )


@_returns_result
def import_stats(
    username: str,
    books_read: int,
    pages_read: int,
    daily_pages: Sequence[int],
    account_repo: AccountRepository,
) -> OperationResult:
    with account_repo.locked(username):
        account = _require_account(account_repo, username)
        was_locked = account.game_locked
        stats = unlock_with_stats(account, books_read, pages_read, daily_pages)
        account_repo.save(account)

    if was_locked:
        logger.info("Game unlocked for {}", username)
    return _ok(account, data=stats.to_dict())


# --- trading ----------------------------------------------------------------


def _tradeable_view(account: Account) -> Dict[str, Any]:
    return {
        "username": account.username,
        "name": account.name,
        "price": current_price(account),
        "avatar": account.avatar,
        "favorite_genre": account.favorite_genre,
        "habit_history": [h.to_dict() for h in account.habit_history],
    }


@_returns_result
def list_tradeable_users(
    excluding_username: str,
    account_repo: AccountRepository,
) -> OperationResult:
    """Unlocked accounts other than the requester, with their current price."""

    requester = _require_account(account_repo, excluding_username)
    ensure_unlocked(requester)

    users = [
        _tradeable_view(a)
        for a in account_repo.list_all()
        if not a.game_locked and a.username != excluding_username
    ]
    return OperationResult(success=True, data=users)


@_returns_result
def update_habit(
    username: str,
    date: str,
    pages: int,
    account_repo: AccountRepository,
    book: Optional[str] = None,
) -> OperationResult:
    with account_repo.locked(username):
        account = _require_account(account_repo, username)
        entry = record_habit(account, date, pages, book)
        account_repo.save(account)

    return _ok(account, data={"entry": entry.to_dict(), "price": current_price(account)})


@_returns_result
def buy(
    buyer_username: str,
    target_username: str,
    amount: int,
    account_repo: AccountRepository,
) -> OperationResult:
    with account_repo.locked(buyer_username):
        buyer = _require_account(account_repo, buyer_username)
        target = _require_account(account_repo, target_username)
        lot = buy_shares(buyer, target, amount)
        account_repo.save(buyer)

    cost = lot.purchase_price * lot.amount
    logger.info(
        "{} bought {} share(s) of {} at {} (cost {})",
        buyer_username, lot.amount, target_username, lot.purchase_price, cost,
    )
    return _ok(buyer, data={"lot": lot.to_dict(), "cost": cost})


def _sell(username: str, resolve_lot_id: Callable[[Account], str], account_repo: AccountRepository) -> OperationResult:
    with account_repo.locked(username):
        seller = _require_account(account_repo, username)
        ensure_unlocked(seller)
        lot = find_lot(seller, resolve_lot_id(seller))
        target = account_repo.load(lot.target_username)
        receipt = sell_lot(seller, lot.id, target)
        account_repo.save(seller)

    logger.info(
        "{} sold {} share(s) of {} at {} (revenue {}, pnl {})",
        username, lot.amount, lot.target_username, receipt.sale_price,
        receipt.revenue, receipt.realized_pnl,
    )
    return _ok(
        seller,
        data={
            "lot": lot.to_dict(),
            "sale_price": receipt.sale_price,
            "revenue": receipt.revenue,
            "realized_pnl": receipt.realized_pnl,
        },
    )


@_returns_result
def sell(username: str, lot_index: int, account_repo: AccountRepository) -> OperationResult:
    """Sell the lot at position `lot_index` of the account's holdings."""

    return _sell(username, lambda seller: lot_id_at(seller, lot_index), account_repo)


@_returns_result
def sell_lot_by_id(username: str, lot_id: str, account_repo: AccountRepository) -> OperationResult:
    return _sell(username, lambda seller: lot_id, account_repo)


@_returns_result
def get_portfolio(username: str, account_repo: AccountRepository) -> OperationResult:
    account = _require_account(account_repo, username)
    targets: Dict[str, Optional[Account]] = {}

    def price_of(lot: ShareLot) -> Optional[int]:
        if lot.target_username not in targets:
            try:
                targets[lot.target_username] = account_repo.load(lot.target_username)
            except LedgerError:
                targets[lot.target_username] = None
        target = targets[lot.target_username]
        if target is None or target.id != lot.target_account_id:
            return None
        return current_price(target)

    views = portfolio_view(account, price_of)
    lots = [
        {
            **v.lot.to_dict(),
            "current_price": v.current_price,
            "market_value": v.market_value,
            "unrealized_pnl": v.unrealized_pnl,
        }
        for v in views
    ]
    holdings_value = sum(v.market_value for v in views if v.market_value is not None)
    return _ok(
        account,
        data={
            "cash": account.cash,
            "lots": lots,
            "holdings_value": holdings_value,
            "total_value": account.cash + holdings_value,
        },
    )
