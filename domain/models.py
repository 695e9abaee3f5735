from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

INITIAL_CASH = 1000
DEFAULT_AVATAR = "📚"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def default_preferences() -> Dict[str, bool]:
    return {
        "notifications": True,
        "public_profile": True,
        "show_reading_stats": True,
    }


@dataclass
class HabitEntry:
    """Pages logged on a single calendar date (`YYYY-MM-DD`)."""

    date: str
    pages: int
    book: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "pages": self.pages, "book": self.book}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> HabitEntry:
        return cls(
            date=data["date"],
            pages=int(data["pages"]),
            book=data.get("book"),
        )


@dataclass
class ShareLot:
    """
    One purchase of shares in another account's price.

    Lots are never merged or split: each buy creates a new lot and each
    sell removes exactly one. `id` is generated at purchase time so that a
    lot can be addressed without relying on its position in the list.
    """

    id: str
    target_account_id: str
    target_username: str
    purchase_date: datetime
    purchase_price: int
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "target_account_id": self.target_account_id,
            "target_username": self.target_username,
            "purchase_date": _iso(self.purchase_date),
            "purchase_price": self.purchase_price,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ShareLot:
        return cls(
            id=data["id"],
            target_account_id=data["target_account_id"],
            target_username=data["target_username"],
            purchase_date=_parse_datetime(data["purchase_date"]),
            purchase_price=int(data["purchase_price"]),
            amount=int(data["amount"]),
        )


@dataclass
class ReadingStats:
    """Imported reading history used to unlock the game."""

    books_read: int
    pages_read: int
    daily_pages: List[int]
    avg_pages_per_month: float
    avg_books_per_month: float
    imported_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "books_read": self.books_read,
            "pages_read": self.pages_read,
            "daily_pages": list(self.daily_pages),
            "avg_pages_per_month": self.avg_pages_per_month,
            "avg_books_per_month": self.avg_books_per_month,
            "imported_at": _iso(self.imported_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ReadingStats:
        return cls(
            books_read=int(data["books_read"]),
            pages_read=int(data["pages_read"]),
            daily_pages=[int(p) for p in data["daily_pages"]],
            avg_pages_per_month=float(data["avg_pages_per_month"]),
            avg_books_per_month=float(data["avg_books_per_month"]),
            imported_at=_parse_datetime(data["imported_at"]),
        )


@dataclass
class Account:
    """
    A registered reader: credentials, profile, reading log and portfolio.

    This model is independent of how it is stored; the repository layer
    turns it into an encrypted file and back via `to_dict`/`from_dict`.
    """

    id: str
    username: str
    password_hash: str
    email: str
    name: str
    favorite_genre: str
    created_at: datetime
    bio: str = ""
    avatar: str = DEFAULT_AVATAR
    preferences: Dict[str, bool] = field(default_factory=default_preferences)
    habit_history: List[HabitEntry] = field(default_factory=list)
    shares: List[ShareLot] = field(default_factory=list)
    cash: int = INITIAL_CASH
    reading_stats: Optional[ReadingStats] = None
    game_locked: bool = True
    last_login: Optional[datetime] = None
    last_password_change: Optional[datetime] = None
    last_stats_update: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "password_hash": self.password_hash,
            "email": self.email,
            "name": self.name,
            "favorite_genre": self.favorite_genre,
            "bio": self.bio,
            "avatar": self.avatar,
            "preferences": dict(self.preferences),
            "habit_history": [h.to_dict() for h in self.habit_history],
            "shares": [s.to_dict() for s in self.shares],
            "cash": self.cash,
            "reading_stats": self.reading_stats.to_dict() if self.reading_stats else None,
            "game_locked": self.game_locked,
            "created_at": _iso(self.created_at),
            "last_login": _iso(self.last_login),
            "last_password_change": _iso(self.last_password_change),
            "last_stats_update": _iso(self.last_stats_update),
        }

    def to_public_dict(self) -> Dict[str, Any]:
        """Same as `to_dict` but without the password hash."""

        data = self.to_dict()
        data.pop("password_hash", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Account:
        stats = data.get("reading_stats")
        return cls(
            id=data["id"],
            username=data["username"],
            password_hash=data["password_hash"],
            email=data.get("email", ""),
            name=data.get("name", ""),
            favorite_genre=data.get("favorite_genre", ""),
            bio=data.get("bio", ""),
            avatar=data.get("avatar", DEFAULT_AVATAR),
            preferences={**default_preferences(), **(data.get("preferences") or {})},
            habit_history=[HabitEntry.from_dict(h) for h in data.get("habit_history", [])],
            shares=[ShareLot.from_dict(s) for s in data.get("shares", [])],
            cash=int(data.get("cash", INITIAL_CASH)),
            reading_stats=ReadingStats.from_dict(stats) if stats else None,
            game_locked=bool(data.get("game_locked", True)),
            created_at=_parse_datetime(data["created_at"]),
            last_login=_parse_datetime(data.get("last_login")),
            last_password_change=_parse_datetime(data.get("last_password_change")),
            last_stats_update=_parse_datetime(data.get("last_stats_update")),
        )


@dataclass
class ResetToken:
    """A single-use password reset credential bound to one account."""

    token: str
    username: str
    email: str
    expiry: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expiry
