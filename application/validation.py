from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from domain.repositories import AccountRepository

VALID_GENRES = (
    "Fiction", "Non-Fiction", "Science Fiction", "Fantasy", "Mystery",
    "Romance", "Thriller", "Horror", "Biography", "History", "Science",
    "Technology", "Philosophy", "Psychology", "Self-Help", "Business",
    "Cooking", "Travel", "Poetry", "Drama", "Comics", "Children",
    "Young Adult", "Classic", "Contemporary", "Literary Fiction",
)

REQUIRED_REGISTRATION_FIELDS = ("name", "username", "password", "email", "favorite_genre")

# Fields an owner may change through a profile update.
PROFILE_FIELDS = ("name", "email", "favorite_genre", "bio", "avatar", "preferences")

_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_USERNAME_RE = re.compile(r"[A-Za-z0-9_]+")
_NAME_RE = re.compile(r"[A-Za-z \-']+")


@dataclass
class ValidationResult:
    """Outcome of checking a single field."""

    valid: bool
    message: Optional[str] = None


@dataclass
class FormValidation:
    """Outcome of checking a whole form: all errors plus non-blocking warnings."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _label(field_name: str) -> str:
    return field_name.replace("_", " ").capitalize()


def validate_email(email: Any) -> ValidationResult:
    if not isinstance(email, str) or not _EMAIL_RE.fullmatch(email.strip()):
        return ValidationResult(False, "Please enter a valid email address")
    return ValidationResult(True)


def validate_username(username: Any) -> ValidationResult:
    if not isinstance(username, str) or not 3 <= len(username) <= 20:
        return ValidationResult(False, "Username must be 3-20 characters long")
    if not _USERNAME_RE.fullmatch(username):
        return ValidationResult(
            False, "Username can only contain letters, numbers, and underscores"
        )
    return ValidationResult(True)


def validate_password(password: Any) -> ValidationResult:
    if not isinstance(password, str) or len(password) < 6:
        return ValidationResult(False, "Password must be at least 6 characters long")
    if len(password) > 128:
        return ValidationResult(False, "Password must be at most 128 characters long")

    has_upper = any(c.isupper() for c in password)
    has_lower = any(c.islower() for c in password)
    has_digit = any(c.isdigit() for c in password)
    if not (has_upper and has_lower and has_digit):
        return ValidationResult(
            False,
            "Password must contain at least one uppercase letter, "
            "one lowercase letter, and one number",
        )
    return ValidationResult(True)


def validate_name(name: Any) -> ValidationResult:
    if not isinstance(name, str) or len(name.strip()) < 2:
        return ValidationResult(False, "Name must be at least 2 characters long")
    if len(name) > 50:
        return ValidationResult(False, "Name must be at most 50 characters long")
    if not _NAME_RE.fullmatch(name):
        return ValidationResult(
            False, "Name can only contain letters, spaces, hyphens, and apostrophes"
        )
    return ValidationResult(True)


def validate_favorite_genre(genre: Any) -> ValidationResult:
    if not genre:
        return ValidationResult(False, "Please select a favorite genre")
    if genre not in VALID_GENRES:
        return ValidationResult(False, "Please select a valid genre from the list")
    return ValidationResult(True)


def validate_registration(
    data: Mapping[str, Any],
    account_repo: AccountRepository,
) -> FormValidation:
    """
    Check a registration form.

    Missing required fields are reported on their own; otherwise every
    field is checked and all problems are returned together. Email
    addresses are deliberately not required to be unique.
    """

    errors: List[str] = []
    warnings: List[str] = []

    for name in REQUIRED_REGISTRATION_FIELDS:
        if not data.get(name):
            errors.append(f"{_label(name)} is required")
    if errors:
        return FormValidation(False, errors, warnings)

    username_check = validate_username(data["username"])
    checks = [
        validate_name(data["name"]),
        username_check,
        validate_password(data["password"]),
        validate_email(data["email"]),
        validate_favorite_genre(data["favorite_genre"]),
    ]
    errors.extend(c.message for c in checks if not c.valid)

    if username_check.valid and account_repo.exists(data["username"]):
        errors.append("Username already exists")

    if isinstance(data["password"], str) and len(data["password"]) < 8:
        warnings.append("Consider using a longer password for better security")
    if isinstance(data["username"], str) and len(data["username"]) < 5:
        warnings.append("Consider using a longer username for better uniqueness")

    return FormValidation(not errors, errors, warnings)


def validate_profile_update(
    username: str,
    data: Mapping[str, Any],
    account_repo: AccountRepository,
) -> FormValidation:
    """Check the subset of profile fields present in `data`."""

    errors: List[str] = []

    if "username" in data and data["username"] != username:
        errors.append("Username cannot be changed")

    unknown = sorted(set(data) - set(PROFILE_FIELDS) - {"username"})
    if unknown:
        errors.append(f"These fields cannot be updated: {', '.join(unknown)}")

    if "name" in data:
        result = validate_name(data["name"])
        if not result.valid:
            errors.append(result.message)

    if "email" in data:
        result = validate_email(data["email"])
        if not result.valid:
            errors.append(result.message)
        else:
            email = data["email"].strip().lower()
            taken = any(
                a.email == email and a.username != username
                for a in account_repo.list_all()
            )
            if taken:
                errors.append("Email address already registered by another user")

    if "favorite_genre" in data:
        result = validate_favorite_genre(data["favorite_genre"])
        if not result.valid:
            errors.append(result.message)

    if "bio" in data and not isinstance(data["bio"], str):
        errors.append("Bio must be text")

    if "avatar" in data and (not isinstance(data["avatar"], str) or not data["avatar"]):
        errors.append("Avatar must be a non-empty string")

    if "preferences" in data:
        prefs = data["preferences"]
        if not isinstance(prefs, dict) or not all(isinstance(v, bool) for v in prefs.values()):
            errors.append("Preferences must map names to true/false")

    return FormValidation(not errors, errors)


def validate_password_change(
    current_password: Any,
    new_password: Any,
    confirm_password: Any = None,
) -> FormValidation:
    errors: List[str] = []

    if not current_password:
        errors.append("Current password is required")
    if not new_password:
        errors.append("New password is required")

    if new_password and confirm_password is not None and new_password != confirm_password:
        errors.append("New passwords do not match")

    if new_password:
        result = validate_password(new_password)
        if not result.valid:
            errors.append(result.message)

    if current_password and new_password and current_password == new_password:
        errors.append("New password must be different from current password")

    return FormValidation(not errors, errors)


def normalize_profile_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Trim/normalise already-validated profile fields before they are stored."""

    cleaned = {k: v for k, v in data.items() if k in PROFILE_FIELDS}
    if "name" in cleaned:
        cleaned["name"] = cleaned["name"].strip()
    if "email" in cleaned:
        cleaned["email"] = cleaned["email"].strip().lower()
    if "bio" in cleaned:
        cleaned["bio"] = cleaned["bio"].strip()
    return cleaned
