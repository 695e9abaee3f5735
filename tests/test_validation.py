import unittest
import uuid
from datetime import datetime, timezone

from application.validation import (
    VALID_GENRES,
    normalize_profile_fields,
    validate_email,
    validate_favorite_genre,
    validate_name,
    validate_password,
    validate_password_change,
    validate_profile_update,
    validate_registration,
    validate_username,
)
from domain.models import Account


class InMemoryAccountRepository:
    """Just enough of `AccountRepository` for the validators."""

    def __init__(self, accounts=()):
        self.accounts = {a.username: a for a in accounts}

    def exists(self, username: str) -> bool:
        return username in self.accounts

    def list_all(self):
        return list(self.accounts.values())


def make_account(username, email):
    return Account(
        id=uuid.uuid4().hex,
        username=username,
        password_hash="hash",
        email=email,
        name="Someone",
        favorite_genre="Fiction",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


VALID_FORM = {
    "name": "Jane O'Neil-Smith",
    "username": "jane_reads",
    "password": "Password123",
    "email": "jane@example.com",
    "favorite_genre": "Science Fiction",
}


class FieldValidatorTests(unittest.TestCase):
    def test_name(self):
        self.assertTrue(validate_name("Jo").valid)
        self.assertTrue(validate_name("A" * 50).valid)
        self.assertFalse(validate_name("J").valid)
        self.assertFalse(validate_name("  J  ").valid)
        self.assertFalse(validate_name("A" * 51).valid)
        self.assertFalse(validate_name("R2D2").valid)
        self.assertFalse(validate_name(None).valid)
        self.assertTrue(validate_name("Mary Ann").valid)
        self.assertFalse(validate_name("Jane\n").valid)
        self.assertFalse(validate_name("Jo\tSmith").valid)

    def test_username(self):
        self.assertTrue(validate_username("abc").valid)
        self.assertTrue(validate_username("A_b_9" * 4).valid)
        self.assertFalse(validate_username("ab").valid)
        self.assertFalse(validate_username("a" * 21).valid)
        self.assertFalse(validate_username("bad-name").valid)
        self.assertFalse(validate_username("with space").valid)
        self.assertFalse(validate_username("abc\n").valid)
        self.assertFalse(validate_username("abc\nd").valid)

    def test_password(self):
        self.assertTrue(validate_password("Abcde1").valid)
        self.assertFalse(validate_password("Abc1").valid)
        self.assertFalse(validate_password("abcdef1").valid)
        self.assertFalse(validate_password("ABCDEF1").valid)
        self.assertFalse(validate_password("Abcdefg").valid)
        self.assertFalse(validate_password("Aa1" + "x" * 126).valid)
        self.assertTrue(validate_password("Aa1" + "x" * 125).valid)

    def test_email(self):
        self.assertTrue(validate_email("a@b.co").valid)
        self.assertFalse(validate_email("a@b").valid)
        self.assertFalse(validate_email("a b@c.d").valid)
        self.assertFalse(validate_email("").valid)
        self.assertFalse(validate_email("a@b.co\nx@y.z").valid)

    def test_favorite_genre(self):
        self.assertEqual(len(VALID_GENRES), 26)
        self.assertTrue(validate_favorite_genre("Poetry").valid)
        self.assertFalse(validate_favorite_genre("poetry").valid)
        self.assertFalse(validate_favorite_genre("").valid)


class RegistrationValidationTests(unittest.TestCase):
    def test_valid_form(self):
        result = validate_registration(VALID_FORM, InMemoryAccountRepository())
        self.assertTrue(result.valid)
        self.assertEqual(result.errors, [])
        self.assertEqual(result.warnings, [])

    def test_missing_fields_are_reported_first(self):
        form = dict(VALID_FORM, email="", favorite_genre=None)
        result = validate_registration(form, InMemoryAccountRepository())
        self.assertFalse(result.valid)
        self.assertEqual(result.errors, ["Email is required", "Favorite genre is required"])

    def test_collects_all_errors(self):
        form = dict(VALID_FORM, name="X", password="short", email="nope")
        result = validate_registration(form, InMemoryAccountRepository())
        self.assertFalse(result.valid)
        self.assertEqual(len(result.errors), 3)

    def test_duplicate_username(self):
        repo = InMemoryAccountRepository([make_account("jane_reads", "x@example.com")])
        result = validate_registration(VALID_FORM, repo)
        self.assertEqual(result.errors, ["Username already exists"])

    def test_shared_email_is_allowed(self):
        repo = InMemoryAccountRepository([make_account("other", "jane@example.com")])
        self.assertTrue(validate_registration(VALID_FORM, repo).valid)

    def test_warnings_do_not_block(self):
        form = dict(VALID_FORM, username="jan", password="Abcde1")
        result = validate_registration(form, InMemoryAccountRepository())
        self.assertTrue(result.valid)
        self.assertEqual(len(result.warnings), 2)


class ProfileUpdateValidationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.repo = InMemoryAccountRepository(
            [
                make_account("jane", "jane@example.com"),
                make_account("bob", "bob@example.com"),
            ]
        )

    def test_email_taken_by_someone_else(self):
        result = validate_profile_update("jane", {"email": "BOB@example.com"}, self.repo)
        self.assertFalse(result.valid)
        self.assertIn("Email address already registered by another user", result.errors)

    def test_own_email_is_fine(self):
        self.assertTrue(validate_profile_update("jane", {"email": "jane@example.com"}, self.repo).valid)

    def test_username_and_protected_fields_cannot_change(self):
        result = validate_profile_update(
            "jane", {"username": "janet", "cash": 10**6, "game_locked": False}, self.repo
        )
        self.assertFalse(result.valid)
        self.assertEqual(len(result.errors), 2)

    def test_checks_only_present_fields(self):
        self.assertTrue(validate_profile_update("jane", {"bio": "Hi", "avatar": "🚀"}, self.repo).valid)
        self.assertFalse(validate_profile_update("jane", {"favorite_genre": "Sports"}, self.repo).valid)
        self.assertFalse(validate_profile_update("jane", {"preferences": {"notifications": "yes"}}, self.repo).valid)

    def test_normalize(self):
        cleaned = normalize_profile_fields({"name": " Jane ", "email": " JANE@Example.com "})
        self.assertEqual(cleaned, {"name": "Jane", "email": "jane@example.com"})


class PasswordChangeValidationTests(unittest.TestCase):
    def test_valid_change(self):
        self.assertTrue(validate_password_change("OldPass1", "NewPass1", "NewPass1").valid)
        self.assertTrue(validate_password_change("OldPass1", "NewPass1").valid)

    def test_mismatch_and_reuse(self):
        self.assertIn(
            "New passwords do not match",
            validate_password_change("OldPass1", "NewPass1", "NewPass2").errors,
        )
        self.assertIn(
            "New password must be different from current password",
            validate_password_change("Same1234", "Same1234").errors,
        )

    def test_required_fields(self):
        result = validate_password_change("", "")
        self.assertEqual(result.errors, ["Current password is required", "New password is required"])


if __name__ == "__main__":
    unittest.main()
