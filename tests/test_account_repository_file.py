import tempfile
import threading
import unittest
import uuid
from datetime import datetime, timezone
from pathlib import Path

from domain.errors import ConflictError, DecryptionError
from domain.models import Account, HabitEntry, ReadingStats, ShareLot
from infrastructure.crypto.fernet_cipher import FernetCipher, StaticKeyProvider
from infrastructure.storage.account_repository_file import EncryptedFileAccountRepository


def make_account(username, **overrides):
    fields = dict(
        id=uuid.uuid4().hex,
        username=username,
        password_hash="hash",
        email=f"{username}@example.com",
        name="Test Reader",
        favorite_genre="Mystery",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return Account(**fields)


class EncryptedFileAccountRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.storage_dir = Path(self._tmp.name) / "users"
        self.cipher = FernetCipher(StaticKeyProvider("repo-secret"))
        self.repo = EncryptedFileAccountRepository(self.storage_dir, self.cipher)

    def test_creates_storage_directory(self):
        self.assertTrue(self.storage_dir.is_dir())

    def test_save_and_load_preserve_every_field(self):
        account = make_account(
            "alice",
            habit_history=[HabitEntry("2024-01-01", 12, "Dune")],
            shares=[
                ShareLot(
                    id="lot1",
                    target_account_id="t1",
                    target_username="bob",
                    purchase_date=datetime(2024, 1, 2, tzinfo=timezone.utc),
                    purchase_price=12,
                    amount=3,
                )
            ],
            reading_stats=ReadingStats(
                books_read=3,
                pages_read=900,
                daily_pages=[10] * 90,
                avg_pages_per_month=300.0,
                avg_books_per_month=1.0,
                imported_at=datetime(2024, 1, 3, tzinfo=timezone.utc),
            ),
            game_locked=False,
            cash=964,
        )
        self.repo.save(account)
        self.assertEqual(self.repo.load("alice"), account)

    def test_load_missing_returns_none(self):
        self.assertIsNone(self.repo.load("nobody"))
        self.assertFalse(self.repo.exists("nobody"))

    def test_file_is_encrypted_at_rest(self):
        self.repo.save(make_account("alice"))
        files = list(self.storage_dir.glob("*.enc"))
        self.assertEqual([f.name for f in files], ["alice.enc"])
        contents = files[0].read_text()
        self.assertNotIn("alice", contents)
        self.assertNotIn("password_hash", contents)

    def test_safe_filename_replaces_unsafe_characters(self):
        self.assertEqual(
            EncryptedFileAccountRepository.safe_filename("../etc/passwd"),
            "___etc_passwd.enc",
        )

    def test_save_overwrites_last_write_wins(self):
        self.repo.save(make_account("alice", cash=10))
        self.repo.save(make_account("alice", cash=20))
        self.assertEqual(self.repo.load("alice").cash, 20)

    def test_create_refuses_existing_username(self):
        original = make_account("alice")
        self.repo.create(original)
        with self.assertRaises(ConflictError):
            self.repo.create(make_account("alice", name="Someone Else"))
        self.assertEqual(self.repo.load("alice").id, original.id)

    def test_update_merges_fields(self):
        self.repo.save(make_account("alice"))
        self.assertTrue(self.repo.update("alice", {"bio": "Reads a lot", "cash": 5}))
        loaded = self.repo.load("alice")
        self.assertEqual(loaded.bio, "Reads a lot")
        self.assertEqual(loaded.cash, 5)
        self.assertEqual(loaded.name, "Test Reader")

    def test_update_missing_account_returns_false(self):
        self.assertFalse(self.repo.update("nobody", {"bio": "x"}))

    def test_update_rejects_unknown_fields(self):
        self.repo.save(make_account("alice"))
        with self.assertRaises(ValueError):
            self.repo.update("alice", {"not_a_field": 1})

    def test_delete(self):
        self.repo.save(make_account("alice"))
        self.assertTrue(self.repo.delete("alice"))
        self.assertFalse(self.repo.delete("alice"))
        self.assertIsNone(self.repo.load("alice"))

    def test_list_all_skips_unreadable_files(self):
        self.repo.save(make_account("alice"))
        self.repo.save(make_account("bob"))
        (self.storage_dir / "broken.enc").write_text("garbage")
        other_key = FernetCipher(StaticKeyProvider("other-secret"))
        (self.storage_dir / "foreign.enc").write_text(other_key.encrypt("{}"))

        usernames = sorted(a.username for a in self.repo.list_all())
        self.assertEqual(usernames, ["alice", "bob"])

    def test_load_unreadable_file_raises(self):
        (self.storage_dir / "alice.enc").write_text("garbage")
        with self.assertRaises(DecryptionError):
            self.repo.load("alice")

    def test_wrong_key_cannot_read_accounts(self):
        self.repo.save(make_account("alice"))
        other = EncryptedFileAccountRepository(
            self.storage_dir, FernetCipher(StaticKeyProvider("other-secret"))
        )
        with self.assertRaises(DecryptionError):
            other.load("alice")
        self.assertEqual(other.list_all(), [])

    def test_backup_and_restore(self):
        self.repo.save(make_account("alice"))
        self.repo.save(make_account("bob"))
        backup_path = self.repo.backup()
        self.assertTrue(backup_path.exists())
        self.assertNotIn("alice", backup_path.read_text())

        self.repo.delete("alice")
        self.repo.delete("bob")
        self.assertEqual(self.repo.restore(backup_path), 2)
        self.assertEqual(sorted(a.username for a in self.repo.list_all()), ["alice", "bob"])

    def test_locked_serializes_concurrent_updates(self):
        self.repo.save(make_account("alice", cash=0))

        def deposit():
            for _ in range(10):
                with self.repo.locked("alice"):
                    account = self.repo.load("alice")
                    account.cash += 1
                    self.repo.save(account)

        threads = [threading.Thread(target=deposit) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(self.repo.load("alice").cash, 40)

    def test_lookups_of_unknown_usernames_leave_no_locks_behind(self):
        for i in range(50):
            self.assertIsNone(self.repo.load(f"ghost{i}"))
            self.assertFalse(self.repo.update(f"ghost{i}", {"bio": "x"}))
        self.assertEqual(len(self.repo._locks), 0)


if __name__ == "__main__":
    unittest.main()
