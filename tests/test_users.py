import tempfile
import unittest
from pathlib import Path

from car_reservation import (
    Account,
    AuthorizationError,
    Role,
    UserDirectory,
    ValidationError,
    YamlDocumentStore,
    format_username,
)
from car_reservation.auth import AuthenticationError, AuthFailureReason, sign_in


class FakeProvider:
    def __init__(self, accounts: dict[str, tuple[str, Account]], failure: Exception | None = None) -> None:
        self.accounts = accounts
        self.failure = failure

    def authenticate(self, email: str, password: str) -> Account:
        if self.failure is not None:
            raise self.failure
        if email not in self.accounts:
            raise AuthenticationError(AuthFailureReason.USER_NOT_FOUND)
        expected_password, account = self.accounts[email]
        if password != expected_password:
            raise AuthenticationError(AuthFailureReason.WRONG_PASSWORD)
        return account


class TestFormatUsername(unittest.TestCase):
    def test_dotted_local_part(self) -> None:
        self.assertEqual(format_username("ana.horvat@example.com"), "Ana Horvat")
        self.assertEqual(format_username("ANA.HORVAT.JR@example.com"), "Ana Horvat")

    def test_plain_local_part(self) -> None:
        self.assertEqual(format_username("ivo@example.com"), "Ivo")
        self.assertEqual(format_username("IVO"), "Ivo")

    def test_empty(self) -> None:
        self.assertEqual(format_username(""), "")


class DirectoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.store = YamlDocumentStore(Path(self._temp_dir.name) / "data")
        self.directory = UserDirectory(self.store)
        self.store.set("users", "u-admin", {"email": "boss@example.com", "username": "Boss", "role": "admin", "disabled": False})
        self.admin = self.directory.identity_for(Account("u-admin", "boss@example.com"))
        self.ana = self.directory.identity_for(Account("u-ana", "ana.horvat@example.com"))

    def tearDown(self) -> None:
        self._temp_dir.cleanup()


class TestUserDirectory(DirectoryTestCase):
    def test_first_sign_in_provisions_regular_user(self) -> None:
        user = self.directory.get("u-ana")
        self.assertEqual(user.username, "Ana Horvat")
        self.assertEqual(user.role, Role.REGULAR)
        self.assertFalse(user.disabled)
        self.assertEqual(self.ana.display_name, "Ana Horvat")

    def test_account_without_email_cannot_be_provisioned(self) -> None:
        with self.assertRaises(ValidationError):
            self.directory.ensure_user(Account("u-anon", ""))

    def test_disable_and_reenable_keeps_role(self) -> None:
        self.directory.set_role(self.admin, "u-ana", Role.ADMIN)
        self.directory.set_disabled(self.admin, "u-ana", True)

        disabled = self.directory.identity_for(Account("u-ana", "ana.horvat@example.com"))
        self.assertIsNone(disabled.role)
        self.assertFalse(disabled.is_active)
        self.assertEqual(self.directory.get("u-ana").role, Role.ADMIN)

        self.directory.set_disabled(self.admin, "u-ana", False)
        restored = self.directory.identity_for(Account("u-ana", "ana.horvat@example.com"))
        self.assertEqual(restored.role, Role.ADMIN)

    def test_management_requires_admin(self) -> None:
        with self.assertRaises(AuthorizationError):
            self.directory.list_users(self.ana)
        with self.assertRaises(AuthorizationError):
            self.directory.rename_user(self.ana, "u-ana", "Someone Else")
        with self.assertRaises(AuthorizationError):
            self.directory.set_role(self.ana, "u-ana", "admin")

    def test_admin_lists_and_renames_users(self) -> None:
        renamed = self.directory.rename_user(self.admin, "u-ana", "  Ana Kovac ")
        self.assertEqual(renamed.username, "Ana Kovac")
        self.assertEqual([user.id for user in self.directory.list_users(self.admin)], ["u-ana", "u-admin"])

    def test_invalid_updates_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            self.directory.rename_user(self.admin, "u-ana", "   ")
        with self.assertRaises(ValidationError):
            self.directory.set_role(self.admin, "u-ana", "superuser")
        with self.assertRaises(ValidationError):
            self.directory.set_disabled(self.admin, "u-missing", True)

    def test_combined_update_is_all_or_nothing(self) -> None:
        with self.assertRaises(ValidationError):
            self.directory.update_user(self.admin, "u-ana", username="Renamed", role="superuser", disabled=True)
        unchanged = self.directory.get("u-ana")
        self.assertEqual(unchanged.username, "Ana Horvat")
        self.assertFalse(unchanged.disabled)

        updated = self.directory.update_user(self.admin, "u-ana", username="Ana K", role="admin")
        self.assertEqual((updated.username, updated.role), ("Ana K", Role.ADMIN))
        self.assertEqual(self.directory.get("u-ana").role, Role.ADMIN)

    def test_unknown_stored_role_falls_back_to_regular(self) -> None:
        self.store.set("users", "u-odd", {"email": "odd@example.com", "role": "owner"})
        with self.assertLogs("car_reservation.users", level="WARNING"):
            user = self.directory.get("u-odd")
        self.assertEqual(user.role, Role.REGULAR)
        self.assertEqual(user.username, "Odd")

    def test_subscription_delivers_user_list(self) -> None:
        snapshots: list[int] = []
        subscription = self.directory.subscribe(lambda users: snapshots.append(len(users)))
        self.directory.identity_for(Account("u-new", "new.person@example.com"))
        subscription.unsubscribe()
        self.assertEqual(snapshots, [2, 3])


class TestSignIn(DirectoryTestCase):
    def test_sign_in_returns_identity(self) -> None:
        provider = FakeProvider({"ivo@example.com": ("secret", Account("u-ivo", "ivo@example.com"))})
        identity = sign_in(provider, self.directory, "ivo@example.com", "secret")

        self.assertEqual(identity.user_id, "u-ivo")
        self.assertEqual(identity.role, Role.REGULAR)
        self.assertIsNotNone(self.directory.get("u-ivo"))

    def test_provider_failures_keep_their_reason(self) -> None:
        provider = FakeProvider({"ivo@example.com": ("secret", Account("u-ivo", "ivo@example.com"))})
        with self.assertRaises(AuthenticationError) as context:
            sign_in(provider, self.directory, "ivo@example.com", "wrong")
        self.assertEqual(context.exception.reason, AuthFailureReason.WRONG_PASSWORD)
        self.assertEqual(context.exception.message, "Incorrect password.")

    def test_disabled_user_is_refused(self) -> None:
        self.directory.set_disabled(self.admin, "u-ana", True)
        provider = FakeProvider({"ana.horvat@example.com": ("pw", Account("u-ana", "ana.horvat@example.com"))})

        with self.assertRaises(AuthenticationError) as context:
            sign_in(provider, self.directory, "ana.horvat@example.com", "pw")
        self.assertEqual(context.exception.reason, AuthFailureReason.DISABLED)

    def test_unexpected_provider_error_becomes_other(self) -> None:
        provider = FakeProvider({}, failure=ConnectionResetError("boom"))
        with self.assertLogs("car_reservation.auth", level="ERROR"):
            with self.assertRaises(AuthenticationError) as context:
                sign_in(provider, self.directory, "x@example.com", "pw")
        self.assertEqual(context.exception.reason, AuthFailureReason.OTHER)


if __name__ == "__main__":
    unittest.main()
