from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable
import logging

from .booking import Reservation
from .errors import AuthorizationError, ValidationError
from .yaml_store import Document, DocumentNotFoundError, Subscription, YamlDocumentStore

logger = logging.getLogger("car_reservation.users")

USERS_COLLECTION = "users"
UNKNOWN_USER = "Unknown User"


class Role(str, Enum):
    ADMIN = "admin"
    REGULAR = "regular"


@dataclass(frozen=True)
class User:
    id: str
    email: str
    username: str
    role: Role = Role.REGULAR
    disabled: bool = False

    @property
    def effective_role(self) -> Role | None:
        return None if self.disabled else self.role

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "username": self.username,
            "role": self.role.value,
            "disabled": self.disabled,
        }

    @staticmethod
    def from_document(document: Document) -> "User":
        raw_role = str(document.get("role") or Role.REGULAR.value)
        try:
            role = Role(raw_role)
        except ValueError:
            logger.warning("User %s has unknown role %r, treating as regular", document.doc_id, raw_role)
            role = Role.REGULAR
        email = str(document.get("email") or "")
        return User(
            id=document.doc_id,
            email=email,
            username=str(document.get("username") or format_username(email)),
            role=role,
            disabled=bool(document.get("disabled", False)),
        )


@dataclass(frozen=True)
class Account:
    """What the identity provider vouches for after a successful sign-in."""

    user_id: str
    email: str


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str
    display_name: str
    role: Role | None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_active(self) -> bool:
        return self.role is not None

    def can_manage(self, reservation: Reservation) -> bool:
        if not self.is_active:
            return False
        return self.is_admin or reservation.is_owned_by(self.user_id)


def format_username(email: str) -> str:
    """Derive a display name from the local part of an email address.

    ``ana.horvat@example.com`` becomes ``Ana Horvat``; a local part without
    dots is simply capitalised.
    """
    local_part = (email or "").split("@")[0]
    if not local_part:
        return ""
    parts = local_part.split(".")
    if len(parts) >= 2:
        return f"{parts[0].capitalize()} {parts[1].capitalize()}"
    return local_part.capitalize()


def display_name_for(user: User | None, email: str | None) -> str:
    if user is not None and user.username:
        return user.username
    if email:
        return format_username(email) or UNKNOWN_USER
    return UNKNOWN_USER


class UserDirectory:
    def __init__(self, store: YamlDocumentStore, collection: str = USERS_COLLECTION) -> None:
        self.store = store
        self.collection = collection

    def get(self, user_id: str) -> User | None:
        try:
            return User.from_document(self.store.get_one(self.collection, user_id))
        except DocumentNotFoundError:
            return None

    def all_users(self) -> list[User]:
        users = [User.from_document(document) for document in self.store.read_all(self.collection)]
        return sorted(users, key=lambda user: (user.username.lower(), user.email))

    def subscribe(self, callback: Callable[[list[User]], None]) -> Subscription:
        return self.store.subscribe_all(
            self.collection,
            lambda documents: callback([User.from_document(document) for document in documents]),
        )

    def ensure_user(self, account: Account) -> User:
        existing = self.get(account.user_id)
        if existing is not None:
            return existing
        if not account.email:
            raise ValidationError("The account has no email address and cannot be registered.")

        user = User(
            id=account.user_id,
            email=account.email,
            username=format_username(account.email),
        )
        self.store.set(self.collection, user.id, user.to_dict())
        logger.info("Registered user %s as %s", user.id, user.role.value)
        return user

    def identity_for(self, account: Account) -> Identity:
        user = self.ensure_user(account)
        return Identity(
            user_id=user.id,
            email=user.email,
            display_name=display_name_for(user, account.email),
            role=user.effective_role,
        )

    def list_users(self, acting: Identity) -> list[User]:
        _require_admin(acting)
        return self.all_users()

    def update_user(
        self,
        acting: Identity,
        user_id: str,
        *,
        username: str | None = None,
        role: Role | str | None = None,
        disabled: bool | None = None,
    ) -> User:
        """Apply every requested change in one write, or none if any is invalid."""
        _require_admin(acting)
        changes: dict[str, Any] = {}
        if username is not None:
            username = username.strip()
            if not username:
                raise ValidationError("Username must not be empty.")
            changes["username"] = username
        if role is not None:
            try:
                changes["role"] = Role(role)
            except ValueError as error:
                raise ValidationError(f"Unknown role: {role!r}") from error
        if disabled is not None:
            changes["disabled"] = bool(disabled)

        user = self._require_user(user_id)
        if not changes:
            return user
        return self._save(replace(user, **changes))

    def rename_user(self, acting: Identity, user_id: str, username: str) -> User:
        return self.update_user(acting, user_id, username=username or "")

    def set_role(self, acting: Identity, user_id: str, role: Role | str) -> User:
        return self.update_user(acting, user_id, role=role)

    def set_disabled(self, acting: Identity, user_id: str, disabled: bool) -> User:
        return self.update_user(acting, user_id, disabled=bool(disabled))

    def _require_user(self, user_id: str) -> User:
        user = self.get(user_id)
        if user is None:
            raise ValidationError(f"User {user_id!r} does not exist.")
        return user

    def _save(self, user: User) -> User:
        self.store.update(self.collection, user.id, user.to_dict())
        logger.info("Updated user %s (role=%s, disabled=%s)", user.id, user.role.value, user.disabled)
        return user


def _require_admin(acting: Identity) -> None:
    if not acting.is_admin:
        raise AuthorizationError("Only administrators can manage users.")
