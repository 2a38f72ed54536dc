from __future__ import annotations

from enum import Enum
from typing import Protocol
import logging

from .users import Account, Identity, UserDirectory

logger = logging.getLogger("car_reservation.auth")


class AuthFailureReason(str, Enum):
    USER_NOT_FOUND = "user_not_found"
    WRONG_PASSWORD = "wrong_password"
    INVALID_EMAIL = "invalid_email"
    DISABLED = "disabled"
    NETWORK_FAILURE = "network_failure"
    RATE_LIMITED = "rate_limited"
    OTHER = "other"


AUTH_FAILURE_MESSAGES = {
    AuthFailureReason.USER_NOT_FOUND: "No user was found with this email address.",
    AuthFailureReason.WRONG_PASSWORD: "Incorrect password.",
    AuthFailureReason.INVALID_EMAIL: "Invalid email address.",
    AuthFailureReason.DISABLED: "This user account has been disabled.",
    AuthFailureReason.NETWORK_FAILURE: "A network error occurred. Check your connection.",
    AuthFailureReason.RATE_LIMITED: "Too many failed sign-in attempts. Please try again later.",
    AuthFailureReason.OTHER: "Sign-in failed. Please try again.",
}


class AuthenticationError(Exception):
    def __init__(self, reason: AuthFailureReason) -> None:
        super().__init__(AUTH_FAILURE_MESSAGES[reason])
        self.reason = reason

    @property
    def message(self) -> str:
        return str(self)


class IdentityProvider(Protocol):
    def authenticate(self, email: str, password: str) -> Account:
        ...


def sign_in(provider: IdentityProvider, directory: UserDirectory, email: str, password: str) -> Identity:
    """Authenticate with the provider and resolve the acting identity.

    First sign-in provisions a regular user record. Disabled records are
    refused with the ``disabled`` reason even though the provider accepted
    the credentials.
    """
    try:
        account = provider.authenticate(email, password)
    except AuthenticationError:
        raise
    except Exception as error:
        logger.exception("Identity provider failed for %s", email)
        raise AuthenticationError(AuthFailureReason.OTHER) from error

    identity = directory.identity_for(account)
    if not identity.is_active:
        logger.info("Refused sign-in for disabled user %s", account.user_id)
        raise AuthenticationError(AuthFailureReason.DISABLED)
    return identity
