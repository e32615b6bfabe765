"""
Mock user directory and session pointers.

This is a local account book for the storefront, not an authentication
system. Passwords are kept as salted PBKDF2 digests so that nothing
reversible is ever written to disk, but there is no rate limiting,
lockout or token handling.

Which user a session is logged in as is stored per session ID, so that
several sessions (browser tabs, API clients, tests) can be logged in as
different users at the same time.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
from typing import Any

from .models import (
    Address,
    AuthResult,
    Session,
    User,
    UserPreferences,
    UserProfile,
    _utc_now,
    generate_user_id,
)
from .storage import PREFERENCES_KEY, USER_KEY, USERS_KEY, KeyValueStore, parse_records

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100_000

EMAIL_TAKEN = "Email already registered"
INVALID_CREDENTIALS = "Invalid email or password"
NOT_AUTHENTICATED = "Not authenticated"
WRONG_PASSWORD = "Current password is incorrect"


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), PBKDF2_ITERATIONS
    )
    return digest.hex()


def _new_credentials(password: str) -> dict[str, str]:
    salt = os.urandom(16).hex()
    return {"salt": salt, "password_hash": _hash_password(password, salt)}


def _check_password(record: dict[str, Any], password: str) -> bool:
    salt = record.get("salt")
    expected = record.get("password_hash")
    if not salt or not expected:
        return False
    return hmac.compare_digest(_hash_password(password, salt), expected)


def _record_user_id(record: Any) -> str | None:
    user = record.get("user") if isinstance(record, dict) else None
    return user.get("id") if isinstance(user, dict) else None


def is_admin(user: User | None) -> bool:
    return user is not None and user.role == "admin"


class UserStore:
    """Manages the user directory, profiles and per-session logins."""

    def __init__(self, kv: KeyValueStore | None = None):
        self.kv = kv or KeyValueStore()

    # --- Directory ---

    def _find_record(self, records: list[dict], email: str) -> dict | None:
        wanted = _normalize_email(email)
        for record in records:
            user = record.get("user") if isinstance(record, dict) else None
            if isinstance(user, dict) and _normalize_email(str(user.get("email", ""))) == wanted:
                return record
        return None

    def list_users(self) -> list[User]:
        records = self.kv.get(USERS_KEY, [])
        return parse_records(USERS_KEY, records, lambda r: User.from_dict(r["user"]))

    def get_user(self, user_id: str) -> User | None:
        for user in self.list_users():
            if user.id == user_id:
                return user
        return None

    def register(self, session: Session, email: str, password: str, name: str) -> AuthResult:
        """
        Register a new user and log the session in as them.

        A duplicate email is reported as a failed result; nothing is written.
        """
        self.kv.delay(400)
        with self.kv.transaction(USERS_KEY, []) as txn:
            if self._find_record(txn.value, email) is not None:
                logger.info("Registration rejected for %s: email taken", email)
                return AuthResult.fail(EMAIL_TAKEN)

            user = User(
                id=generate_user_id(),
                email=_normalize_email(email),
                name=name,
                role="user",
                created_at=_utc_now(),
            )
            txn.value.append({"user": user.to_dict(), **_new_credentials(password)})

        self._set_current(session, user.id)
        logger.info("Registered user %s", user.id)
        return AuthResult.ok(user)

    def login(self, session: Session, email: str, password: str) -> AuthResult:
        self.kv.delay(400)
        record = self._find_record(self.kv.get(USERS_KEY, []), email)
        if (
            record is None
            or _record_user_id(record) is None
            or not _check_password(record, password)
        ):
            return AuthResult.fail(INVALID_CREDENTIALS)

        user = User.from_dict(record["user"])
        self._set_current(session, user.id)
        logger.info("Session %s logged in as %s", session.id, user.id)
        return AuthResult.ok(user)

    def logout(self, session: Session) -> None:
        self.kv.delay(100)
        with self.kv.transaction(USER_KEY, {}) as txn:
            txn.value.pop(session.id, None)

    def _set_current(self, session: Session, user_id: str) -> None:
        with self.kv.transaction(USER_KEY, {}) as txn:
            txn.value[session.id] = user_id

    def current_user(self, session: Session) -> User | None:
        """The user the session is logged in as, if any."""
        user_id = self.kv.get(USER_KEY, {}).get(session.id)
        if user_id is None:
            return None
        return self.get_user(user_id)

    def update_user(
        self,
        session: Session,
        name: str | None = None,
        email: str | None = None,
    ) -> AuthResult:
        """Update the current user's name and/or email."""
        self.kv.delay(300)
        current = self.current_user(session)
        if current is None:
            return AuthResult.fail(NOT_AUTHENTICATED)

        with self.kv.transaction(USERS_KEY, []) as txn:
            if email is not None:
                other = self._find_record(txn.value, email)
                if other is not None and _record_user_id(other) != current.id:
                    return AuthResult.fail(EMAIL_TAKEN)
            for record in txn.value:
                if _record_user_id(record) == current.id:
                    if name is not None:
                        record["user"]["name"] = name
                    if email is not None:
                        record["user"]["email"] = _normalize_email(email)
                    return AuthResult.ok(User.from_dict(record["user"]))

        return AuthResult.fail(NOT_AUTHENTICATED)

    def update_password(self, session: Session, current_password: str, new_password: str) -> AuthResult:
        self.kv.delay(300)
        current = self.current_user(session)
        if current is None:
            return AuthResult.fail(NOT_AUTHENTICATED)

        with self.kv.transaction(USERS_KEY, []) as txn:
            for record in txn.value:
                if _record_user_id(record) == current.id:
                    if not _check_password(record, current_password):
                        return AuthResult.fail(WRONG_PASSWORD)
                    record.update(_new_credentials(new_password))
                    return AuthResult.ok(current)

        return AuthResult.fail(WRONG_PASSWORD)

    # --- Profiles ---

    def get_profile(self, user_id: str) -> UserProfile | None:
        user = self.get_user(user_id)
        if user is None:
            return None
        data = self.kv.get(PREFERENCES_KEY, {}).get(user_id, {})
        return UserProfile(
            user=user,
            phone=data.get("phone"),
            addresses=[Address.from_dict(a) for a in data.get("addresses", [])],
            preferences=UserPreferences.from_dict(data.get("preferences", {})),
        )

    def update_profile(
        self,
        user_id: str,
        phone: str | None = None,
        preferences: UserPreferences | None = None,
    ) -> UserProfile | None:
        if self.get_user(user_id) is None:
            return None
        with self.kv.transaction(PREFERENCES_KEY, {}) as txn:
            data = txn.value.setdefault(user_id, {})
            if phone is not None:
                data["phone"] = phone
            if preferences is not None:
                data["preferences"] = preferences.to_dict()
        return self.get_profile(user_id)

    def add_address(self, user_id: str, address: Address) -> UserProfile | None:
        """Add an address. A default address clears the flag on the others."""
        if self.get_user(user_id) is None:
            return None
        with self.kv.transaction(PREFERENCES_KEY, {}) as txn:
            addresses = txn.value.setdefault(user_id, {}).setdefault("addresses", [])
            if address.is_default:
                for existing in addresses:
                    existing["is_default"] = False
            addresses.append(address.to_dict())
        return self.get_profile(user_id)

    def remove_address(self, user_id: str, address_id: str) -> UserProfile | None:
        if self.get_user(user_id) is None:
            return None
        with self.kv.transaction(PREFERENCES_KEY, {}) as txn:
            data = txn.value.setdefault(user_id, {})
            data["addresses"] = [a for a in data.get("addresses", []) if a.get("id") != address_id]
        return self.get_profile(user_id)
