# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Credential and session lifecycle.

signup -> verify_code(verification) -> login -> session
request_password_reset -> reset_password
change_password / update_profile / update_preferences for the session owner

The service speaks plain values and raises `shopauth.errors` exceptions; HTTP
status codes and cookies belong to `shopauth.app`.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from shopauth.auth.passwords import burn_verify, hash_password, verify_password
from shopauth.auth.session import SessionIssuer, utcnow
from shopauth.errors import (
    IncorrectPassword,
    InvalidCredentials,
    InvalidOrExpiredCode,
    NotFound,
    NotVerified,
    ValidationFailed,
)
from shopauth.infra.store import CodeStore, UserStore
from shopauth.models import (
    PREFERENCE_FIELDS,
    PROFILE_FIELDS,
    LoginResult,
    Purpose,
    Role,
    SessionClaims,
    User,
    normalize_email,
)
from shopauth.services.mail_service import CodeMailer
from shopauth.settings import Settings

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]{2,}$")
MIN_PASSWORD_LENGTH = 6

RESET_ACK = "If an account exists with this email, we have sent a reset code."
RESEND_ACK = "If an account is waiting for verification, we have sent a new code."


def _validate_email(email: str) -> str:
    e = normalize_email(email)
    if not EMAIL_RE.match(e):
        raise ValidationFailed("Please provide a valid email address")
    return e


def _validate_password(password: str) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


class AuthService:
    def __init__(
        self,
        *,
        users: UserStore,
        codes: CodeStore,
        issuer: SessionIssuer,
        mailer: CodeMailer,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.users = users
        self.codes = codes
        self.issuer = issuer
        self.mailer = mailer
        self.settings = settings or Settings()
        self._clock = clock

    # ------------------ Codes ------------------

    def _ttl(self, purpose: Purpose) -> int:
        if purpose == Purpose.RESET:
            return self.settings.reset_ttl
        return self.settings.verification_ttl

    def _issue_code(self, user: User, purpose: Purpose) -> None:
        ttl = self._ttl(purpose)
        record = self.codes.generate(user.email, purpose, ttl, now=self._clock())
        if not self.mailer.send_code(user.email, record.code, purpose, ttl, name=user.name):
            logger.warning("Could not deliver %s code to user %s", purpose.value, user.id)

    def verify_code(self, email: str, code: str, purpose: Purpose) -> Optional[User]:
        """Consume a code. Returns the verified user for purpose=verification."""
        try:
            purpose = Purpose(purpose)
        except ValueError as e:
            raise ValidationFailed(f"Invalid code purpose: {purpose!r}") from e
        now = self._clock()
        record = self.codes.consume(email, code, purpose, now=now)
        # Stores already hide expired codes; check again against our own clock.
        if record is None or record.is_expired(now):
            raise InvalidOrExpiredCode()

        if purpose != Purpose.VERIFICATION:
            return None
        user = self.users.get_by_email(record.email)
        if user is None:
            raise NotFound()
        user = self.users.update(user.id, {"is_verified": True})
        if user is None:
            raise NotFound()
        logger.info("User %s verified their email", user.id)
        return user

    def purge_expired_codes(self) -> int:
        n = self.codes.purge_expired(now=self._clock())
        if n:
            logger.info("Purged %d expired codes", n)
        return n

    # ------------------ Signup / login ------------------

    def signup(self, name: str, email: str, password: str, role: Any = Role.USER) -> str:
        name = str(name or "").strip()
        if not name:
            raise ValidationFailed("Please provide a name")
        email = _validate_email(email)
        _validate_password(password)
        try:
            role = Role(role or Role.USER)
        except ValueError as e:
            raise ValidationFailed(f"Invalid role: {role!r}") from e

        user = self.users.create(
            User(id="", name=name, email=email, password_hash=hash_password(password), role=role)
        )
        logger.info("Registered user %s (%s)", user.id, user.role.value)
        self._issue_code(user, Purpose.VERIFICATION)
        return user.id

    def resend_verification(self, email: str) -> str:
        user = self.users.get_by_email(email)
        if user is not None and not user.is_verified:
            self._issue_code(user, Purpose.VERIFICATION)
        return RESEND_ACK

    def login(self, email: str, password: str) -> LoginResult:
        user = self.users.get_by_email(email)
        if user is None:
            burn_verify(password)
            raise InvalidCredentials()
        if not verify_password(user.password_hash, password):
            raise InvalidCredentials()
        # Only reached with the right password, so it reveals nothing new.
        if not user.is_verified:
            raise NotVerified()

        token = self.issuer.issue(user.id, user.role)
        logger.info("User %s logged in", user.id)
        return LoginResult(user=user, token=token)

    def authenticate(self, token: Optional[str]) -> SessionClaims:
        return self.issuer.verify(token)

    # ------------------ Passwords ------------------

    def request_password_reset(self, email: str) -> str:
        user = self.users.get_by_email(email)
        if user is not None:
            self._issue_code(user, Purpose.RESET)
        return RESET_ACK

    def reset_password(self, email: str, code: str, new_password: str) -> None:
        _validate_password(new_password)
        self.verify_code(email, code, Purpose.RESET)
        user = self.users.get_by_email(email)
        if user is None or self.users.update(user.id, {"password_hash": hash_password(new_password)}) is None:
            raise InvalidOrExpiredCode()
        logger.info("Password reset for user %s", user.id)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFound()
        if not verify_password(user.password_hash, current_password):
            raise IncorrectPassword()
        _validate_password(new_password)
        self.users.update(user.id, {"password_hash": hash_password(new_password)})
        logger.info("Password changed for user %s", user.id)

    # ------------------ Settings panel ------------------

    def get_profile(self, user_id: str) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFound()
        return user

    def update_profile(self, user_id: str, fields: Mapping[str, Any]) -> User:
        changes: Dict[str, Any] = {}
        for key in PROFILE_FIELDS:
            value = fields.get(key)
            if value is None:
                continue
            changes[key] = str(value).strip()
        if "name" in changes and not changes["name"]:
            raise ValidationFailed("Please provide a name")
        if not changes:
            return self.get_profile(user_id)

        user = self.users.update(user_id, changes)
        if user is None:
            raise NotFound()
        return user

    def update_preferences(self, user_id: str, preferences: Mapping[str, Any]) -> User:
        changes = {
            f"preferences.{key}": bool(preferences[key])
            for key in PREFERENCE_FIELDS
            if preferences.get(key) is not None
        }
        if not changes:
            return self.get_profile(user_id)

        user = self.users.update(user_id, changes)
        if user is None:
            raise NotFound()
        return user
