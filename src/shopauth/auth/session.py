# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from itsdangerous import BadData, URLSafeTimedSerializer

from shopauth.errors import ConfigError, InvalidSession
from shopauth.models import Role, SessionClaims

DEFAULT_MAX_AGE_SECONDS = 24 * 60 * 60  # 24 hours
DEFAULT_SALT = "shopauth.session.v1"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionIssuer:
    """Signs and checks stateless session tokens.

    The payload carries the user id, role and expiry; the signer adds the
    issue timestamp. Nothing is stored server side, so a token stays valid
    until it expires.
    """

    def __init__(
        self,
        secret_key: str,
        *,
        salt: str = DEFAULT_SALT,
        max_age: int = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret_key:
            raise ConfigError("Missing session secret key")
        self._serializer = URLSafeTimedSerializer(secret_key=secret_key, salt=salt)
        self.max_age = int(max_age)
        self._clock = clock

    def issue(self, user_id: str, role: Role) -> str:
        expires_at = self._clock() + timedelta(seconds=self.max_age)
        return self._serializer.dumps(
            {"u": str(user_id), "r": Role(role).value, "exp": int(expires_at.timestamp())}
        )

    def verify(self, token: Optional[str]) -> SessionClaims:
        if not token:
            raise InvalidSession()
        try:
            data, issued_at = self._serializer.loads(token, return_timestamp=True)
        except BadData as e:
            raise InvalidSession() from e

        if not isinstance(data, dict):
            raise InvalidSession()
        user_id = str(data.get("u") or "").strip()
        try:
            role = Role(data.get("r"))
            exp = int(data.get("exp"))
        except (TypeError, ValueError) as e:
            raise InvalidSession() from e
        if not user_id:
            raise InvalidSession()

        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        if self._clock() >= expires_at:
            raise InvalidSession("Session expired")
        return SessionClaims(user_id=user_id, role=role, issued_at=issued_at, expires_at=expires_at)
