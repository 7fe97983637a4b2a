# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Records handled by the stores and the auth service."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Purpose(str, Enum):
    VERIFICATION = "verification"
    RESET = "reset"


PREFERENCE_FIELDS = ("notifications_enabled", "dark_mode", "newsletter_subscribed")
PROFILE_FIELDS = ("name", "image", "phone_number", "bio")


@dataclass(frozen=True)
class Preferences:
    notifications_enabled: bool = True
    dark_mode: bool = False
    newsletter_subscribed: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {k: bool(getattr(self, k)) for k in PREFERENCE_FIELDS}

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "Preferences":
        raw = raw or {}
        defaults = cls()
        return cls(**{k: bool(raw.get(k, getattr(defaults, k))) for k in PREFERENCE_FIELDS})


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    password_hash: str
    role: Role = Role.USER
    is_verified: bool = False
    preferences: Preferences = field(default_factory=Preferences)
    image: str = ""
    phone_number: str = ""
    bio: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def with_changes(self, changes: Dict[str, Any]) -> "User":
        """Apply a flat change set; `preferences.<flag>` keys update one flag."""
        prefs = self.preferences.to_dict()
        top: Dict[str, Any] = {}
        for key, value in changes.items():
            if key == "preferences":
                prefs.update(value.to_dict() if isinstance(value, Preferences) else dict(value or {}))
            elif key.startswith("preferences."):
                prefs[key.split(".", 1)[1]] = bool(value)
            else:
                top[key] = value
        return replace(self, preferences=Preferences.from_dict(prefs), **top)


@dataclass(frozen=True)
class OneTimeCode:
    email: str
    code: str
    purpose: Purpose
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    role: Role
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class LoginResult:
    user: User
    token: str

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def role(self) -> Role:
        return self.user.role


def normalize_email(email: str) -> str:
    return str(email or "").strip().lower()
