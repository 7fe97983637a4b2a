# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Runtime configuration read from the environment.

Every knob has an env var; `Settings.from_env()` is called once at startup and
the resulting object is handed to whatever needs it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from shopauth.errors import ConfigError

_TRUTHY = {"1", "true", "yes", "y"}


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    secret_key: str = ""
    session_salt: str = "shopauth.session.v1"
    session_max_age: int = 24 * 60 * 60
    cookie_name: str = "token"
    cookie_secure: bool = False
    verification_ttl: int = 10 * 60
    reset_ttl: int = 15 * 60
    purge_interval: float = 60.0
    store_backend: str = "memory"
    mongodb_uri: str = ""
    db_name: str = "shopauth"
    mail_backend: str = "log"
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: Optional[str] = None
    sender_password: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            secret_key=os.getenv("SHOPAUTH_SECRET_KEY") or os.getenv("SECRET_KEY") or "",
            session_salt=os.getenv("SHOPAUTH_SESSION_SALT", cls.session_salt),
            session_max_age=_env_int("SHOPAUTH_SESSION_MAX_AGE", cls.session_max_age),
            cookie_name=os.getenv("SHOPAUTH_COOKIE_NAME", cls.cookie_name),
            cookie_secure=_env_bool("SHOPAUTH_COOKIE_SECURE"),
            verification_ttl=_env_int("SHOPAUTH_VERIFICATION_TTL", cls.verification_ttl),
            reset_ttl=_env_int("SHOPAUTH_RESET_TTL", cls.reset_ttl),
            purge_interval=_env_float("SHOPAUTH_PURGE_INTERVAL", cls.purge_interval),
            store_backend=os.getenv("SHOPAUTH_STORE", cls.store_backend).strip().lower(),
            mongodb_uri=os.getenv("MONGODB_URI", ""),
            db_name=os.getenv("SHOPAUTH_DB_NAME", cls.db_name),
            mail_backend=os.getenv("SHOPAUTH_MAIL_BACKEND", cls.mail_backend).strip().lower(),
            smtp_server=os.getenv("SMTP_SERVER", cls.smtp_server),
            smtp_port=_env_int("SMTP_PORT", cls.smtp_port),
            sender_email=os.getenv("SENDER_EMAIL"),
            sender_password=os.getenv("SENDER_PASSWORD"),
            log_level=os.getenv("SHOPAUTH_LOG_LEVEL", cls.log_level).strip().upper(),
        )

    def require_secret(self) -> str:
        if not self.secret_key:
            raise ConfigError("Missing SHOPAUTH_SECRET_KEY (or SECRET_KEY) in the environment")
        return self.secret_key


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
