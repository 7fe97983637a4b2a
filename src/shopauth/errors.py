# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Error taxonomy shared by the stores, the auth service and the HTTP layer."""

from __future__ import annotations

from typing import Optional


class ShopAuthError(Exception):
    """Base error. `message` is safe to show to the caller."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(ShopAuthError):
    status_code = 400
    default_message = "Invalid input"


class DuplicateEmail(ShopAuthError):
    status_code = 400
    default_message = "A user with this email already exists"


class InvalidOrExpiredCode(ShopAuthError):
    status_code = 400
    default_message = "Invalid or expired code"


class IncorrectPassword(ShopAuthError):
    status_code = 400
    default_message = "Incorrect current password"


class InvalidCredentials(ShopAuthError):
    status_code = 401
    default_message = "Invalid email or password"


class InvalidSession(ShopAuthError):
    status_code = 401
    default_message = "Invalid or expired session"


class Unauthorized(ShopAuthError):
    status_code = 401
    default_message = "Unauthorized"


class NotVerified(ShopAuthError):
    status_code = 403
    default_message = "Please verify your email before logging in"


class NotFound(ShopAuthError):
    status_code = 404
    default_message = "User not found"


class StoreUnavailable(ShopAuthError):
    """Persistence failure. The detail goes to the log, never to the caller."""

    status_code = 500
    default_message = "Server error"


class ConfigError(ShopAuthError):
    """Startup misconfiguration (missing secret, unknown backend...)."""
