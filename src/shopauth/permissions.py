# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import Optional

from fastapi import Request

from shopauth.errors import InvalidSession, Unauthorized
from shopauth.models import SessionClaims
from shopauth.settings import Settings


def _extract_token(request: Request) -> Optional[str]:
    settings: Settings = request.app.state.settings
    # Cookie first (browser flows), then Authorization: Bearer <token>
    token = request.cookies.get(settings.cookie_name)
    if token:
        return token
    auth_header = request.headers.get("Authorization") or ""
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    return None


def load_claims_from_request(request: Request) -> Optional[SessionClaims]:
    token = _extract_token(request)
    if not token:
        return None
    try:
        return request.app.state.service.authenticate(token)
    except InvalidSession:
        return None


def current_user_optional(request: Request) -> Optional[SessionClaims]:
    claims = getattr(request.state, "claims", None)
    if claims is not None:
        return claims
    return load_claims_from_request(request)


def require_user(request: Request) -> SessionClaims:
    claims = current_user_optional(request)
    if claims:
        return claims
    raise Unauthorized()


def cookie_settings(settings: Settings) -> dict:
    return {"httponly": True, "samesite": "strict", "secure": settings.cookie_secure, "path": "/"}
