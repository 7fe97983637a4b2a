# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from shopauth.auth.session import SessionIssuer
from shopauth.errors import ConfigError, NotVerified, ShopAuthError
from shopauth.infra.store import MemoryCodeStore, MemoryUserStore
from shopauth.models import Purpose, Role, SessionClaims, User
from shopauth.permissions import cookie_settings, current_user_optional, require_user
from shopauth.services.auth_service import AuthService
from shopauth.services.mail_service import build_mailer
from shopauth.settings import Settings

logger = logging.getLogger(__name__)


# ------------------ Payloads ------------------


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupIn(_Payload):
    name: str = ""
    email: str = ""
    password: str = ""


class LoginIn(_Payload):
    email: str = ""
    password: str = ""


class EmailIn(_Payload):
    email: str = ""


class CodeIn(_Payload):
    email: str = ""
    code: str = ""


class ResetIn(_Payload):
    email: str = ""
    code: str = ""
    new_password: str = ""


class PasswordChangeIn(_Payload):
    current_password: str = ""
    new_password: str = ""


class ProfileIn(_Payload):
    name: Optional[str] = None
    image: Optional[str] = None
    phone_number: Optional[str] = None
    bio: Optional[str] = None


class PreferencesIn(_Payload):
    notifications_enabled: Optional[bool] = None
    dark_mode: Optional[bool] = None
    newsletter_subscribed: Optional[bool] = None


class SettingsIn(_Payload):
    preferences: PreferencesIn = PreferencesIn()


def _preferences_public(user: User) -> Dict[str, bool]:
    return {to_camel(k): v for k, v in user.preferences.to_dict().items()}


def _user_public(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "isVerified": user.is_verified,
        "image": user.image,
        "phoneNumber": user.phone_number,
        "bio": user.bio,
        "preferences": _preferences_public(user),
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
    }


# ------------------ Wiring ------------------


def build_service(settings: Settings):
    """Build the service and its persistence handle. Returns (service, closer)."""
    backend = None
    if settings.store_backend == "memory":
        users, codes = MemoryUserStore(), MemoryCodeStore()
    elif settings.store_backend == "mongo":
        from shopauth.infra.mongo import MongoBackend

        backend = MongoBackend(settings.mongodb_uri, settings.db_name)
        backend.ensure_indexes()
        users, codes = backend.users, backend.codes
    else:
        raise ConfigError(f"Unknown store backend: {settings.store_backend!r}")

    issuer = SessionIssuer(
        settings.require_secret(),
        salt=settings.session_salt,
        max_age=settings.session_max_age,
    )
    service = AuthService(
        users=users,
        codes=codes,
        issuer=issuer,
        mailer=build_mailer(settings),
        settings=settings,
    )
    return service, (backend.close if backend is not None else None)


async def purge_codes_periodically(service: AuthService, interval: float) -> None:
    """Sweep expired codes from stores that have no TTL of their own."""
    while True:
        await asyncio.sleep(interval)
        try:
            await run_in_threadpool(service.purge_expired_codes)
        except ShopAuthError:
            logger.exception("Expired code sweep failed; retrying in %ss", interval)


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    err = errors[0]
    field = ".".join(p for p in err.get("loc", ()) if isinstance(p, str) and p != "body")
    msg = str(err.get("msg") or "Invalid value")
    return f"{field}: {msg}" if field else msg


def create_app(settings: Optional[Settings] = None, service: Optional[AuthService] = None) -> FastAPI:
    if settings is None:
        settings = service.settings if service is not None else Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        closer = None
        if app.state.service is None:
            app.state.service, closer = build_service(settings)
            logger.info("Auth service started (store=%s, mail=%s)", settings.store_backend, settings.mail_backend)
        sweeper = None
        svc: AuthService = app.state.service
        if not svc.codes.native_ttl and settings.purge_interval > 0:
            sweeper = asyncio.create_task(purge_codes_periodically(svc, settings.purge_interval))
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with suppress(asyncio.CancelledError):
                    await sweeper
            if closer is not None:
                closer()

    app = FastAPI(title="shopauth", lifespan=lifespan)
    app.state.settings = settings
    app.state.service = service

    @app.middleware("http")
    async def _session_middleware(request: Request, call_next):
        request.state.claims = current_user_optional(request) if request.app.state.service else None
        return await call_next(request)

    @app.exception_handler(ShopAuthError)
    async def _auth_error_handler(request: Request, exc: ShopAuthError):
        body: Dict[str, Any] = {"message": exc.message}
        if isinstance(exc, NotVerified):
            body["unverified"] = True
        return JSONResponse(body, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({"message": _first_validation_message(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def _unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"message": "Server error"}, status_code=500)

    def _service(request: Request) -> AuthService:
        return request.app.state.service

    # ------------------ Auth routes ------------------

    @app.post("/api/auth/signup", status_code=201)
    def signup(payload: SignupIn, svc: AuthService = Depends(_service)):
        # Public signup never grants admin; see scripts/create_user.py.
        user_id = svc.signup(payload.name, payload.email, payload.password, Role.USER)
        return {"message": "User registered successfully. Please verify your email.", "userId": user_id}

    @app.post("/api/auth/verify-otp")
    def verify_otp(payload: CodeIn, svc: AuthService = Depends(_service)):
        svc.verify_code(payload.email, payload.code, Purpose.VERIFICATION)
        return {"message": "Account verified successfully. You can now login."}

    @app.post("/api/auth/resend-otp")
    def resend_otp(payload: EmailIn, svc: AuthService = Depends(_service)):
        return {"message": svc.resend_verification(payload.email)}

    @app.post("/api/auth/login")
    def login(payload: LoginIn, svc: AuthService = Depends(_service)):
        result = svc.login(payload.email, payload.password)
        resp = JSONResponse({"message": "Login successful", "user": _user_public(result.user)})
        resp.set_cookie(
            settings.cookie_name,
            result.token,
            max_age=settings.session_max_age,
            **cookie_settings(settings),
        )
        return resp

    @app.post("/api/auth/logout")
    def logout():
        resp = JSONResponse({"message": "Logged out"})
        resp.delete_cookie(settings.cookie_name, path="/")
        return resp

    @app.post("/api/auth/forgot-password")
    def forgot_password(payload: EmailIn, svc: AuthService = Depends(_service)):
        return {"message": svc.request_password_reset(payload.email)}

    @app.post("/api/auth/reset-password")
    def reset_password(payload: ResetIn, svc: AuthService = Depends(_service)):
        svc.reset_password(payload.email, payload.code, payload.new_password)
        return {"message": "Password updated successfully. You can now login."}

    # ------------------ Settings panel ------------------

    @app.get("/api/user/profile")
    def get_profile(claims: SessionClaims = Depends(require_user), svc: AuthService = Depends(_service)):
        return {"user": _user_public(svc.get_profile(claims.user_id))}

    @app.patch("/api/user/profile")
    def update_profile(
        payload: ProfileIn,
        claims: SessionClaims = Depends(require_user),
        svc: AuthService = Depends(_service),
    ):
        user = svc.update_profile(claims.user_id, payload.model_dump())
        return {"message": "Profile updated successfully", "user": _user_public(user)}

    @app.patch("/api/user/password")
    def change_password(
        payload: PasswordChangeIn,
        claims: SessionClaims = Depends(require_user),
        svc: AuthService = Depends(_service),
    ):
        svc.change_password(claims.user_id, payload.current_password, payload.new_password)
        return {"message": "Password updated successfully"}

    @app.patch("/api/user/settings")
    def update_settings(
        payload: SettingsIn,
        claims: SessionClaims = Depends(require_user),
        svc: AuthService = Depends(_service),
    ):
        user = svc.update_preferences(claims.user_id, payload.preferences.model_dump())
        return {"message": "Settings updated successfully", "preferences": _preferences_public(user)}

    return app


app = create_app()
