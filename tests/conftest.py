import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from shopauth.app import create_app
from shopauth.auth.session import SessionIssuer
from shopauth.infra.store import MemoryCodeStore, MemoryUserStore
from shopauth.models import Purpose
from shopauth.services.auth_service import AuthService
from shopauth.services.mail_service import CodeMailer
from shopauth.settings import Settings

SECRET = "test-secret-key"


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class RecordingMailer(CodeMailer):
    """Keeps every code it is asked to deliver."""

    def __init__(self):
        self.sent: List[Tuple[str, str, Purpose]] = []

    def send_code(self, email, code, purpose, ttl, name=""):
        self.sent.append((email, code, Purpose(purpose)))
        return True

    def last_code(self, email: str, purpose: Purpose = Purpose.VERIFICATION) -> str:
        for e, code, p in reversed(self.sent):
            if e == email and p == purpose:
                return code
        raise AssertionError(f"No {purpose.value} code sent to {email}")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> Settings:
    return Settings(secret_key=SECRET)


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def users(clock) -> MemoryUserStore:
    return MemoryUserStore(clock=clock)


@pytest.fixture()
def codes() -> MemoryCodeStore:
    return MemoryCodeStore()


@pytest.fixture()
def issuer(clock) -> SessionIssuer:
    return SessionIssuer(SECRET, clock=clock)


@pytest.fixture()
def service(users, codes, issuer, mailer, settings, clock) -> AuthService:
    return AuthService(users=users, codes=codes, issuer=issuer, mailer=mailer, settings=settings, clock=clock)


@pytest.fixture()
def client(service) -> TestClient:
    return TestClient(create_app(service=service))


@pytest.fixture()
def verified_user(service, mailer):
    """A verified account: returns (email, password, user_id)."""
    email, password = "buyer@shop.test", "secret1"
    user_id = service.signup("Buyer", email, password)
    service.verify_code(email, mailer.last_code(email), Purpose.VERIFICATION)
    return email, password, user_id
