import logging
import time

from fastapi.testclient import TestClient

from shopauth.app import create_app
from shopauth.models import Purpose
from shopauth.settings import Settings


def _signup(client, email="u@test.com", password="secret1", name="Buyer"):
    return client.post("/api/auth/signup", json={"name": name, "email": email, "password": password})


def _signup_and_verify(client, mailer, email="u@test.com", password="secret1"):
    assert _signup(client, email, password).status_code == 201
    r = client.post("/api/auth/verify-otp", json={"email": email, "code": mailer.last_code(email)})
    assert r.status_code == 200, r.text


def test_signup_verify_login_flow(client, mailer):
    r = _signup(client)
    assert r.status_code == 201, r.text
    assert r.json()["userId"]

    r = client.post("/api/auth/login", json={"email": "u@test.com", "password": "secret1"})
    assert r.status_code == 403
    assert r.json()["unverified"] is True

    r = client.post("/api/auth/verify-otp", json={"email": "u@test.com", "code": mailer.last_code("u@test.com")})
    assert r.status_code == 200

    r = client.post("/api/auth/login", json={"email": "u@test.com", "password": "secret1"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["user"]["email"] == "u@test.com"
    assert body["user"]["role"] == "user"
    assert body["user"]["isVerified"] is True
    assert "passwordHash" not in body["user"]

    cookie = r.headers["set-cookie"].lower()
    assert cookie.startswith("token=")
    assert "httponly" in cookie
    assert "samesite=strict" in cookie
    assert "max-age=86400" in cookie
    assert "path=/" in cookie


def test_public_signup_cannot_request_admin(client, users):
    r = client.post(
        "/api/auth/signup",
        json={"name": "Eve", "email": "eve@test.com", "password": "secret1", "role": "admin"},
    )
    assert r.status_code == 201
    assert users.get_by_email("eve@test.com").role.value == "user"


def test_duplicate_signup_is_400(client):
    assert _signup(client).status_code == 201
    r = _signup(client, email="U@TEST.COM")
    assert r.status_code == 400
    assert r.json()["message"] == "A user with this email already exists"


def test_validation_errors_are_400(client):
    r = _signup(client, password="123")
    assert r.status_code == 400
    assert "at least 6" in r.json()["message"]


def test_invalid_credentials_are_401_and_identical(client, mailer):
    _signup_and_verify(client, mailer)
    wrong = client.post("/api/auth/login", json={"email": "u@test.com", "password": "nope-nope"})
    unknown = client.post("/api/auth/login", json={"email": "ghost@test.com", "password": "nope-nope"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


def test_invalid_code_is_400(client):
    _signup(client)
    r = client.post("/api/auth/verify-otp", json={"email": "u@test.com", "code": "not-it"})
    assert r.status_code == 400


def test_profile_requires_session(client):
    r = client.get("/api/user/profile")
    assert r.status_code == 401


def test_profile_and_settings(client, mailer):
    _signup_and_verify(client, mailer)
    client.post("/api/auth/login", json={"email": "u@test.com", "password": "secret1"})

    r = client.get("/api/user/profile")
    assert r.status_code == 200, r.text
    assert r.json()["user"]["name"] == "Buyer"

    r = client.patch("/api/user/profile", json={"bio": "Sneakers", "phoneNumber": "+34 600"})
    assert r.status_code == 200
    assert r.json()["user"]["bio"] == "Sneakers"
    assert r.json()["user"]["phoneNumber"] == "+34 600"
    assert r.json()["user"]["name"] == "Buyer"

    r = client.patch("/api/user/settings", json={"preferences": {"darkMode": True}})
    assert r.status_code == 200
    assert r.json()["preferences"] == {
        "notificationsEnabled": True,
        "darkMode": True,
        "newsletterSubscribed": False,
    }


def test_change_password_endpoint(client, mailer):
    _signup_and_verify(client, mailer)
    client.post("/api/auth/login", json={"email": "u@test.com", "password": "secret1"})

    r = client.patch("/api/user/password", json={"currentPassword": "wrong1", "newPassword": "secret2"})
    assert r.status_code == 400
    assert r.json()["message"] == "Incorrect current password"

    r = client.patch("/api/user/password", json={"currentPassword": "secret1", "newPassword": "secret2"})
    assert r.status_code == 200

    r = client.post("/api/auth/login", json={"email": "u@test.com", "password": "secret2"})
    assert r.status_code == 200


def test_bearer_header_is_accepted(client, mailer):
    _signup_and_verify(client, mailer)
    token = client.post("/api/auth/login", json={"email": "u@test.com", "password": "secret1"}).cookies["token"]
    client.cookies.clear()

    r = client.get("/api/user/profile", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    r = client.get("/api/user/profile", headers={"Authorization": "Bearer forged"})
    assert r.status_code == 401


def test_logout_clears_cookie(client, mailer):
    _signup_and_verify(client, mailer)
    client.post("/api/auth/login", json={"email": "u@test.com", "password": "secret1"})
    assert client.get("/api/user/profile").status_code == 200

    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    assert "token=" in r.headers["set-cookie"]
    assert client.get("/api/user/profile").status_code == 401


def test_forgot_password_is_generic(client, mailer):
    _signup_and_verify(client, mailer)
    known = client.post("/api/auth/forgot-password", json={"email": "u@test.com"})
    unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@test.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert [p for _, _, p in mailer.sent].count(Purpose.RESET) == 1


def test_reset_password_endpoint(client, mailer):
    _signup_and_verify(client, mailer)
    client.post("/api/auth/forgot-password", json={"email": "u@test.com"})
    code = mailer.last_code("u@test.com", Purpose.RESET)

    r = client.post("/api/auth/reset-password", json={"email": "u@test.com", "code": code, "newPassword": "fresh-pass"})
    assert r.status_code == 200, r.text

    r = client.post("/api/auth/reset-password", json={"email": "u@test.com", "code": code, "newPassword": "fresh-pass"})
    assert r.status_code == 400

    assert client.post("/api/auth/login", json={"email": "u@test.com", "password": "secret1"}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "u@test.com", "password": "fresh-pass"}).status_code == 200


def test_resend_otp_is_generic(client, mailer):
    _signup(client)
    r = client.post("/api/auth/resend-otp", json={"email": "u@test.com"})
    assert r.status_code == 200
    assert len(mailer.sent) == 2


def test_app_builds_its_own_service_on_startup(caplog):
    app = create_app(settings=Settings(secret_key="startup-secret"))
    with caplog.at_level(logging.INFO, logger="shopauth.services.mail_service"):
        with TestClient(app) as c:
            r = c.post("/api/auth/signup", json={"name": "Buyer", "email": "u@test.com", "password": "secret1"})
            assert r.status_code == 201
    assert "Verification code for u@test.com" in caplog.text


def test_null_field_is_400_with_message(client):
    r = client.post("/api/auth/login", json={"email": None, "password": "x"})
    assert r.status_code == 400
    assert r.json()["message"].startswith("email:")
    assert "detail" not in r.json()


def test_malformed_json_is_400_with_message(client):
    r = client.post(
        "/api/auth/signup",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["message"]


def test_expired_codes_are_swept_in_background(service, codes, clock):
    service.signup("A", "a@test.com", "secret1")
    service.request_password_reset("a@test.com")
    assert len(codes) == 2
    clock.advance(16 * 60)

    app = create_app(settings=Settings(secret_key="sweep-secret", purge_interval=0.02), service=service)
    with TestClient(app):
        deadline = time.monotonic() + 3
        while len(codes) and time.monotonic() < deadline:
            time.sleep(0.02)
    assert len(codes) == 0


def test_live_codes_survive_the_sweep(service, codes, clock):
    service.signup("A", "a@test.com", "secret1")
    app = create_app(settings=Settings(secret_key="sweep-secret", purge_interval=0.02), service=service)
    with TestClient(app):
        time.sleep(0.1)
    assert len(codes) == 1
