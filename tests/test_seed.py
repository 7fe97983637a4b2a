from pathlib import Path

import pytest
import yaml

from shopauth.auth.passwords import hash_password
from shopauth.errors import ValidationFailed
from shopauth.infra.seed import create_verified_user, seed_users
from shopauth.models import Role


@pytest.fixture()
def seed_file(tmp_path: Path) -> Path:
    p = tmp_path / "users.yml"
    p.write_text(
        yaml.safe_dump(
            {
                "users": {
                    "Admin@Shop.test": {"name": "Admin", "role": "admin", "password": "admin-pass"},
                    "staff@shop.test": {"role": "user", "password_hash": hash_password("staff-pass")},
                    "broken@shop.test": {"role": "user"},
                }
            }
        ),
        encoding="utf-8",
    )
    return p


def test_seed_creates_verified_accounts(users, seed_file, service):
    created = seed_users(users, seed_file)
    assert sorted(created) == ["admin@shop.test", "staff@shop.test"]

    admin = users.get_by_email("admin@shop.test")
    assert admin.role == Role.ADMIN
    assert admin.is_verified is True
    assert service.login("admin@shop.test", "admin-pass").role == Role.ADMIN
    assert service.login("staff@shop.test", "staff-pass").role == Role.USER


def test_seed_is_idempotent(users, seed_file):
    seed_users(users, seed_file)
    assert seed_users(users, seed_file) == []
    assert len(users) == 2


def test_create_verified_user_rejects_unknown_role(users):
    with pytest.raises(ValidationFailed):
        create_verified_user(users, name="X", email="x@shop.test", role="owner", password_hash="h")
