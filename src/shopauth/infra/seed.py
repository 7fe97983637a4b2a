# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Provisioning of pre-verified accounts (admins, staff) outside public signup.

Seed file format (YAML):

    users:
      admin@shop.example:
        name: Shop Admin
        role: admin
        password: change-me        # or password_hash: $argon2id$...
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml

from shopauth.auth.passwords import hash_password
from shopauth.errors import DuplicateEmail, ValidationFailed
from shopauth.infra.store import UserStore
from shopauth.models import Role, User, normalize_email

logger = logging.getLogger(__name__)


def create_verified_user(store: UserStore, *, name: str, email: str, role: str, password_hash: str) -> User:
    try:
        r = Role(str(role or "user").strip().lower())
    except ValueError as e:
        raise ValidationFailed(f"Invalid role: {role!r}") from e
    return store.create(
        User(
            id="",
            name=str(name or "").strip() or normalize_email(email),
            email=normalize_email(email),
            password_hash=password_hash,
            role=r,
            is_verified=True,
        )
    )


def load_seed_file(path: Path) -> Dict[str, Dict[str, Any]]:
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    users = (raw.get("users") or {}) if isinstance(raw, dict) else {}
    return {str(k): v for k, v in users.items() if isinstance(v, dict)}


def seed_users(store: UserStore, path: Path) -> List[str]:
    """Create every user in the seed file that does not exist yet. Returns created emails."""
    created: List[str] = []
    for email, udata in load_seed_file(path).items():
        ph = str(udata.get("password_hash") or "").strip()
        if not ph:
            plain = str(udata.get("password") or "")
            if not plain:
                logger.warning("Skipping %s: no password or password_hash", email)
                continue
            ph = hash_password(plain)
        try:
            user = create_verified_user(
                store,
                name=str(udata.get("name") or ""),
                email=email,
                role=str(udata.get("role") or "user"),
                password_hash=ph,
            )
        except DuplicateEmail:
            logger.info("Skipping %s: already registered", email)
            continue
        created.append(user.email)
    return created
