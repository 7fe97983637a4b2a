#!/usr/bin/env python3
"""Create pre-verified accounts in the configured MongoDB store.

  python scripts/create_user.py              # interactive, one user
  python scripts/create_user.py users.yml    # bulk seed from YAML
"""
from __future__ import annotations

import sys
from getpass import getpass
from pathlib import Path

from shopauth.auth.passwords import hash_password
from shopauth.errors import ShopAuthError
from shopauth.infra.mongo import MongoBackend
from shopauth.infra.seed import create_verified_user, seed_users
from shopauth.settings import Settings, configure_logging


def main() -> None:
    configure_logging()
    settings = Settings.from_env()
    if settings.store_backend != "mongo":
        raise SystemExit("Set SHOPAUTH_STORE=mongo and MONGODB_URI; the memory store lives only inside the server process")

    backend = MongoBackend(settings.mongodb_uri, settings.db_name)
    try:
        backend.ensure_indexes()
        if len(sys.argv) > 1:
            created = seed_users(backend.users, Path(sys.argv[1]))
            print(f"OK -> {len(created)} user(s) created")
            return

        email = input("Email: ").strip()
        name = input("Name: ").strip()
        role = (input("Role [user/admin]: ").strip().lower() or "user")

        pw1 = getpass("Password: ")
        pw2 = getpass("Repeat password: ")
        if pw1 != pw2:
            raise SystemExit("Passwords do not match")

        try:
            user = create_verified_user(
                backend.users, name=name, email=email, role=role, password_hash=hash_password(pw1)
            )
        except (ShopAuthError, ValueError) as e:
            raise SystemExit(str(e))
        print(f"OK -> {user.email} ({user.role.value}, id={user.id})")
    finally:
        backend.close()


if __name__ == "__main__":
    main()
