# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Persistence contracts for users and one-time codes.

Two families implement them: the in-memory stores below (development and
tests) and the MongoDB stores in `shopauth.infra.mongo`. Both guarantee:
- one user per e-mail (case-insensitive), enforced on insert
- at most one live code per (email, purpose)
- consuming a code is an atomic find-and-delete
- expired codes are never returned, purged or not
"""

from __future__ import annotations

import secrets
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from shopauth.auth.codes import generate_code
from shopauth.auth.session import utcnow
from shopauth.errors import DuplicateEmail
from shopauth.models import OneTimeCode, Purpose, User, normalize_email


class UserStore(ABC):
    @abstractmethod
    def create(self, user: User) -> User:
        """Insert and return the stored user (with id and timestamps). Raises DuplicateEmail."""

    @abstractmethod
    def get_by_id(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    def update(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        """Apply `changes` (dotted `preferences.*` keys allowed); None if the user is gone."""


class CodeStore(ABC):
    # True when the backend deletes expired codes itself (TTL index).
    native_ttl = False

    @abstractmethod
    def put(self, record: OneTimeCode) -> OneTimeCode:
        """Insert or replace the code for (record.email, record.purpose)."""

    @abstractmethod
    def consume(self, email: str, code: str, purpose: Purpose, now: Optional[datetime] = None) -> Optional[OneTimeCode]:
        """Delete and return the matching live record, or None."""

    @abstractmethod
    def purge_expired(self, now: Optional[datetime] = None) -> int:
        ...

    def generate(self, email: str, purpose: Purpose, ttl: int, now: Optional[datetime] = None) -> OneTimeCode:
        now = now or utcnow()
        record = OneTimeCode(
            email=normalize_email(email),
            code=generate_code(),
            purpose=Purpose(purpose),
            expires_at=now + timedelta(seconds=int(ttl)),
        )
        return self.put(record)


class MemoryUserStore(UserStore):
    def __init__(self, clock=utcnow):
        self._lock = threading.Lock()
        self._by_id: Dict[str, User] = {}
        self._id_by_email: Dict[str, str] = {}
        self._clock = clock

    def create(self, user: User) -> User:
        email = normalize_email(user.email)
        now = self._clock()
        with self._lock:
            if email in self._id_by_email:
                raise DuplicateEmail()
            stored = user.with_changes(
                {"id": user.id or uuid.uuid4().hex, "email": email, "created_at": now, "updated_at": now}
            )
            self._by_id[stored.id] = stored
            self._id_by_email[email] = stored.id
            return stored

    def get_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._by_id.get(str(user_id or ""))

    def get_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            uid = self._id_by_email.get(normalize_email(email))
            return self._by_id.get(uid) if uid else None

    def update(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        with self._lock:
            current = self._by_id.get(str(user_id or ""))
            if current is None:
                return None
            changes = {k: v for k, v in changes.items() if k not in ("id", "email", "created_at")}
            changes["updated_at"] = self._clock()
            updated = current.with_changes(changes)
            self._by_id[updated.id] = updated
            return updated

    def __len__(self) -> int:
        return len(self._by_id)


class MemoryCodeStore(CodeStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._codes: Dict[tuple, OneTimeCode] = {}

    def put(self, record: OneTimeCode) -> OneTimeCode:
        key = (normalize_email(record.email), Purpose(record.purpose))
        with self._lock:
            self._codes[key] = record
        return record

    def consume(self, email: str, code: str, purpose: Purpose, now: Optional[datetime] = None) -> Optional[OneTimeCode]:
        now = now or utcnow()
        key = (normalize_email(email), Purpose(purpose))
        with self._lock:
            record = self._codes.get(key)
            if record is None or not secrets.compare_digest(record.code.encode(), str(code or "").strip().encode()):
                return None
            del self._codes[key]
        if record.is_expired(now):
            return None
        return record

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        with self._lock:
            stale = [k for k, r in self._codes.items() if r.is_expired(now)]
            for k in stale:
                del self._codes[k]
        return len(stale)

    def __len__(self) -> int:
        return len(self._codes)
