# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""MongoDB-backed stores.

One `MongoBackend` is built at process start and shared; it owns the client,
creates the indexes once, and hands out the two stores. Uniqueness and code
expiry live in the database:
- `users.email` unique index
- `otps.(email, purpose)` unique index (one live code per purpose)
- `otps.expires_at` TTL index (native purge)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from shopauth.auth.session import utcnow
from shopauth.errors import ConfigError, DuplicateEmail, StoreUnavailable
from shopauth.infra.store import CodeStore, UserStore
from shopauth.models import OneTimeCode, Preferences, Purpose, Role, User, normalize_email

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
CODES_COLLECTION = "otps"


def _to_bson_dt(dt: datetime) -> datetime:
    """BSON dates are naive UTC."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _from_bson_dt(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_bson_value(v: Any) -> Any:
    if isinstance(v, Enum):
        return v.value
    if isinstance(v, datetime):
        return _to_bson_dt(v)
    if isinstance(v, Preferences):
        return v.to_dict()
    return v


def _object_id(user_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(str(user_id))
    except (InvalidId, TypeError):
        return None


@contextmanager
def _guard(op: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as e:
        logger.exception("MongoDB failure during %s", op)
        raise StoreUnavailable() from e


def _doc_to_user(doc: Dict[str, Any]) -> User:
    return User(
        id=str(doc["_id"]),
        name=str(doc.get("name") or ""),
        email=str(doc.get("email") or ""),
        password_hash=str(doc.get("password_hash") or ""),
        role=Role(doc.get("role") or Role.USER.value),
        is_verified=bool(doc.get("is_verified", False)),
        preferences=Preferences.from_dict(doc.get("preferences")),
        image=str(doc.get("image") or ""),
        phone_number=str(doc.get("phone_number") or ""),
        bio=str(doc.get("bio") or ""),
        created_at=_from_bson_dt(doc.get("created_at")),
        updated_at=_from_bson_dt(doc.get("updated_at")),
    )


def _doc_to_code(doc: Dict[str, Any]) -> OneTimeCode:
    return OneTimeCode(
        email=str(doc["email"]),
        code=str(doc["code"]),
        purpose=Purpose(doc["purpose"]),
        expires_at=_from_bson_dt(doc["expires_at"]),
    )


class MongoUserStore(UserStore):
    def __init__(self, collection, clock=utcnow):
        self._col = collection
        self._clock = clock

    def create(self, user: User) -> User:
        now = self._clock()
        doc = {
            "name": user.name,
            "email": normalize_email(user.email),
            "password_hash": user.password_hash,
            "role": Role(user.role).value,
            "is_verified": bool(user.is_verified),
            "preferences": user.preferences.to_dict(),
            "image": user.image,
            "phone_number": user.phone_number,
            "bio": user.bio,
            "created_at": _to_bson_dt(now),
            "updated_at": _to_bson_dt(now),
        }
        with _guard("user insert"):
            try:
                result = self._col.insert_one(doc)
            except DuplicateKeyError as e:
                raise DuplicateEmail() from e
        doc["_id"] = result.inserted_id
        return _doc_to_user(doc)

    def get_by_id(self, user_id: str) -> Optional[User]:
        oid = _object_id(user_id)
        if oid is None:
            return None
        with _guard("user lookup"):
            doc = self._col.find_one({"_id": oid})
        return _doc_to_user(doc) if doc else None

    def get_by_email(self, email: str) -> Optional[User]:
        with _guard("user lookup"):
            doc = self._col.find_one({"email": normalize_email(email)})
        return _doc_to_user(doc) if doc else None

    def update(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        oid = _object_id(user_id)
        if oid is None:
            return None
        fields = {k: _to_bson_value(v) for k, v in changes.items() if k not in ("id", "_id", "email", "created_at")}
        fields["updated_at"] = _to_bson_dt(self._clock())
        with _guard("user update"):
            doc = self._col.find_one_and_update(
                {"_id": oid},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        return _doc_to_user(doc) if doc else None


class MongoCodeStore(CodeStore):
    native_ttl = True

    def __init__(self, collection):
        self._col = collection

    def put(self, record: OneTimeCode) -> OneTimeCode:
        key = {"email": normalize_email(record.email), "purpose": Purpose(record.purpose).value}
        update = {"$set": {"code": record.code, "expires_at": _to_bson_dt(record.expires_at)}}
        with _guard("code upsert"):
            try:
                self._col.update_one(key, update, upsert=True)
            except DuplicateKeyError:
                # A concurrent upsert inserted the document first; this one now matches it.
                self._col.update_one(key, update, upsert=True)
        return record

    def consume(self, email: str, code: str, purpose: Purpose, now: Optional[datetime] = None) -> Optional[OneTimeCode]:
        now = now or utcnow()
        with _guard("code consume"):
            doc = self._col.find_one_and_delete(
                {
                    "email": normalize_email(email),
                    "code": str(code or "").strip(),
                    "purpose": Purpose(purpose).value,
                }
            )
        if not doc:
            return None
        record = _doc_to_code(doc)
        if record.is_expired(now):
            return None
        return record

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        with _guard("code purge"):
            result = self._col.delete_many({"expires_at": {"$lte": _to_bson_dt(now)}})
        return int(result.deleted_count)


class MongoBackend:
    """Owns the MongoDB client for the lifetime of the process."""

    def __init__(self, uri: str = "", db_name: str = "shopauth", *, client=None, clock=utcnow):
        if client is None:
            if not uri:
                raise ConfigError("Missing MONGODB_URI for the mongo store backend")
            client = MongoClient(uri)
        self.client = client
        self.db = client[db_name]
        self.users = MongoUserStore(self.db[USERS_COLLECTION], clock=clock)
        self.codes = MongoCodeStore(self.db[CODES_COLLECTION])

    def ensure_indexes(self) -> None:
        with _guard("index creation"):
            self.db[USERS_COLLECTION].create_index([("email", ASCENDING)], unique=True)
            self.db[CODES_COLLECTION].create_index(
                [("email", ASCENDING), ("purpose", ASCENDING)], unique=True
            )
            self.db[CODES_COLLECTION].create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
        logger.info("MongoDB indexes ensured on %s", self.db.name)

    def close(self) -> None:
        self.client.close()
