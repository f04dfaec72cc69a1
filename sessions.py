"""
Server-side sessions

The client only holds an opaque session id in a cookie. Records live in a
store with a fixed time-to-live: memory by default, MongoDB when a database
is configured.
"""
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from pymongo.collection import Collection
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from config import (
    COOKIE_DOMAIN,
    IS_PRODUCTION,
    SESSION_NAME,
    SESSION_TTL_SECONDS,
)
from schemas import Principal, SessionRecord, utcnow


def new_record(ttl: int = SESSION_TTL_SECONDS) -> SessionRecord:
    return SessionRecord(
        id=secrets.token_urlsafe(32),
        expires_at=utcnow() + timedelta(seconds=ttl),
    )


class Session:
    """Mutable view of a SessionRecord for the duration of one request."""

    def __init__(self, record: SessionRecord, is_new: bool = False):
        self.record = record
        self.is_new = is_new
        self.modified = False
        self.destroyed = False
        self.stale_ids: List[str] = []

    @classmethod
    def create(cls) -> "Session":
        return cls(new_record(), is_new=True)

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def csrf_secret(self) -> Optional[str]:
        return self.record.csrf_secret

    @csrf_secret.setter
    def csrf_secret(self, value: str) -> None:
        self.record.csrf_secret = value
        self.modified = True

    @property
    def principal(self) -> Optional[Principal]:
        principal = self.record.principal
        if principal is None or principal.expires_at <= utcnow():
            return None
        return principal

    def login(self, username: str, ttl: int = SESSION_TTL_SECONDS) -> Principal:
        """Start a fresh session carrying an admin principal."""
        self.regenerate()
        self.record.principal = Principal(
            username=username,
            expires_at=utcnow() + timedelta(seconds=ttl),
        )
        self.modified = True
        return self.record.principal

    def regenerate(self) -> None:
        self.stale_ids.append(self.record.id)
        self.record = new_record()
        self.is_new = True
        self.modified = True

    def destroy(self) -> None:
        self.destroyed = True

    def touch(self, ttl: int = SESSION_TTL_SECONDS) -> None:
        self.record.expires_at = utcnow() + timedelta(seconds=ttl)


class MemorySessionStore:
    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return None
            if record.expires_at <= utcnow():
                del self._records[session_id]
                return None
            return record.model_copy(deep=True)

    def save(self, record: SessionRecord) -> None:
        with self._lock:
            self._prune()
            self._records[record.id] = record.model_copy(deep=True)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def _prune(self) -> None:
        now = utcnow()
        for sid in [sid for sid, r in self._records.items() if r.expires_at <= now]:
            del self._records[sid]

    def __len__(self) -> int:
        return len(self._records)


class MongoSessionStore:
    """Sessions in a MongoDB collection, expired by a TTL index."""

    def __init__(self, collection: Collection):
        self.collection = collection
        self.collection.create_index("expires_at", expireAfterSeconds=0)

    def get(self, session_id: str) -> Optional[SessionRecord]:
        doc = self.collection.find_one({"_id": session_id})
        if not doc:
            return None
        principal = doc.get("principal")
        if principal:
            principal = Principal(
                username=principal["username"],
                role=principal.get("role", "admin"),
                expires_at=_aware(principal["expires_at"]),
            )
        record = SessionRecord(
            id=doc["_id"],
            csrf_secret=doc.get("csrf_secret"),
            principal=principal,
            expires_at=_aware(doc["expires_at"]),
        )
        # the TTL monitor only runs once a minute
        if record.expires_at <= utcnow():
            self.delete(session_id)
            return None
        return record

    def save(self, record: SessionRecord) -> None:
        doc = record.model_dump(exclude={"id"})
        doc["_id"] = record.id
        self.collection.replace_one({"_id": record.id}, doc, upsert=True)

    def delete(self, session_id: str) -> None:
        self.collection.delete_one({"_id": session_id})


def _aware(value: datetime) -> datetime:
    # pymongo hands back naive UTC datetimes unless tz_aware is set
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionMiddleware(BaseHTTPMiddleware):
    """Restores `request.state.session` from the cookie and persists it afterwards."""

    async def dispatch(self, request: Request, call_next):
        store = request.app.state.session_store
        session_id = request.cookies.get(SESSION_NAME)
        record = await run_in_threadpool(store.get, session_id) if session_id else None
        session = Session(record) if record else Session.create()
        request.state.session = session

        response = await call_next(request)

        for stale_id in session.stale_ids:
            await run_in_threadpool(store.delete, stale_id)
        if session.destroyed:
            await run_in_threadpool(store.delete, session.id)
            response.delete_cookie(SESSION_NAME, path="/", domain=COOKIE_DOMAIN)
        elif session.modified or not session.is_new:
            session.touch()
            await run_in_threadpool(store.save, session.record)
            response.set_cookie(
                SESSION_NAME,
                session.id,
                max_age=SESSION_TTL_SECONDS,
                path="/",
                domain=COOKIE_DOMAIN,
                secure=IS_PRODUCTION,
                httponly=True,
                samesite="strict" if IS_PRODUCTION else "lax",
            )
        return response
