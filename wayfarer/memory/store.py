"""
Pluggable thread storage. The orchestrator only talks to SessionStore;
InMemoryStore is the default, SqlStore persists through SQLAlchemy.
"""
import asyncio
import copy
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from wayfarer.config import Settings
from wayfarer.db import make_sessionmaker
from wayfarer.errors import StoreError
from wayfarer.models import Message, Thread

log = logging.getLogger(__name__)


class SessionStore(Protocol):
    async def get_slots(self, thread_id: str) -> Dict[str, Any]: ...

    async def set_slots(
        self, thread_id: str, patch: Dict[str, Any], remove: Iterable[str] = ()
    ) -> Dict[str, Any]: ...

    async def append_message(
        self, thread_id: str, role: str, content: str, limit: Optional[int] = None
    ) -> None: ...

    async def get_messages(self, thread_id: str, limit: Optional[int] = None) -> List[Dict[str, str]]: ...

    async def get_json(self, thread_id: str, key: str) -> Any: ...

    async def set_json(self, thread_id: str, key: str, value: Any) -> None: ...

    async def expire(self, thread_id: str, ttl_s: int) -> None: ...

    async def clear(self, thread_id: str) -> None: ...


@dataclass
class _Entry:
    expires_at: float
    slots: Dict[str, Any] = field(default_factory=dict)
    messages: List[Dict[str, str]] = field(default_factory=list)
    kv: Dict[str, Any] = field(default_factory=dict)


class InMemoryStore:
    """
    Process-local store. Every access slides the entry's expiry forward;
    an expired entry is replaced by a fresh empty one.
    """

    def __init__(self, ttl_s: int = 3600, max_messages: int = 16, clock: Callable[[], float] = time.monotonic):
        self.ttl_s = ttl_s
        self.max_messages = max_messages
        self._clock = clock
        self._threads: Dict[str, _Entry] = {}

    def _entry(self, thread_id: str) -> _Entry:
        now = self._clock()
        e = self._threads.get(thread_id)
        if e is None or now >= e.expires_at:
            e = _Entry(expires_at=now + self.ttl_s)
            self._threads[thread_id] = e
        else:
            e.expires_at = now + self.ttl_s
        return e

    async def get_slots(self, thread_id: str) -> Dict[str, Any]:
        return dict(self._entry(thread_id).slots)

    async def set_slots(self, thread_id, patch, remove=()):
        e = self._entry(thread_id)
        e.slots.update(patch or {})
        for k in remove:
            e.slots.pop(k, None)
        return dict(e.slots)

    async def append_message(self, thread_id, role, content, limit=None):
        e = self._entry(thread_id)
        e.messages.append({"role": role, "content": content})
        cap = limit or self.max_messages
        if len(e.messages) > cap:
            e.messages = e.messages[-cap:]

    async def get_messages(self, thread_id, limit=None):
        msgs = self._entry(thread_id).messages
        return [dict(m) for m in (msgs[-limit:] if limit else msgs)]

    async def get_json(self, thread_id, key):
        return copy.deepcopy(self._entry(thread_id).kv.get(key))

    async def set_json(self, thread_id, key, value):
        e = self._entry(thread_id)
        if value is None:
            e.kv.pop(key, None)
        else:
            e.kv[key] = copy.deepcopy(value)

    async def expire(self, thread_id, ttl_s):
        self._entry(thread_id).expires_at = self._clock() + ttl_s

    async def clear(self, thread_id):
        self._threads.pop(thread_id, None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class SqlStore:
    """
    SQLAlchemy-backed store (SQLite or Postgres). Session work is blocking,
    so each operation runs in a worker thread.
    """

    def __init__(self, database_url: str, ttl_s: int = 3600, max_messages: int = 16):
        self.ttl_s = ttl_s
        self.max_messages = max_messages
        self.SessionLocal = make_sessionmaker(database_url)

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            log.exception("store_error")
            raise StoreError(str(e)) from e

    def _thread(self, db, thread_id: str) -> Thread:
        now = _utcnow()
        t = db.get(Thread, thread_id)
        if t is not None and t.expires_at is not None and _aware(t.expires_at) <= now:
            db.delete(t)
            db.flush()
            t = None
        if t is None:
            t = Thread(id=thread_id, slots={}, kv={})
            db.add(t)
        t.expires_at = now + timedelta(seconds=self.ttl_s)
        return t

    def _get_slots(self, thread_id):
        with self.SessionLocal() as db:
            t = self._thread(db, thread_id)
            db.commit()
            return dict(t.slots or {})

    def _set_slots(self, thread_id, patch, remove):
        with self.SessionLocal() as db:
            t = self._thread(db, thread_id)
            slots = dict(t.slots or {})
            slots.update(patch or {})
            for k in remove:
                slots.pop(k, None)
            # reassign so the JSON column is flagged dirty
            t.slots = slots
            db.commit()
            return dict(slots)

    def _append_message(self, thread_id, role, content, limit):
        with self.SessionLocal() as db:
            self._thread(db, thread_id)
            db.add(Message(thread_id=thread_id, role=role, content=content))
            db.flush()
            cap = limit or self.max_messages
            keep = select(Message.id).where(Message.thread_id == thread_id).order_by(Message.id.desc()).limit(cap)
            db.execute(
                delete(Message)
                .where(Message.thread_id == thread_id)
                .where(Message.id.not_in(keep.scalar_subquery()))
                .execution_options(synchronize_session=False)
            )
            db.commit()

    def _get_messages(self, thread_id, limit):
        with self.SessionLocal() as db:
            self._thread(db, thread_id)
            db.commit()
            q = select(Message).where(Message.thread_id == thread_id).order_by(Message.id)
            rows = db.scalars(q).all()
            if limit:
                rows = rows[-limit:]
            return [{"role": m.role, "content": m.content} for m in rows]

    def _get_json(self, thread_id, key):
        with self.SessionLocal() as db:
            t = self._thread(db, thread_id)
            db.commit()
            return copy.deepcopy((t.kv or {}).get(key))

    def _set_json(self, thread_id, key, value):
        with self.SessionLocal() as db:
            t = self._thread(db, thread_id)
            kv = dict(t.kv or {})
            if value is None:
                kv.pop(key, None)
            else:
                kv[key] = value
            t.kv = kv
            db.commit()

    def _expire(self, thread_id, ttl_s):
        with self.SessionLocal() as db:
            t = self._thread(db, thread_id)
            t.expires_at = _utcnow() + timedelta(seconds=ttl_s)
            db.commit()

    def _clear(self, thread_id):
        with self.SessionLocal() as db:
            t = db.get(Thread, thread_id)
            if t is not None:
                db.delete(t)
                db.commit()

    async def get_slots(self, thread_id):
        return await self._run(self._get_slots, thread_id)

    async def set_slots(self, thread_id, patch, remove=()):
        return await self._run(self._set_slots, thread_id, patch, list(remove))

    async def append_message(self, thread_id, role, content, limit=None):
        await self._run(self._append_message, thread_id, role, content, limit)

    async def get_messages(self, thread_id, limit=None):
        return await self._run(self._get_messages, thread_id, limit)

    async def get_json(self, thread_id, key):
        return await self._run(self._get_json, thread_id, key)

    async def set_json(self, thread_id, key, value):
        await self._run(self._set_json, thread_id, key, value)

    async def expire(self, thread_id, ttl_s):
        await self._run(self._expire, thread_id, ttl_s)

    async def clear(self, thread_id):
        await self._run(self._clear, thread_id)


def create_store(settings: Settings) -> SessionStore:
    if settings.session_store == "sql":
        return SqlStore(settings.database_url, ttl_s=settings.session_ttl_s, max_messages=settings.max_messages)
    return InMemoryStore(ttl_s=settings.session_ttl_s, max_messages=settings.max_messages)
