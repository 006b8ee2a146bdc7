from __future__ import annotations

import asyncio
import copy
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import AsyncIterator, Callable

from .models import Session
from .weeks import utc_now, week_start_date

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class SessionStore:
    """In-memory questionnaire sessions keyed by user id.

    Transitions must run inside ``lock(user_id)`` so that a get/mutate/put
    sequence for one user is never interleaved with another delivery for the
    same user. Locks are per key; different users never wait on each other.

    A session is only returned while it belongs to the current week and has
    been touched within ``ttl``; anything older is dropped on read.
    """

    def __init__(
        self,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.ttl = ttl
        self.clock = clock
        self.tz = tz
        self._sessions: dict[int, Session] = {}
        self._locks: dict[int, _LockEntry] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: Session, now: datetime) -> bool:
        if session.week_start != week_start_date(now, self.tz):
            return True
        if self.ttl is not None and session.updated_at is not None:
            return now - session.updated_at > self.ttl
        return False

    def get(self, user_id: int) -> Session | None:
        session = self._sessions.get(user_id)
        if session is None:
            return None

        if self._is_expired(session, self.clock()):
            logger.info("Session for user %s expired at step %s", user_id, session.step.value)
            self._sessions.pop(user_id, None)
            return None

        return copy.deepcopy(session)

    def put(self, session: Session) -> None:
        stored = copy.deepcopy(session)
        stored.updated_at = self.clock()
        if stored.started_at is None:
            stored.started_at = stored.updated_at
        self._sessions[session.user_id] = stored

    def delete(self, user_id: int) -> bool:
        return self._sessions.pop(user_id, None) is not None

    @asynccontextmanager
    async def lock(self, user_id: int) -> AsyncIterator[None]:
        entry = self._locks.get(user_id)
        if entry is None:
            entry = _LockEntry()
            self._locks[user_id] = entry

        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._locks.pop(user_id, None)


class RecentEvents:
    """Remembers recently handled (user, event) pairs to drop redelivered updates."""

    def __init__(
        self,
        max_entries: int = 10_000,
        ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.max_entries = max_entries
        self.ttl = ttl
        self.clock = clock
        self._seen: OrderedDict[tuple[int, str], datetime] = OrderedDict()

    def _evict(self, now: datetime) -> None:
        while self._seen:
            key, seen_at = next(iter(self._seen.items()))
            if now - seen_at <= self.ttl and len(self._seen) <= self.max_entries:
                break
            self._seen.popitem(last=False)

    def seen(self, user_id: int, event_id: str | int | None) -> bool:
        if event_id is None:
            return False

        now = self.clock()
        self._evict(now)

        key = (user_id, str(event_id))
        if key in self._seen:
            logger.info("Dropping duplicate event %s for user %s", event_id, user_id)
            return True

        self._seen[key] = now
        return False
