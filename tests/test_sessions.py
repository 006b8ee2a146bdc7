import asyncio
from datetime import date, timedelta

import pytest

from hivebot.models import Session, Step
from hivebot.sessions import RecentEvents, SessionStore

from conftest import FakeClock, WEDNESDAY


def _session(user_id: int = 1, step: Step = Step.AWAITING_PARTICIPATION) -> Session:
    return Session(user_id=user_id, step=step, week_start=date(2026, 10, 12))


class TestSessionStore:
    def test_put_get_delete(self, store):
        store.put(_session())
        assert store.get(1).step == Step.AWAITING_PARTICIPATION
        assert len(store) == 1

        assert store.delete(1) is True
        assert store.get(1) is None
        assert store.delete(1) is False

    def test_get_returns_a_copy(self, store):
        store.put(_session())
        session = store.get(1)
        session.draft.categories.append("automation")
        session.step = Step.TOOL_SELECTION

        stored = store.get(1)
        assert stored.draft.categories == []
        assert stored.step == Step.AWAITING_PARTICIPATION

    def test_put_stamps_timestamps(self, store, clock):
        store.put(_session())
        clock.advance(minutes=5)
        store.put(store.get(1))

        session = store.get(1)
        assert session.started_at == WEDNESDAY
        assert session.updated_at == WEDNESDAY + timedelta(minutes=5)

    def test_idle_session_expires_after_ttl(self, store, clock):
        store.put(_session())
        clock.advance(hours=71)
        assert store.get(1) is not None

        clock.advance(hours=2)
        assert store.get(1) is None
        assert len(store) == 0

    def test_session_from_previous_week_is_expired(self, clock):
        store = SessionStore(ttl=None, clock=clock)
        store.put(_session())
        # Sunday evening keeps the week, Monday starts a new one.
        clock.advance(days=4, hours=11)
        assert store.get(1) is not None
        clock.advance(hours=1)
        assert store.get(1) is None

    @pytest.mark.asyncio
    async def test_lock_serializes_same_user(self, store):
        order = []

        async def worker(tag):
            async with store.lock(1):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_lock_does_not_block_other_users(self, store):
        async def acquire_other():
            async with store.lock(2):
                return True

        async with store.lock(1):
            assert await asyncio.wait_for(acquire_other(), timeout=0.5)

    @pytest.mark.asyncio
    async def test_locks_are_released_when_unused(self, store):
        async with store.lock(1):
            assert 1 in store._locks
        assert 1 not in store._locks


class TestRecentEvents:
    def test_repeat_delivery_is_detected(self):
        events = RecentEvents(clock=FakeClock(WEDNESDAY))
        assert events.seen(1, 100) is False
        assert events.seen(1, 100) is True
        assert events.seen(2, 100) is False

    def test_missing_event_id_is_never_a_duplicate(self):
        events = RecentEvents(clock=FakeClock(WEDNESDAY))
        assert events.seen(1, None) is False
        assert events.seen(1, None) is False

    def test_entries_expire(self):
        clock = FakeClock(WEDNESDAY)
        events = RecentEvents(ttl=timedelta(minutes=10), clock=clock)
        events.seen(1, "a")
        clock.advance(minutes=11)
        assert events.seen(1, "a") is False

    def test_capacity_is_bounded(self):
        events = RecentEvents(max_entries=2, clock=FakeClock(WEDNESDAY))
        for event_id in range(5):
            events.seen(1, event_id)
        assert events.seen(1, 0) is False
