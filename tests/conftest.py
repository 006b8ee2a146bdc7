from datetime import datetime, timedelta, timezone

import pytest

from hivebot.database import Database
from hivebot.eligibility import EligibilityResolver
from hivebot.models import OutgoingMessage
from hivebot.questionnaire import Questionnaire
from hivebot.scheduler import CheckinScheduler
from hivebot.sessions import SessionStore
from hivebot.transport import ChatTransport, TransportError

# Wednesday; the cadence period starts on Monday 2026-10-12.
WEDNESDAY = datetime(2026, 10, 14, 12, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeTransport(ChatTransport):
    """Records outbound messages; users in ``failing`` raise TransportError."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, OutgoingMessage]] = []
        self.failing: set[int] = set()
        self.members: list[int] = []
        self.fail_listing = False

    async def send_message(self, user_id: int, message: OutgoingMessage) -> None:
        if user_id in self.failing:
            raise TransportError(f"user {user_id} unreachable")
        self.sent.append((user_id, message))

    async def list_directory_members(self, scope):
        if self.fail_listing:
            raise TransportError("directory unavailable")
        return list(self.members)

    def texts_for(self, user_id: int) -> list[str]:
        return [m.text for uid, m in self.sent if uid == user_id]

    def last_text(self, user_id: int) -> str:
        return self.texts_for(user_id)[-1]


@pytest.fixture
def clock():
    return FakeClock(WEDNESDAY)


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "hive.db")
    database.init()
    return database


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store(clock):
    return SessionStore(ttl=timedelta(hours=72), clock=clock)


@pytest.fixture
def questionnaire(store, db, transport, clock):
    return Questionnaire(store=store, repository=db, transport=transport, clock=clock)


@pytest.fixture
def resolver(db, transport):
    return EligibilityResolver(repository=db, transport=transport)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def scheduler(questionnaire, resolver, db, transport, clock, sleeps):
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return CheckinScheduler(
        questionnaire=questionnaire,
        resolver=resolver,
        repository=db,
        transport=transport,
        send_delay=0.1,
        clock=clock,
        sleep=fake_sleep,
    )
