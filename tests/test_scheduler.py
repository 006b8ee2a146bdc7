from datetime import date, time
from unittest.mock import MagicMock

import pytest

from hivebot.constants import MESSAGE_TEMPLATES
from hivebot.models import Step, WeeklyResponse
from hivebot.scheduler import telegram_day

WEEK = date(2026, 10, 12)


@pytest.fixture
def members(db):
    for user_id in range(1, 7):
        db.ensure_user(user_id, display_name=f"user{user_id}")
    return list(range(1, 7))


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_failures_are_isolated_and_counted(self, scheduler, members, transport, store, sleeps):
        transport.failing.update({2, 5})

        summary = await scheduler.run_broadcast()

        assert summary.target_count == 6
        assert summary.success_count == 4
        assert summary.error_count == 2
        assert summary.success_count + summary.error_count == summary.target_count
        assert {uid for uid, _ in transport.sent} == {1, 3, 4, 6}
        assert store.get(2) is None and store.get(5) is None
        assert store.get(6).step == Step.AWAITING_PARTICIPATION
        assert sleeps == [0.1] * 5

    @pytest.mark.asyncio
    async def test_batch_summary_is_audited(self, scheduler, members, db):
        await scheduler.run_broadcast()

        event = db.list_audit_events("weekly_checkin_batch")[0]
        assert event.details == {
            "targetCount": 6,
            "successCount": 6,
            "errorCount": 0,
            "weekStartDate": "2026-10-12",
        }

    @pytest.mark.asyncio
    async def test_skips_users_who_already_answered(self, scheduler, members, db, transport):
        db.upsert_weekly_response(WeeklyResponse(user_id=3, week_start_date=WEEK, participated=False))
        db.set_opt_out(4, True)

        summary = await scheduler.run_broadcast()

        assert summary.target_count == 4
        assert 3 not in {uid for uid, _ in transport.sent}
        assert 4 not in {uid for uid, _ in transport.sent}

    @pytest.mark.asyncio
    async def test_rerun_does_not_reprompt_open_sessions(self, scheduler, members, transport):
        await scheduler.run_broadcast()
        sent_after_first = len(transport.sent)

        summary = await scheduler.run_broadcast()

        assert summary.error_count == 0
        assert len(transport.sent) == sent_after_first

    @pytest.mark.asyncio
    async def test_next_run_catches_users_missed_by_a_failed_send(self, scheduler, members, transport, store):
        transport.failing.add(3)
        await scheduler.run_broadcast()
        transport.failing.clear()

        await scheduler.run_broadcast()

        assert store.get(3).step == Step.AWAITING_PARTICIPATION
        assert transport.texts_for(3)

    @pytest.mark.asyncio
    async def test_greets_by_display_name(self, scheduler, members, transport):
        await scheduler.run_broadcast()
        assert "Hey user1!" in transport.texts_for(1)[0]

    @pytest.mark.asyncio
    async def test_resolver_failure_aborts_the_run(self, scheduler, resolver, db, transport, monkeypatch):
        async def broken(week):
            raise RuntimeError("directory down")

        monkeypatch.setattr(resolver, "resolve", broken)

        assert await scheduler.run_broadcast() is None
        assert transport.sent == []
        assert db.list_audit_events("weekly_checkin_batch_failed")[0].details["error"] == "directory down"

    @pytest.mark.asyncio
    async def test_manual_targets_skip_opted_out_and_unknown_users(self, scheduler, members, db, transport):
        db.set_opt_out(2, True)

        summary = await scheduler.run_broadcast(targets=[1, 2, 3, 42])

        assert summary.target_count == 2
        assert {uid for uid, _ in transport.sent} == {1, 3}
        assert db.get_user(42) is None


class TestReminders:
    @pytest.mark.asyncio
    async def test_reminder_nudges_non_responders_without_opening_sessions(
        self, scheduler, members, db, transport, store
    ):
        db.upsert_weekly_response(WeeklyResponse(user_id=1, week_start_date=WEEK, participated=True))
        transport.failing.add(6)

        summary = await scheduler.run_reminders()

        assert summary.kind == "reminder"
        assert summary.target_count == 5
        assert summary.error_count == 1
        reminder_text = MESSAGE_TEMPLATES["reminder"]["description"]
        assert all(reminder_text in m.text for _, m in transport.sent)
        assert 1 not in {uid for uid, _ in transport.sent}
        assert len(store) == 0
        assert db.list_audit_events("weekly_reminder_batch")

    @pytest.mark.asyncio
    async def test_reminder_leaves_open_session_untouched(self, scheduler, members, questionnaire, store):
        await questionnaire.start(2)
        await questionnaire.answer_participation(2, True)

        await scheduler.run_reminders()

        assert store.get(2).step == Step.CATEGORY_SELECTION


def test_telegram_day_mapping():
    assert telegram_day(0) == 1  # Monday
    assert telegram_day(3) == 4  # Thursday
    assert telegram_day(6) == 0  # Sunday


def test_register_schedules_both_jobs(scheduler):
    job_queue = MagicMock()

    scheduler.register(job_queue, 0, time(10, 0), 3, time(14, 0))

    calls = job_queue.run_daily.call_args_list
    assert [c.kwargs["name"] for c in calls] == ["weekly_checkin", "weekly_reminder"]
    assert calls[0].kwargs["days"] == (1,)
    assert calls[1].kwargs["days"] == (4,)
    assert calls[0].kwargs["time"].hour == 10
    assert calls[0].kwargs["time"].tzinfo is not None
