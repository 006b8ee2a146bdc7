from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timezone, tzinfo
from typing import Awaitable, Callable, Iterable

from telegram.ext import ContextTypes, JobQueue

from . import messages
from .database import Database
from .eligibility import EligibilityResolver
from .models import AuditEvent, BatchSummary, Outcome
from .questionnaire import Questionnaire
from .transport import ChatTransport
from .weeks import utc_now, week_start_date

logger = logging.getLogger(__name__)


def telegram_day(weekday: int) -> int:
    """Python weekday (Monday=0) to JobQueue day (Sunday=0)."""
    return (weekday + 1) % 7


class CheckinScheduler:
    """Weekly broadcast of the check-in prompt plus a later reminder run.

    Each run resolves the eligibility set once and walks it sequentially with
    ``send_delay`` between sends. A failure for one user is counted and the
    batch goes on; a failure to resolve the set aborts the run, and the next
    run picks everybody up again because eligibility is recomputed.
    """

    def __init__(
        self,
        questionnaire: Questionnaire,
        resolver: EligibilityResolver,
        repository: Database,
        transport: ChatTransport,
        send_delay: float = 0.1,
        clock: Callable[[], datetime] = utc_now,
        tz: tzinfo = timezone.utc,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.questionnaire = questionnaire
        self.resolver = resolver
        self.repository = repository
        self.transport = transport
        self.send_delay = send_delay
        self.clock = clock
        self.tz = tz
        self.sleep = sleep

    def _display_name(self, user_id: int) -> str | None:
        user = self.repository.get_user(user_id)
        return user.display_name if user else None

    async def _send_prompt(self, user_id: int) -> None:
        transition = await self.questionnaire.start(user_id, display_name=self._display_name(user_id))
        if transition.outcome == Outcome.IGNORED:
            logger.info("User %s already has an open check-in, prompt not resent", user_id)

    async def _send_reminder(self, user_id: int) -> None:
        await self.transport.send_message(user_id, messages.reminder(self._display_name(user_id)))

    async def _run_batch(
        self,
        kind: str,
        week: date,
        user_ids: Iterable[int],
        send_one: Callable[[int], Awaitable[None]],
    ) -> BatchSummary:
        targets = sorted(user_ids)
        success_count = 0
        error_count = 0

        logger.info("Sending %s to %s users for week %s", kind, len(targets), week.isoformat())

        for index, user_id in enumerate(targets):
            try:
                await send_one(user_id)
                success_count += 1
            except Exception as exc:
                error_count += 1
                logger.exception("Error sending %s to user %s: %s", kind, user_id, exc)

            if self.send_delay > 0 and index < len(targets) - 1:
                await self.sleep(self.send_delay)

        summary = BatchSummary(
            kind=kind,
            week_start_date=week,
            target_count=len(targets),
            success_count=success_count,
            error_count=error_count,
        )
        logger.info(
            "Weekly %s completed: %s sent, %s errors",
            kind,
            summary.success_count,
            summary.error_count,
        )
        self.repository.append_audit_event(AuditEvent(action=f"weekly_{kind}_batch", details=summary.as_details()))
        return summary

    async def _resolve_or_abort(self, kind: str, week: date) -> set[int] | None:
        try:
            return await self.resolver.resolve(week)
        except Exception as exc:
            logger.exception("Weekly %s aborted, eligibility lookup failed: %s", kind, exc)
            self.repository.append_audit_event(
                AuditEvent(
                    action=f"weekly_{kind}_batch_failed",
                    details={"weekStartDate": week.isoformat(), "error": str(exc)},
                )
            )
            return None

    async def run_broadcast(
        self,
        now: datetime | None = None,
        targets: Iterable[int] | None = None,
    ) -> BatchSummary | None:
        """Prompt every eligible user, or only ``targets`` when given.

        Explicit targets are limited to users the bot knows who have not opted out.
        """
        week = week_start_date(now or self.clock(), self.tz)

        if targets is not None:
            try:
                user_ids = self.resolver.registered(set(targets))
            except Exception as exc:
                logger.exception("Manual check-in aborted: %s", exc)
                return None
        else:
            user_ids = await self._resolve_or_abort("checkin", week)
            if user_ids is None:
                return None

        return await self._run_batch("checkin", week, user_ids, self._send_prompt)

    async def run_reminders(self, now: datetime | None = None) -> BatchSummary | None:
        week = week_start_date(now or self.clock(), self.tz)
        user_ids = await self._resolve_or_abort("reminder", week)
        if user_ids is None:
            return None
        return await self._run_batch("reminder", week, user_ids, self._send_reminder)

    async def _broadcast_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.info("Starting weekly check-in process...")
        await self.run_broadcast()

    async def _reminder_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.info("Starting reminder process...")
        await self.run_reminders()

    def register(
        self,
        job_queue: JobQueue,
        checkin_weekday: int,
        checkin_time: time,
        reminder_weekday: int,
        reminder_time: time,
    ) -> None:
        job_queue.run_daily(
            self._broadcast_job,
            time=checkin_time.replace(tzinfo=self.tz),
            days=(telegram_day(checkin_weekday),),
            name="weekly_checkin",
        )
        job_queue.run_daily(
            self._reminder_job,
            time=reminder_time.replace(tzinfo=self.tz),
            days=(telegram_day(reminder_weekday),),
            name="weekly_reminder",
        )
        logger.info(
            "Weekly scheduler initialized: check-ins on day %s at %s, reminders on day %s at %s (%s)",
            checkin_weekday,
            checkin_time.strftime("%H:%M"),
            reminder_weekday,
            reminder_time.strftime("%H:%M"),
            self.tz,
        )
