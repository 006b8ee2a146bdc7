from __future__ import annotations

import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Callable

from . import messages
from .constants import (
    CATEGORY_IDS,
    EXPIRED_TEXT,
    MESSAGE_TEMPLATES,
    TOOL_IDS,
    WRONG_STEP_TEXT,
)
from .database import Database
from .models import AuditEvent, Outcome, OutgoingMessage, Session, Step, Transition, WeeklyResponse
from .sessions import SessionStore
from .transport import ChatTransport, TransportError
from .weeks import utc_now, week_start_date

logger = logging.getLogger(__name__)


def _clean_selection(ids: list[str], allowed: list[str]) -> list[str]:
    cleaned: list[str] = []
    for item in ids:
        if item in allowed and item not in cleaned:
            cleaned.append(item)
    return cleaned


def _toggled(current: list[str], item: str) -> list[str]:
    if item in current:
        return [i for i in current if i != item]
    return [*current, item]


class Questionnaire:
    """Per-user weekly check-in flow.

    NONE -> AWAITING_PARTICIPATION -> CATEGORY_SELECTION -> TOOL_SELECTION
    -> CUSTOM_DETAILS -> CLOSED. "No" at the first step, submit and skip are
    terminal: they upsert one WeeklyResponse keyed by (user, week) and delete
    the session.

    Every transition runs under the user's session lock. Outbound messages are
    sent before the new session state is stored, so a failed send leaves the
    previous state in place and raises ``TransportError``. A failed upsert
    raises ``RepositoryError`` and also leaves the session untouched, which
    keeps submit/skip retryable.
    """

    def __init__(
        self,
        store: SessionStore,
        repository: Database,
        transport: ChatTransport,
        clock: Callable[[], datetime] = utc_now,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.store = store
        self.repository = repository
        self.transport = transport
        self.clock = clock
        self.tz = tz

    def current_week(self) -> date:
        return week_start_date(self.clock(), self.tz)

    def _audit(self, action: str, user_id: int | None, **details: object) -> None:
        self.repository.append_audit_event(AuditEvent(action=action, user_id=user_id, details=dict(details)))

    async def _say(self, user_id: int, text: str) -> None:
        await self.transport.send_message(user_id, messages.plain(text))

    async def _load(self, user_id: int, expected: Step) -> tuple[Session | None, Transition | None]:
        session = self.store.get(user_id)
        if session is None:
            logger.warning("No active session for user %s (expected step %s)", user_id, expected.value)
            await self._say(user_id, EXPIRED_TEXT)
            return None, Transition(Outcome.EXPIRED, Step.NONE)

        if session.step != expected:
            logger.info(
                "User %s sent a %s event while at %s",
                user_id,
                expected.value,
                session.step.value,
            )
            await self._say(user_id, WRONG_STEP_TEXT)
            return None, Transition(Outcome.IGNORED, session.step, session)

        return session, None

    async def _advance(self, session: Session, step: Step, message: OutgoingMessage) -> Transition:
        session.step = step
        await self.transport.send_message(session.user_id, message)
        self.store.put(session)
        return Transition(Outcome.ADVANCED, step, session)

    async def _finalize(
        self,
        session: Session,
        participated: bool,
        action: str,
        closing: OutgoingMessage,
    ) -> Transition:
        draft = session.draft
        response = WeeklyResponse(
            user_id=session.user_id,
            week_start_date=session.week_start,
            participated=participated,
            categories=list(draft.categories) if participated else [],
            tools=list(draft.tools) if participated else [],
            custom_tools=list(draft.custom_tools) if participated else [],
            custom_details=draft.custom_details if participated else None,
        )

        stored = self.repository.upsert_weekly_response(response)
        self.store.delete(session.user_id)
        self._audit(action, session.user_id, weekStartDate=session.week_start.isoformat(), responseId=stored.id)
        logger.info("Stored weekly response for user %s (%s)", session.user_id, action)

        try:
            await self.transport.send_message(session.user_id, closing)
        except TransportError as exc:
            logger.warning("Closing message to user %s failed: %s", session.user_id, exc)

        return Transition(Outcome.CLOSED, Step.CLOSED)

    async def start(
        self,
        user_id: int,
        display_name: str | None = None,
        force: bool = False,
    ) -> Transition:
        """Send the weekly prompt and open a session.

        A no-op while the user already has a live session, unless ``force``
        (explicit restart) is set.
        """
        async with self.store.lock(user_id):
            existing = self.store.get(user_id)
            if existing is not None and not force:
                logger.info("User %s already has a session at %s, not prompting again", user_id, existing.step.value)
                return Transition(Outcome.IGNORED, existing.step, existing)

            session = Session(
                user_id=user_id,
                step=Step.AWAITING_PARTICIPATION,
                week_start=self.current_week(),
                display_name=display_name,
            )
            await self.transport.send_message(user_id, messages.weekly_prompt(display_name))
            self.store.put(session)

        self._audit(
            "weekly_prompt_sent",
            user_id,
            weekStartDate=session.week_start.isoformat(),
            restart=existing is not None,
        )
        logger.info("Weekly prompt sent to user %s", user_id)
        return Transition(Outcome.ADVANCED, session.step, session)

    async def restart(self, user_id: int, display_name: str | None = None) -> Transition:
        return await self.start(user_id, display_name=display_name, force=True)

    async def answer_participation(self, user_id: int, participated: bool) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.AWAITING_PARTICIPATION)
            if session is None:
                return rejected

            if not participated:
                session.draft.participated = False
                return await self._finalize(session, False, "weekly_response_no", messages.no_response())

            session.draft.participated = True
            transition = await self._advance(session, Step.CATEGORY_SELECTION, messages.category_picker())

        self._audit("weekly_response_yes", user_id, weekStartDate=session.week_start.isoformat())
        return transition

    async def select_categories(self, user_id: int, category_ids: list[str]) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.CATEGORY_SELECTION)
            if session is None:
                return rejected
            return self._set_categories(session, category_ids)

    async def toggle_category(self, user_id: int, category_id: str) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.CATEGORY_SELECTION)
            if session is None:
                return rejected
            return self._set_categories(session, _toggled(session.draft.categories, category_id))

    def _set_categories(self, session: Session, category_ids: list[str]) -> Transition:
        session.draft.categories = _clean_selection(category_ids, CATEGORY_IDS)
        self.store.put(session)
        logger.info("User %s selected categories: %s", session.user_id, ", ".join(session.draft.categories))
        return Transition(Outcome.UPDATED, session.step, session)

    async def categories_next(self, user_id: int) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.CATEGORY_SELECTION)
            if session is None:
                return rejected

            if not session.draft.categories:
                await self._say(user_id, MESSAGE_TEMPLATES["category_selection"]["empty"])
                return Transition(Outcome.REJECTED, session.step, session)

            return await self._advance(session, Step.TOOL_SELECTION, messages.tool_picker())

    async def select_tools(self, user_id: int, tool_ids: list[str]) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.TOOL_SELECTION)
            if session is None:
                return rejected
            return self._set_tools(session, tool_ids)

    async def toggle_tool(self, user_id: int, tool_id: str) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.TOOL_SELECTION)
            if session is None:
                return rejected
            return self._set_tools(session, _toggled(session.draft.tools, tool_id))

    def _set_tools(self, session: Session, tool_ids: list[str]) -> Transition:
        session.draft.tools = _clean_selection(tool_ids, TOOL_IDS)
        self.store.put(session)
        logger.info("User %s selected tools: %s", session.user_id, ", ".join(session.draft.tools))
        return Transition(Outcome.UPDATED, session.step, session)

    async def note_other_tool(self, user_id: int, text: str) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.TOOL_SELECTION)
            if session is None:
                return rejected

            name = text.strip()
            session.draft.pending_other_tool = name or None
            self.store.put(session)
            if name:
                await self._say(user_id, MESSAGE_TEMPLATES["tool_selection"]["other_noted"].format(tool=name))
            return Transition(Outcome.UPDATED, session.step, session)

    async def tools_next(self, user_id: int, other_tool: str | None = None) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.TOOL_SELECTION)
            if session is None:
                return rejected

            if not session.draft.tools:
                await self._say(user_id, MESSAGE_TEMPLATES["tool_selection"]["empty"])
                return Transition(Outcome.REJECTED, session.step, session)

            name = (other_tool or session.draft.pending_other_tool or "").strip()
            if name:
                session.draft.custom_tools.append(name)
                logger.info("User %s specified other tool: %s", user_id, name)
            session.draft.pending_other_tool = None

            return await self._advance(session, Step.CUSTOM_DETAILS, messages.details_prompt())

    async def note_details(self, user_id: int, text: str) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.CUSTOM_DETAILS)
            if session is None:
                return rejected

            session.draft.custom_details = text.strip() or None
            self.store.put(session)
            await self._say(user_id, MESSAGE_TEMPLATES["custom_details"]["details_noted"])
            return Transition(Outcome.UPDATED, session.step, session)

    async def submit(self, user_id: int, details: str | None = None) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.CUSTOM_DETAILS)
            if session is None:
                return rejected

            if details is not None:
                session.draft.custom_details = details.strip() or None
            return await self._finalize(session, True, "weekly_response_submitted", messages.thank_you())

    async def skip(self, user_id: int) -> Transition:
        async with self.store.lock(user_id):
            session, rejected = await self._load(user_id, Step.CUSTOM_DETAILS)
            if session is None:
                return rejected

            session.draft.custom_details = None
            return await self._finalize(session, True, "weekly_response_skipped", messages.thank_you())

    def current_step(self, user_id: int) -> Step:
        session = self.store.get(user_id)
        return session.step if session else Step.NONE
