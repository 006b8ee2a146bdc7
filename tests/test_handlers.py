"""Handler wiring tests with mocked Telegram updates."""

from itertools import count
from unittest.mock import AsyncMock, MagicMock

import pytest

from hivebot.constants import (
    ALREADY_ACTIVE_TEXT,
    CB_CATEGORY_PREFIX,
    CB_START,
    CB_YES,
    GENERIC_ERROR_TEXT,
    HELP_TEXT,
    OPT_OUT_TEXT,
    OPTED_OUT_TEXT,
    SAVE_ERROR_TEXT,
)
from hivebot.database import RepositoryError
from hivebot.handlers import broadcast_command, callback_handler, stats_command, text_message_handler
from hivebot.models import Step
from hivebot.sessions import RecentEvents

USER = 501
_update_ids = count(1)


def _update(text: str | None = None, data: str | None = None, update_id: int | None = None):
    update = MagicMock()
    update.update_id = update_id if update_id is not None else next(_update_ids)
    update.effective_user.id = USER
    update.effective_user.first_name = "Grace"
    update.effective_message.text = text
    update.effective_message.reply_text = AsyncMock()
    if data is None:
        update.callback_query = None
    else:
        update.callback_query.data = data
        update.callback_query.answer = AsyncMock()
        update.callback_query.edit_message_reply_markup = AsyncMock()
    return update


def _replies(update) -> list[str]:
    return [c.args[0] for c in update.effective_message.reply_text.call_args_list]


@pytest.fixture
def context(db, questionnaire, scheduler, clock):
    ctx = MagicMock()
    ctx.application.bot_data = {
        "db": db,
        "questionnaire": questionnaire,
        "scheduler": scheduler,
        "recent_events": RecentEvents(clock=clock),
    }
    ctx.args = []
    return ctx


@pytest.mark.asyncio
async def test_plain_message_starts_check_in_and_registers_user(context, db, store):
    await text_message_handler(_update("hi"), context)

    assert store.get(USER).step == Step.AWAITING_PARTICIPATION
    assert db.get_user(USER).display_name == "Grace"


@pytest.mark.asyncio
async def test_second_message_reports_open_check_in(context, store):
    await text_message_handler(_update("hi"), context)
    update = _update("hello again")

    await text_message_handler(update, context)

    assert _replies(update) == [ALREADY_ACTIVE_TEXT]


@pytest.mark.asyncio
async def test_redelivered_update_is_dropped(context, transport):
    await text_message_handler(_update("hi", update_id=77), context)
    sent = len(transport.sent)

    update = _update("hi", update_id=77)
    await text_message_handler(update, context)

    assert len(transport.sent) == sent
    assert _replies(update) == []


@pytest.mark.asyncio
async def test_help_and_opt_out(context, db):
    update = _update("help")
    await text_message_handler(update, context)
    assert _replies(update) == [HELP_TEXT]

    update = _update("opt out")
    await text_message_handler(update, context)
    assert _replies(update) == [OPT_OUT_TEXT]
    assert db.get_user(USER).opt_out is True

    update = _update("hello")
    await text_message_handler(update, context)
    assert _replies(update) == [OPTED_OUT_TEXT]


@pytest.mark.asyncio
async def test_text_during_tool_selection_is_the_other_tool(context, questionnaire, store):
    await questionnaire.start(USER)
    await questionnaire.answer_participation(USER, True)
    await questionnaire.select_categories(USER, ["research"])
    await questionnaire.categories_next(USER)

    await text_message_handler(_update("Perplexity"), context)

    assert store.get(USER).draft.pending_other_tool == "Perplexity"


@pytest.mark.asyncio
async def test_buttons_drive_the_questionnaire(context, questionnaire, store):
    await questionnaire.start(USER)

    await callback_handler(_update(data=CB_YES), context)
    assert store.get(USER).step == Step.CATEGORY_SELECTION

    update = _update(data=f"{CB_CATEGORY_PREFIX}research")
    await callback_handler(update, context)
    assert store.get(USER).draft.categories == ["research"]
    update.callback_query.edit_message_reply_markup.assert_awaited_once()


@pytest.mark.asyncio
async def test_save_failure_is_reported_to_user(context, questionnaire, db, store, monkeypatch):
    await questionnaire.start(USER)

    def broken_upsert(response):
        raise RepositoryError("disk full")

    monkeypatch.setattr(db, "upsert_weekly_response", broken_upsert)
    update = _update(data="checkin:no")
    await callback_handler(update, context)

    assert _replies(update) == [SAVE_ERROR_TEXT]
    assert store.get(USER).step == Step.AWAITING_PARTICIPATION


@pytest.mark.asyncio
async def test_stats_requires_admin(context, db):
    update = _update("/stats")
    await stats_command(update, context)
    assert "admins only" in _replies(update)[0]

    db.add_admin(USER)
    update = _update("/stats")
    await stats_command(update, context)
    assert "Hive stats" in _replies(update)[0]


@pytest.mark.asyncio
async def test_start_button_refuses_opted_out_user(context, db, store):
    db.set_opt_out(USER, True)
    update = _update(data=CB_START)

    await callback_handler(update, context)

    assert _replies(update) == [OPTED_OUT_TEXT]
    assert store.get(USER) is None


@pytest.mark.asyncio
async def test_start_button_opens_check_in(context, store):
    await callback_handler(_update(data=CB_START), context)
    assert store.get(USER).step == Step.AWAITING_PARTICIPATION


@pytest.mark.asyncio
async def test_stats_for_a_given_week(context, db):
    db.add_admin(USER)
    context.args = ["2026-10-08"]
    update = _update("/stats 2026-10-08")

    await stats_command(update, context)

    assert "week of 2026-10-05" in _replies(update)[0]


@pytest.mark.asyncio
async def test_stats_reports_storage_failure(context, db, monkeypatch):
    db.add_admin(USER)

    def locked():
        raise RepositoryError("locked")

    monkeypatch.setattr(db, "list_users", locked)
    update = _update("/stats")
    await stats_command(update, context)

    assert _replies(update) == [GENERIC_ERROR_TEXT]


@pytest.mark.asyncio
async def test_broadcast_reports_storage_failure(context, db, monkeypatch):
    def locked(user_id):
        raise RepositoryError("locked")

    monkeypatch.setattr(db, "is_admin", locked)
    update = _update("/broadcast")
    await broadcast_command(update, context)

    assert _replies(update) == [GENERIC_ERROR_TEXT]
