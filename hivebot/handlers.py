from __future__ import annotations

import logging
from typing import Any

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from . import messages
from .analytics import build_dashboard_stats, format_stats
from .constants import (
    ADMIN_ONLY_TEXT,
    ALREADY_ACTIVE_TEXT,
    CB_CATEGORIES_NEXT,
    CB_CATEGORY_PREFIX,
    CB_NO,
    CB_SKIP,
    CB_START,
    CB_SUBMIT,
    CB_TOOL_PREFIX,
    CB_TOOLS_NEXT,
    CB_YES,
    GENERIC_ERROR_TEXT,
    HELP_TEXT,
    OPT_IN_TEXT,
    OPT_OUT_TEXT,
    OPTED_OUT_TEXT,
    SAVE_ERROR_TEXT,
)
from .database import Database, RepositoryError
from .models import AuditEvent, Outcome, Step, Transition
from .questionnaire import Questionnaire
from .routing import Intent, classify
from .scheduler import CheckinScheduler
from .sessions import RecentEvents
from .transport import TransportError, to_markup
from .weeks import parse_week

logger = logging.getLogger(__name__)


def _service(context: ContextTypes.DEFAULT_TYPE, key: str) -> Any:
    return context.application.bot_data[key]


async def _reply(update: Update, text: str) -> None:
    if update.effective_message is None:
        return
    await update.effective_message.reply_text(text)


def _is_duplicate(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    events: RecentEvents = _service(context, "recent_events")
    return events.seen(update.effective_user.id, update.update_id)


def _register_user(update: Update, context: ContextTypes.DEFAULT_TYPE):
    db: Database = _service(context, "db")
    user = update.effective_user
    return db.ensure_user(user.id, display_name=user.first_name)


def _is_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    db: Database = _service(context, "db")
    return db.is_admin(update.effective_user.id)


async def _start_checkin(update: Update, context: ContextTypes.DEFAULT_TYPE, restart: bool = False) -> None:
    questionnaire: Questionnaire = _service(context, "questionnaire")
    user = update.effective_user

    if restart:
        transition = await questionnaire.restart(user.id, display_name=user.first_name)
    else:
        transition = await questionnaire.start(user.id, display_name=user.first_name)
    if transition.outcome == Outcome.IGNORED:
        await _reply(update, ALREADY_ACTIVE_TEXT)


async def _set_opt_out(update: Update, context: ContextTypes.DEFAULT_TYPE, opt_out: bool) -> None:
    db: Database = _service(context, "db")
    user_id = update.effective_user.id

    db.set_opt_out(user_id, opt_out)
    db.append_audit_event(AuditEvent(action="user_opt_out" if opt_out else "user_opt_in", user_id=user_id))
    logger.info("User %s %s", user_id, "opted out" if opt_out else "opted in")
    await _reply(update, OPT_OUT_TEXT if opt_out else OPT_IN_TEXT)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    try:
        record = _register_user(update, context)
        if record.opt_out:
            await _reply(update, OPTED_OUT_TEXT)
            return
        await _start_checkin(update, context)
    except (RepositoryError, TransportError) as exc:
        logger.exception("Error handling /start for %s: %s", update.effective_user.id, exc)
        await _reply(update, GENERIC_ERROR_TEXT)


async def checkin_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    db: Database = _service(context, "db")
    try:
        record = _register_user(update, context)
        if record.opt_out:
            await _reply(update, OPTED_OUT_TEXT)
            return
        await _start_checkin(update, context, restart=True)
        db.append_audit_event(
            AuditEvent(action="slash_command", user_id=update.effective_user.id, details={"command": "checkin"})
        )
    except (RepositoryError, TransportError) as exc:
        logger.exception("Error handling /checkin for %s: %s", update.effective_user.id, exc)
        await _reply(update, GENERIC_ERROR_TEXT)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None:
        return
    await update.effective_message.reply_text(HELP_TEXT)


async def optout_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return
    try:
        await _set_opt_out(update, context, True)
    except RepositoryError as exc:
        logger.exception("Error handling opt-out for %s: %s", update.effective_user.id, exc)
        await _reply(update, GENERIC_ERROR_TEXT)


async def optin_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return
    try:
        await _set_opt_out(update, context, False)
    except RepositoryError as exc:
        logger.exception("Error handling opt-in for %s: %s", update.effective_user.id, exc)
        await _reply(update, GENERIC_ERROR_TEXT)


async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Admin summary for the current week, or ``/stats YYYY-MM-DD`` for another one."""
    if update.effective_message is None or update.effective_user is None:
        return

    db: Database = _service(context, "db")
    questionnaire: Questionnaire = _service(context, "questionnaire")
    try:
        if not _is_admin(update, context):
            await _reply(update, ADMIN_ONLY_TEXT)
            return

        week = questionnaire.current_week()
        if context.args:
            try:
                week = parse_week(context.args[0])
            except ValueError:
                await _reply(update, "Usage: /stats [YYYY-MM-DD]")
                return

        stats = build_dashboard_stats(db, week)
    except RepositoryError as exc:
        logger.exception("Error handling /stats for %s: %s", update.effective_user.id, exc)
        await _reply(update, GENERIC_ERROR_TEXT)
        return

    await _reply(update, format_stats(stats))


async def broadcast_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Admin trigger: ``/broadcast`` for everyone eligible, ``/broadcast <id> ...`` for specific users."""
    if update.effective_message is None or update.effective_user is None:
        return

    try:
        if not _is_admin(update, context):
            await _reply(update, ADMIN_ONLY_TEXT)
            return
    except RepositoryError as exc:
        logger.exception("Error handling /broadcast for %s: %s", update.effective_user.id, exc)
        await _reply(update, GENERIC_ERROR_TEXT)
        return

    scheduler: CheckinScheduler = _service(context, "scheduler")
    targets: list[int] | None = None
    if context.args:
        try:
            targets = [int(arg) for arg in context.args]
        except ValueError:
            await _reply(update, "Usage: /broadcast [user_id ...]")
            return

    logger.info("Manually triggering weekly check-ins (requested by %s)", update.effective_user.id)
    summary = await scheduler.run_broadcast(targets=targets)
    if summary is None:
        await _reply(update, "Check-in run aborted. See logs for details.")
        return

    await _reply(
        update,
        f"Check-in sent for week {summary.week_start_date.isoformat()}: "
        f"{summary.success_count}/{summary.target_count} delivered, {summary.error_count} errors.",
    )



async def _refresh_keyboard(update: Update, transition: Transition) -> None:
    if transition.outcome != Outcome.UPDATED or transition.session is None or update.callback_query is None:
        return

    draft = transition.session.draft
    if transition.step == Step.CATEGORY_SELECTION:
        rows = messages.category_keyboard(draft.categories)
    else:
        rows = messages.tool_keyboard(draft.tools)

    try:
        await update.callback_query.edit_message_reply_markup(reply_markup=to_markup(rows))
    except TelegramError as exc:
        logger.debug("Keyboard refresh failed for %s: %s", update.effective_user.id, exc)


async def _dispatch_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, data: str) -> None:
    questionnaire: Questionnaire = _service(context, "questionnaire")
    user_id = update.effective_user.id

    if data == CB_YES:
        await questionnaire.answer_participation(user_id, True)
    elif data == CB_NO:
        await questionnaire.answer_participation(user_id, False)
    elif data == CB_START:
        record = _register_user(update, context)
        if record.opt_out:
            await _reply(update, OPTED_OUT_TEXT)
            return
        await _start_checkin(update, context)
    elif data.startswith(CB_CATEGORY_PREFIX):
        transition = await questionnaire.toggle_category(user_id, data[len(CB_CATEGORY_PREFIX) :])
        await _refresh_keyboard(update, transition)
    elif data == CB_CATEGORIES_NEXT:
        await questionnaire.categories_next(user_id)
    elif data.startswith(CB_TOOL_PREFIX):
        transition = await questionnaire.toggle_tool(user_id, data[len(CB_TOOL_PREFIX) :])
        await _refresh_keyboard(update, transition)
    elif data == CB_TOOLS_NEXT:
        await questionnaire.tools_next(user_id)
    elif data == CB_SUBMIT:
        await questionnaire.submit(user_id)
    elif data == CB_SKIP:
        await questionnaire.skip(user_id)
    else:
        logger.warning("Unknown callback data from %s: %s", user_id, data)


async def callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if query is None or update.effective_user is None:
        return

    await query.answer()
    if _is_duplicate(update, context):
        return

    data = query.data or ""
    logger.info("User %s pressed %s", update.effective_user.id, data)

    try:
        await _dispatch_callback(update, context, data)
    except RepositoryError as exc:
        logger.exception("Repository error handling %s for %s: %s", data, update.effective_user.id, exc)
        await _reply(update, SAVE_ERROR_TEXT)
    except TransportError as exc:
        logger.exception("Transport error handling %s for %s: %s", data, update.effective_user.id, exc)
        await _reply(update, GENERIC_ERROR_TEXT)
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected error in callback handler: %s", exc)
        await _reply(update, GENERIC_ERROR_TEXT)


async def _route_text(update: Update, context: ContextTypes.DEFAULT_TYPE, text: str) -> None:
    questionnaire: Questionnaire = _service(context, "questionnaire")
    user_id = update.effective_user.id

    step = questionnaire.current_step(user_id)
    if step == Step.TOOL_SELECTION:
        await questionnaire.note_other_tool(user_id, text)
        return
    if step == Step.CUSTOM_DETAILS:
        await questionnaire.note_details(user_id, text)
        return

    record = _register_user(update, context)
    intent = classify(text)

    if record.opt_out and intent not in (Intent.HELP, Intent.OPT_IN):
        await _reply(update, OPTED_OUT_TEXT)
        return

    if intent == Intent.HELP:
        await _reply(update, HELP_TEXT)
    elif intent == Intent.OPT_OUT:
        await _set_opt_out(update, context, True)
    elif intent == Intent.OPT_IN:
        await _set_opt_out(update, context, False)
    elif intent == Intent.RESTART:
        await _start_checkin(update, context, restart=True)
    else:
        await _start_checkin(update, context)


async def text_message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    text = (update.effective_message.text or "").strip()
    if not text:
        return

    if _is_duplicate(update, context):
        return

    logger.info("Received DM from %s", update.effective_user.id)

    try:
        await _route_text(update, context, text)
    except RepositoryError as exc:
        logger.exception("Repository error handling DM from %s: %s", update.effective_user.id, exc)
        await _reply(update, GENERIC_ERROR_TEXT)
    except TransportError as exc:
        logger.exception("Transport error handling DM from %s: %s", update.effective_user.id, exc)
        await _reply(update, GENERIC_ERROR_TEXT)
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected error in message handler: %s", exc)
        await _reply(update, GENERIC_ERROR_TEXT)
