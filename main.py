from __future__ import annotations

import logging
import os
import sys
from datetime import timedelta
from functools import partial

from telegram import BotCommand, BotCommandScopeAllPrivateChats, BotCommandScopeDefault
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters

from hivebot.config import ConfigError, DB_PATH, AppConfig, ensure_data_dirs, load_config
from hivebot.database import Database, RepositoryError
from hivebot.eligibility import EligibilityResolver
from hivebot.handlers import (
    broadcast_command,
    callback_handler,
    checkin_command,
    help_command,
    optin_command,
    optout_command,
    start_command,
    stats_command,
    text_message_handler,
)
from hivebot.questionnaire import Questionnaire
from hivebot.scheduler import CheckinScheduler
from hivebot.sessions import RecentEvents, SessionStore
from hivebot.transport import TelegramTransport

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # Every Bot API call is logged by httpx at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def _post_init(app: Application, config: AppConfig) -> None:
    commands = [
        BotCommand("checkin", "Start this week's check-in"),
        BotCommand("help", "How the weekly check-in works"),
        BotCommand("optout", "Stop weekly check-ins"),
        BotCommand("optin", "Receive weekly check-ins again"),
    ]

    for scope in (BotCommandScopeDefault(), BotCommandScopeAllPrivateChats()):
        await app.bot.set_my_commands(commands, scope=scope)

    scheduler: CheckinScheduler = app.bot_data["scheduler"]
    scheduler.register(
        app.job_queue,
        checkin_weekday=config.checkin_weekday,
        checkin_time=config.checkin_time,
        reminder_weekday=config.reminder_weekday,
        reminder_time=config.reminder_time,
    )
    logger.info("Telegram command menu updated, scheduler registered")


def build_application() -> Application:
    ensure_data_dirs()
    config = load_config()

    db = Database(DB_PATH)
    db.init()
    for admin_id in config.admin_user_ids:
        db.add_admin(admin_id)

    app = (
        Application.builder()
        .token(config.telegram_bot_token)
        .concurrent_updates(True)
        .post_init(partial(_post_init, config=config))
        .build()
    )

    transport = TelegramTransport(app.bot, candidates=lambda: [u.user_id for u in db.list_users()])
    store = SessionStore(ttl=timedelta(hours=config.session_ttl_hours), tz=config.timezone)
    questionnaire = Questionnaire(store=store, repository=db, transport=transport, tz=config.timezone)
    resolver = EligibilityResolver(
        repository=db,
        transport=transport,
        source=config.audience_source,
        chat_id=config.audience_chat_id,
    )
    scheduler = CheckinScheduler(
        questionnaire=questionnaire,
        resolver=resolver,
        repository=db,
        transport=transport,
        send_delay=config.send_delay_seconds,
        tz=config.timezone,
    )

    app.bot_data["db"] = db
    app.bot_data["questionnaire"] = questionnaire
    app.bot_data["scheduler"] = scheduler
    app.bot_data["recent_events"] = RecentEvents()

    private = filters.ChatType.PRIVATE
    app.add_handler(CommandHandler("start", start_command, filters=private))
    app.add_handler(CommandHandler(["checkin", "hive"], checkin_command, filters=private))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("optout", optout_command, filters=private))
    app.add_handler(CommandHandler("optin", optin_command, filters=private))
    app.add_handler(CommandHandler("stats", stats_command, filters=private))
    app.add_handler(CommandHandler("broadcast", broadcast_command, filters=private))

    app.add_handler(CallbackQueryHandler(callback_handler))
    app.add_handler(MessageHandler(private & filters.TEXT & ~filters.COMMAND, text_message_handler))

    return app


def main() -> None:
    configure_logging()

    try:
        app = build_application()
    except (ConfigError, RepositoryError) as exc:
        logging.error("Startup failed: %s", exc)
        sys.exit(1)

    app.run_polling(drop_pending_updates=False)


if __name__ == "__main__":
    main()
