import asyncio
import logging

from telegram import Update
from telegram.ext import Application, CallbackQueryHandler, MessageHandler, filters

from casebot.config import (
    ALLOWED_USERS,
    CLEANUP_INTERVAL_MINUTES,
    GOOGLE_CREDENTIALS_PATH,
    LOG_LEVEL,
    MAX_DATA_ROW,
    MAX_PENDING_CASES,
    MESSAGE_GROUPING_DELAY_SECONDS,
    PENDING_CASE_TTL_MINUTES,
    SHEET_NAME,
    SINK_MAX_RETRIES,
    SPREADSHEET_ID,
    TELEGRAM_BOT_TOKEN,
)
from casebot.bot.telegram_handler import (
    TelegramTransport,
    handle_error,
    handle_manual_confirmation,
    handle_message,
)
from casebot.core.dispatcher import Dispatcher
from casebot.core.registry import CaseRegistry
from casebot.core.state_machine import CaseStateMachine
from casebot.integrations.google_sheets import GoogleSheetsSink
from casebot.scheduler.cleanup import run_cleanup_loop

logger = logging.getLogger(__name__)


def build_application(sink):
    registry = CaseRegistry(max_pending=MAX_PENDING_CASES)

    async def post_init(app):
        me = await app.bot.get_me()
        logger.info("Bot @%s started", me.username)
        app.bot_data["cleanup_task"] = asyncio.create_task(run_cleanup_loop(
            registry,
            ttl_seconds=PENDING_CASE_TTL_MINUTES * 60,
            interval_seconds=CLEANUP_INTERVAL_MINUTES * 60,
        ))

    async def post_shutdown(app):
        task = app.bot_data.pop("cleanup_task", None)
        if task is not None:
            task.cancel()

    app = (
        Application.builder()
        .token(TELEGRAM_BOT_TOKEN)
        .concurrent_updates(True)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    transport = TelegramTransport(app.bot)
    machine = CaseStateMachine(registry, sink, transport, grouping_delay=MESSAGE_GROUPING_DELAY_SECONDS)
    app.bot_data["registry"] = registry
    app.bot_data["dispatcher"] = Dispatcher(registry, machine, transport)

    app.add_handler(MessageHandler(filters.ALL & ~filters.COMMAND & ~filters.StatusUpdate.ALL, handle_message))
    app.add_handler(CallbackQueryHandler(handle_manual_confirmation, pattern=r"^manual_case_"))
    app.add_error_handler(handle_error)
    return app


def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if not TELEGRAM_BOT_TOKEN:
        print("ERROR: Set TELEGRAM_BOT_TOKEN in .env")
        return
    if not SPREADSHEET_ID:
        print("ERROR: Set SPREADSHEET_ID in .env")
        return

    print("Starting case bot...")
    print(f"Spreadsheet: {SPREADSHEET_ID} ({SHEET_NAME})")
    print(f"Allowed users: {ALLOWED_USERS or 'everyone'}")

    sink = GoogleSheetsSink.from_credentials_file(
        SPREADSHEET_ID,
        SHEET_NAME,
        GOOGLE_CREDENTIALS_PATH,
        max_data_row=MAX_DATA_ROW,
        max_retries=SINK_MAX_RETRIES,
    )
    app = build_application(sink)

    print("Bot is running. Forward a message on Telegram.")
    app.run_polling(allowed_updates=[Update.MESSAGE, Update.CALLBACK_QUERY])

if __name__ == "__main__":
    main()
