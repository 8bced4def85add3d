#!/usr/bin/env python3
"""Unified entry point for the reminder bot.

Everything runs in one process around a single ReminderStore:
- delivery scheduler thread
- Telegram update polling thread
- optional MCP server thread (SSE transport)
- REST API served by uvicorn in the main thread

Keeping every component in one process means the store's reader/writer lock
really is the only gate in front of the database.
"""

import signal
import sys
import threading

import uvicorn

from api_server import create_app
from background_worker import DeliveryScheduler
from bot import ReminderBot
from config import settings
from logger_config import setup_logger
from mcp_server import create_mcp
from notifier import TelegramNotifier
from store import ReminderStore
from telegram_client import TelegramClient

logger = setup_logger(__name__, 'bot.log')

shutdown_requested = threading.Event()


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_requested.set()


def fatal(message: str):
    logger.error(message)
    sys.exit(1)


def main():
    """Main entry point - start all components."""
    logger.info("=" * 60)
    logger.info("Reminder Bot - Unified Startup")
    logger.info("=" * 60)

    try:
        store = ReminderStore.open(settings.DATABASE_URL)
    except Exception as e:
        fatal(f"Failed to open database: {e}")

    client = TelegramClient(
        settings.TELEGRAM_API_TOKEN,
        base_url=settings.TELEGRAM_API_URL,
        timeout=settings.TELEGRAM_TIMEOUT_SECONDS,
        verbose=settings.IS_VERBOSE
    )
    scheduler = DeliveryScheduler(store, TelegramNotifier(client))
    bot = ReminderBot(
        client,
        store,
        restrict_users=settings.RESTRICT_USERS,
        allowed_user_ids=settings.ALLOWED_USER_IDS,
        timezone=settings.TIMEZONE,
        interval_seconds=settings.TELEGRAM_INTERVAL_SECONDS
    )

    threads = []
    try:
        if settings.BOT_ENABLED:
            me = client.get_me()
            if not me.ok:
                fatal(f"Failed to get info of the bot: {me.description}")
            # getUpdates does not work while a webhook is set up
            if not client.delete_webhook().ok:
                fatal("Failed to delete webhook")
            logger.info(f"Starting bot: @{me.result.get('username')} ({me.result.get('first_name')})")

        if settings.WORKER_ENABLED:
            logger.info("Starting delivery scheduler...")
            scheduler.start()

        if settings.BOT_ENABLED:
            bot_thread = threading.Thread(target=bot.run, name="bot-polling", daemon=True)
            bot_thread.start()
            threads.append(bot_thread)

        if settings.MCP_ENABLED:
            if settings.MCP_TRANSPORT.lower() != "sse":
                logger.warning("Only the SSE transport can run inside main.py; use mcp_server.py for stdio")
            else:
                logger.info(f"Starting MCP server on http://{settings.MCP_HOST}:{settings.MCP_PORT}/sse")
                mcp = create_mcp(store)
                mcp_thread = threading.Thread(
                    target=mcp.run, kwargs={"transport": "sse"}, name="mcp-server", daemon=True
                )
                mcp_thread.start()

        if settings.API_ENABLED:
            # uvicorn installs its own SIGINT/SIGTERM handlers and returns on shutdown
            logger.info(f"Starting API server on http://{settings.API_HOST}:{settings.API_PORT}")
            uvicorn.run(
                create_app(store),
                host=settings.API_HOST,
                port=settings.API_PORT,
                log_level="warning"
            )
        else:
            signal.signal(signal.SIGTERM, signal_handler)
            signal.signal(signal.SIGINT, signal_handler)
            shutdown_requested.wait()
    finally:
        logger.info("Stopping all components...")
        bot.stop()
        scheduler.stop(timeout=settings.MONITOR_INTERVAL_SECONDS)
        for thread in threads:
            thread.join(timeout=settings.TELEGRAM_TIMEOUT_SECONDS)
        client.close()
        store.close()
        logger.info("All components stopped")


if __name__ == "__main__":
    main()
