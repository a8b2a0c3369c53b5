"""
Touchbase — Bot wiring and entry point.

Two triggers, one roster:
- `serve`: the webhook server for button presses, plus the weekly check-in
  on python-telegram-bot's job queue.
- `checkin`: send the check-in once and exit, for cron-style hosting.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from datetime import time as dt_time
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from telegram import Bot
from telegram.ext import Application, ApplicationBuilder, ContextTypes

from touchbase.adapters.google_sheets_store import GoogleSheetsContactStore
from touchbase.adapters.telegram_gateway import TelegramGateway
from touchbase.bot.webhook import create_webhook_app
from touchbase.config import load_settings
from touchbase.core.callback_handler import CallbackHandler
from touchbase.core.checkin import CheckinScheduler
from touchbase.integrations.google_auth import SheetsAuthError, build_sheets_service

if TYPE_CHECKING:
    from fastapi import FastAPI

    from touchbase.config import Settings
    from touchbase.core.checkin import CheckinResult
    from touchbase.ports.contact_store_port import ContactStorePort

logger = logging.getLogger(__name__)


def build_app(
    settings: Settings,
    store: ContactStorePort | None = None,
) -> tuple[FastAPI, Application]:
    """Build the webhook app and the Telegram Application behind it.

    Args:
        settings: Loaded settings, passed to every component.
        store: Contact store implementation. Defaults to GoogleSheetsContactStore.

    Raises:
        SheetsAuthError: No valid Google token; raised here, at startup,
            rather than on the first button press.
    """
    # No updater: updates arrive through our own webhook endpoint
    application = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).updater(None).build()

    if store is None:
        store = GoogleSheetsContactStore(
            settings, build_sheets_service(settings.GOOGLE_TOKEN_PATH),
        )
    gateway = TelegramGateway(application.bot)

    scheduler = CheckinScheduler(store, gateway, settings)
    handler = CallbackHandler(store, gateway, settings)

    if settings.CHECKIN_ENABLED:
        _setup_weekly_checkin(application, scheduler, settings)

    @asynccontextmanager
    async def lifespan(_app):
        async with application:
            if settings.WEBHOOK_URL:
                await application.bot.set_webhook(
                    url=settings.WEBHOOK_URL,
                    secret_token=settings.WEBHOOK_SECRET or None,
                    allowed_updates=["callback_query"],
                )
                logger.info("Telegram webhook registered at %s", settings.WEBHOOK_URL)
            await application.start()
            yield
            await application.stop()

    app = create_webhook_app(handler, settings, lifespan=lifespan)
    logger.info("Webhook app built (check-in %s)",
                "scheduled" if settings.CHECKIN_ENABLED else "disabled")
    return app, application


def _setup_weekly_checkin(
    application: Application,
    scheduler: CheckinScheduler,
    settings: Settings,
) -> None:
    """Register the weekly check-in job."""
    tz = ZoneInfo(settings.TIMEZONE)
    checkin_time = dt_time(hour=settings.CHECKIN_HOUR, minute=0, tzinfo=tz)

    async def _checkin_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        result = await scheduler.run()
        logger.info("Scheduled check-in result: %s", result.to_dict())

    application.job_queue.run_daily(
        _checkin_job_callback,
        time=checkin_time,
        days=(settings.CHECKIN_WEEKDAY,),
        name="weekly_checkin",
    )

    logger.info(
        "Weekly check-in scheduled on day %d at %02d:00 %s",
        settings.CHECKIN_WEEKDAY,
        settings.CHECKIN_HOUR,
        settings.TIMEZONE,
    )


async def run_checkin_once(settings: Settings) -> CheckinResult:
    """Send one check-in through a short-lived Bot session."""
    store = GoogleSheetsContactStore(settings, build_sheets_service(settings.GOOGLE_TOKEN_PATH))
    bot = Bot(settings.TELEGRAM_BOT_TOKEN)
    async with bot:
        scheduler = CheckinScheduler(store, TelegramGateway(bot), settings)
        return await scheduler.run()


def main(argv: list[str] | None = None) -> None:
    """Entry point: `serve` (default) or `checkin`."""
    parser = argparse.ArgumentParser(prog="touchbase")
    parser.add_argument("command", nargs="?", choices=("serve", "checkin"), default="serve")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    settings = load_settings()

    try:
        if args.command == "checkin":
            logger.info("Running one-off check-in...")
            result = asyncio.run(run_checkin_once(settings))
            print(json.dumps(result.to_dict()))
            return

        logger.info("Starting Touchbase webhook server...")
        app, _application = build_app(settings)
    except SheetsAuthError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    import uvicorn

    uvicorn.run(app, host=settings.WEBHOOK_HOST, port=settings.WEBHOOK_PORT)


if __name__ == "__main__":
    main()
