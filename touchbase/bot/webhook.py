"""FastAPI app — Telegram webhook for check-in button presses.

Telegram re-delivers an update whenever the webhook answers slowly or with
a non-2xx status. The endpoint therefore answers 200 straight away and
hands the update to the callback handler as a background task; Starlette
only starts background tasks once the response has been sent. Business
outcomes never reach the HTTP response.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import BackgroundTasks, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from touchbase.adapters.telegram_gateway import event_from_update

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager
    from typing import Callable

    from touchbase.config import Settings
    from touchbase.core.callback_handler import CallbackHandler
    from touchbase.data.models import CallbackEvent

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/telegram/webhook"

ACK_BODY = {
    "ok": True,
    "method": "answerCallbackQuery",
    "result": "Processing your button click...",
}


class TransportAck:
    """Responder handed to the callback handler.

    By the time the handler runs, the 200 is already on the wire, so calling
    this only records that the handler reached its ack step. Extra calls are
    harmless.
    """

    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1
        if self.calls == 1:
            logger.debug("Transport ack confirmed by handler")

    @property
    def released(self) -> bool:
        return self.calls > 0


def create_webhook_app(
    handler: CallbackHandler,
    settings: Settings,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager] | None = None,
) -> FastAPI:
    """Build the webhook app around an already-wired CallbackHandler."""
    app = FastAPI(title="Touchbase", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post(WEBHOOK_PATH)
    async def telegram_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_telegram_bot_api_secret_token: str | None = Header(default=None),
    ):
        """Handle an incoming Telegram update."""
        if settings.WEBHOOK_SECRET and x_telegram_bot_api_secret_token != settings.WEBHOOK_SECRET:
            logger.warning("Webhook call with invalid secret token rejected")
            return JSONResponse({"ok": False}, status_code=403)

        try:
            body = await request.json()
        except ValueError:
            body = {}

        background_tasks.add_task(_process_callback, handler, event_from_update(body))
        logger.info("Webhook responded, Telegram stops retrying")
        return JSONResponse(ACK_BODY, status_code=200, background=background_tasks)

    return app


async def _process_callback(handler: CallbackHandler, event: CallbackEvent | None) -> None:
    """Run the handler after the response has gone out and log its outcome."""
    try:
        outcome = await handler.run(event, TransportAck())
    except Exception:
        logger.exception("Callback processing crashed")
        return
    logger.info("Callback result: %s", outcome.to_dict())
