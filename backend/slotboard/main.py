"""
Slotboard API - Main Application Entry Point

Organizers publish events with a fixed number of slots, users claim and
release slots, and a background dispatcher reminds occupants shortly before
their event starts.

- Slot uniqueness enforced by a database constraint, never an in-process lock
- Reminder sweep as a cancellable recurring task with per-send timeouts
- Structured logging with request correlation
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from telegram.error import TelegramError

from slotboard.core.config import get_settings
from slotboard.core.exceptions import SlotboardError
from slotboard.core.logging import setup_logging, get_logger
from slotboard.core.metrics import metrics_endpoint
from slotboard.api.router import api_router
from slotboard.api.middleware import RequestLoggingMiddleware
from slotboard.db.session import Database
from slotboard.infrastructure.redis_client import CycleLock, close_redis, get_redis_status
from slotboard.services.booking_ledger import BookingLedger
from slotboard.services.notifier import Notifier, TelegramNotifier
from slotboard.services.reminder_dispatcher import ReminderDispatcher

settings = get_settings()
logger = get_logger(__name__)

REMINDER_LOCK_NAME = "slotboard:reminder-cycle"


def build_notifier() -> Optional[Notifier]:
    if not settings.REMINDER_ENABLED:
        logger.info("reminders_disabled")
        return None
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.warning("reminders_unavailable", reason="TELEGRAM_BOT_TOKEN is not set")
        return None
    return TelegramNotifier(settings.TELEGRAM_BOT_TOKEN)


async def start_reminders(app: FastAPI, database: Database) -> Optional[ReminderDispatcher]:
    """
    Start the reminder sweep. A notifier that cannot reach its channel at
    startup is logged and the sweep starts anyway: every send retries the
    connection, and bookings keep working either way.
    """
    app.state.notifier_status = "disabled"
    notifier = build_notifier()
    if notifier is None:
        return None

    try:
        await notifier.start()
        app.state.notifier_status = "ready"
    except TelegramError as exc:
        app.state.notifier_status = "unavailable"
        logger.error("notifier_start_failed", error=str(exc), error_type=type(exc).__name__)

    dispatcher = ReminderDispatcher(
        database.sessionmaker,
        notifier,
        interval=settings.REMINDER_INTERVAL_SECONDS,
        lookahead=timedelta(minutes=settings.REMINDER_LOOKAHEAD_MINUTES),
        send_timeout=settings.REMINDER_SEND_TIMEOUT_SECONDS,
        lock=CycleLock(REMINDER_LOCK_NAME, settings.REMINDER_LOCK_TTL_SECONDS),
    )
    dispatcher.start()
    return dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    database = Database(settings.DATABASE_URL, settings, echo=settings.DEBUG)
    database.connect()
    app.state.database = database
    app.state.ledger = BookingLedger(database.sessionmaker)

    app.state.dispatcher = await start_reminders(app, database)

    yield

    dispatcher = app.state.dispatcher
    if dispatcher is not None:
        await dispatcher.stop()
        await dispatcher.notifier.close()
    await close_redis()
    await database.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Slot booking API with reminder notifications",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(SlotboardError)
async def slotboard_error_handler(request: Request, exc: SlotboardError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint for Docker and load balancers."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "redis": await get_redis_status(),
        "reminders": "running" if dispatcher is not None and dispatcher.running else "stopped",
        "notifier": getattr(request.app.state, "notifier_status", "disabled"),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_endpoint()


def run() -> None:
    import uvicorn

    uvicorn.run("slotboard.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
