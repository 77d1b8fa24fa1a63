"""
structlog setup for the slotboard API and its in-process reminder ticker.

Every record goes through the stdlib root logger so uvicorn, SQLAlchemy and
python-telegram-bot output lands in the same stream as our own events.
Production renders one JSON object per line; anything else gets the coloured
console renderer. Request-scoped keys (request_id, method, path) arrive via
contextvars bound in RequestLoggingMiddleware.
"""

import logging
import sys
import structlog
from slotboard.core.config import get_settings

# Per-request/per-poll chatter; their warnings still come through
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "telegram")


def _shared_processors(production: bool) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if production:
        # reminder_send_failed and friends carry tracebacks as a JSON field
        processors.append(structlog.processors.format_exc_info)
    return processors


def _stdout_handler(production: bool) -> logging.Handler:
    renderer = structlog.processors.JSONRenderer() if production else structlog.dev.ConsoleRenderer(colors=True)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ]
        )
    )
    return handler


def setup_logging() -> None:
    """Configure structlog and the root handler. Safe to call on every app startup."""
    settings = get_settings()
    production = settings.ENVIRONMENT == "production"

    structlog.configure(
        processors=[
            *_shared_processors(production),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    # The lifespan runs again under tests and --reload; keep a single handler
    for existing in list(root_logger.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root_logger.removeHandler(existing)
    root_logger.addHandler(_stdout_handler(production))
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
