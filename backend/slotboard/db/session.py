"""
Database engine and session factory.

The Database object is created once in the application lifespan and handed
to the booking ledger and reminder dispatcher. Nothing else reaches for an
engine on its own.
"""

from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from slotboard.core.config import Settings
from slotboard.core.logging import get_logger

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the async engine and its connection pool."""

    def __init__(self, url: str, settings: Optional[Settings] = None, echo: bool = False):
        self.url = url
        self._settings = settings
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected")
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("Database is not connected")
        return self._sessionmaker

    def connect(self) -> None:
        if self._engine is not None:
            return

        options = {"echo": self._echo}
        is_sqlite = make_url(self.url).get_backend_name().startswith("sqlite")
        # SQLite (tests, local runs) uses its own pool; sizing applies to server databases
        if not is_sqlite and self._settings:
            options.update(
                pool_size=self._settings.DB_POOL_SIZE,
                max_overflow=self._settings.DB_MAX_OVERFLOW,
                pool_timeout=self._settings.DB_POOL_TIMEOUT,
                pool_recycle=self._settings.DB_POOL_RECYCLE,
                pool_pre_ping=True,
            )

        self._engine = create_async_engine(self.url, **options)
        if is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self._sessionmaker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("database_connected", backend=make_url(self.url).get_backend_name())

    async def ping(self):
        """Return the database server time, raising on connection failure."""
        async with self.engine.connect() as conn:
            result = await conn.execute(text("SELECT CURRENT_TIMESTAMP"))
            return result.scalar_one()

    async def dispose(self) -> None:
        """Drain the pool on shutdown."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("database_disposed")
