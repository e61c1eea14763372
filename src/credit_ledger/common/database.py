"""Async database manager for Credit-Ledger (single-DB)."""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from credit_ledger.common.config import LedgerSettings, get_settings
from credit_ledger.common.exceptions import StorageUnavailableError
from credit_ledger.common.logging import get_logger
from credit_ledger.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import credit_ledger.access.models  # noqa: F401
import credit_ledger.codes.models  # noqa: F401
import credit_ledger.credits.models  # noqa: F401

logger = get_logger("database")

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """True for connection-level failures worth retrying (not constraint errors)."""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


class DatabaseManager:
    """Manages a single async database engine."""

    def __init__(self, settings: LedgerSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_async_engine(url, echo=False)
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """One unit of work: commit on normal exit, roll back on any exception."""
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized, call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def run_transaction(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run ``fn(session, *args, **kwargs)`` in its own transaction.

        Transient storage failures re-run the whole transaction with
        exponential backoff; once retries are exhausted the failure surfaces
        as StorageUnavailableError. Domain errors propagate untouched.
        """
        max_retries = self._settings.storage_max_retries
        last_error: BaseException | None = None

        for attempt in range(max_retries + 1):
            try:
                async with self.get_session() as session:
                    return await fn(session, *args, **kwargs)
            except DBAPIError as e:
                if not is_transient(e):
                    raise
                last_error = e
                logger.warning(
                    "Transient storage failure",
                    extra={"context": {
                        "operation": getattr(fn, "__name__", "transaction"),
                        "attempt": attempt + 1,
                        "error": type(e.orig).__name__ if e.orig else type(e).__name__,
                    }},
                )

            if attempt < max_retries:
                await asyncio.sleep(self._settings.storage_retry_backoff * (2 ** attempt))

        logger.error(
            "Storage retries exhausted",
            extra={"context": {"operation": getattr(fn, "__name__", "transaction")}},
        )
        raise StorageUnavailableError() from last_error

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized, call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
