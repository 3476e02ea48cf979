"""
Database handle: owns the async engine and session factory.

One Database is constructed at boot and passed to every component that
touches the store. Initialization is asynchronous and happens independently
of the HTTP listener; service calls await readiness before opening a
transaction.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pet_boarding.core.config import Settings
from pet_boarding.core.exceptions import TransactionFailure
from pet_boarding.core.logging import get_logger

logger = get_logger(__name__)


class Database:
    def __init__(self, url: str, ready_timeout: Optional[float] = None, **engine_kwargs):
        self.url = url
        self.ready_timeout = ready_timeout
        self._engine_kwargs = engine_kwargs
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._ready = asyncio.Event()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        kwargs = {"echo": settings.DEBUG, "pool_pre_ping": True}
        if not settings.DATABASE_URL.startswith("sqlite"):
            kwargs.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_recycle=settings.DB_POOL_RECYCLE,
            )
        return cls(settings.DATABASE_URL, ready_timeout=settings.DB_READY_TIMEOUT, **kwargs)

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def connect(self, create_tables: bool = False) -> None:
        """Create the engine, verify connectivity and open the readiness gate."""
        engine = create_async_engine(self.url, **self._engine_kwargs)
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        if create_tables:
            # Register every mapped table before create_all
            from pet_boarding import models  # noqa: F401
            from pet_boarding.db.base import Base

            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        self.engine = engine
        self.session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        self._ready.set()
        logger.info("database_ready", dialect=engine.dialect.name)

    async def wait_ready(self, timeout: Optional[float] = None) -> None:
        if not self._ready.is_set():
            await asyncio.wait_for(self._ready.wait(), timeout)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Yield a session inside BEGIN .. COMMIT.

        Any exception rolls the whole unit back. Store errors surface as
        TransactionFailure so driver detail never reaches callers.
        """
        try:
            await self.wait_ready(self.ready_timeout)
        except asyncio.TimeoutError:
            raise TransactionFailure("The database is not ready yet, please retry")

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except SQLAlchemyError as e:
                logger.error("transaction_failed", error=str(e), error_type=type(e).__name__)
                raise TransactionFailure() from e

    async def dispose(self) -> None:
        self._ready.clear()
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
        logger.info("database_closed")
