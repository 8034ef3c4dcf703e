from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from loguru import logger

from group_raffle.config import Settings
from group_raffle.errors import Unavailable


def create_engine(settings: Settings) -> AsyncEngine:
    """Create async engine for the configured database"""
    connect_args = {}
    if settings.DATABASE_URL.startswith("sqlite"):
        # Concurrent writers wait for the file lock instead of failing at once
        connect_args["timeout"] = 30

    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.LOG_LEVEL == "DEBUG",
        poolclass=NullPool,
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create async session factory bound to the engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session that commits on success and rolls back on error

    Database failures are re-raised as ``Unavailable`` so callers never
    depend on driver specific exceptions.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database operation failed: {e}")
            raise Unavailable(f"Database operation failed: {e}") from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
