"""
Schema management

Tables are created straight from the models, there are no migrations.
``init_database`` is idempotent.
"""

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine
from loguru import logger

from .models import Base


async def init_database(engine: AsyncEngine):
    """Create every missing table"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.success(f"Schema ready: {', '.join(sorted(Base.metadata.tables))}")


async def drop_all(engine: AsyncEngine):
    """Drop every model table, data included"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.warning("All tables dropped")


async def check_db_health(engine: AsyncEngine) -> bool:
    """
    Check that the database answers and every model table exists

    Returns:
        False when unreachable or when a table is missing
    """
    try:
        async with engine.connect() as conn:
            existing = await conn.run_sync(
                lambda sync_conn: set(inspect(sync_conn).get_table_names())
            )
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False

    missing = set(Base.metadata.tables) - existing
    if missing:
        logger.warning(f"Missing tables: {', '.join(sorted(missing))}")
        return False

    logger.debug("Database health check passed")
    return True
