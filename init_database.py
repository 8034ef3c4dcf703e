#!/usr/bin/env python3
"""
Database initialization script

Creates the tables without starting the bot. With --reset every table
is dropped first (all raffles and subscriptions are lost).

Usage:
    python init_database.py [--reset]
"""

import argparse
import asyncio
import sys
from loguru import logger

from group_raffle.config import Settings
from group_raffle.database import create_engine, init_database, check_db_health
from group_raffle.database.init_db import drop_all


async def main(reset: bool = False):
    """Initialize database"""
    logger.remove()
    logger.add(sys.stderr, level="INFO")

    settings = Settings.load()
    engine = create_engine(settings)

    try:
        print("=" * 80)
        print("DATABASE INITIALIZATION")
        print("=" * 80)

        if reset:
            print("\n[0/2] Dropping all tables...")
            await drop_all(engine)

        print("\n[1/2] Checking database health...")
        is_healthy = await check_db_health(engine)

        if is_healthy:
            print("✅ Database is already initialized and healthy!")
            print("\nAll required tables exist.")
        else:
            print("⚠️  Database needs initialization")

            print("\n[2/2] Initializing database...")
            await init_database(engine)

            print("\n" + "=" * 80)
            print("DATABASE INITIALIZATION COMPLETE!")
            print("=" * 80)

        print("\nYou can now start the bot with: group-raffle-bot\n")

    except Exception as e:
        logger.opt(exception=True).error(f"Database initialization failed: {e}")
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the group raffle database tables")
    parser.add_argument("--reset", action="store_true", help="drop all tables before creating them")
    args = parser.parse_args()
    asyncio.run(main(reset=args.reset))
