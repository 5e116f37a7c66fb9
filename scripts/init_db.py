"""
Create the products and sync_logs tables (and their enum types)
"""

import argparse
import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import dispose_engine, engine
from core.logging import setup_logging
from models.base import Base
# Registers the tables on Base.metadata
from models.product import Product  # noqa: F401
from models.sync_log import SyncLog  # noqa: F401

logger = logging.getLogger(__name__)


async def init_database(drop: bool = False):
    async with engine.begin() as conn:
        if drop:
            logger.warning("Dropping tables: %s", ", ".join(Base.metadata.tables))
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tables ready: %s", ", ".join(Base.metadata.tables))
    await dispose_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the catalog tables")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(init_database(drop=args.drop))
