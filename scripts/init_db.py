#!/usr/bin/env python3
"""
init_db.py
----------

Create the SmileQuest engagement schema. Run once per deploy, before the API
starts; request handlers never create tables.

USAGE:
  python scripts/init_db.py                 # create missing tables and indexes
  python scripts/init_db.py --check         # only verify the database is reachable
  python scripts/init_db.py --database-url sqlite+aiosqlite:///./smilequest.db
"""

import argparse
import asyncio
import sys

from smilequest.core.config.config import Config
from smilequest.core.database.service import DatabaseService
from smilequest.core.exceptions import DatabaseInitializationError
from smilequest.core.logging.logger import get_logger, setup_logging, shutdown_logging

logger = get_logger("smilequest.scripts.init_db")


async def _run(database_url: str, check_only: bool) -> int:
    db = DatabaseService(database_url)
    try:
        await db.initialize()
        if not await db.health_check():
            logger.error("Database is not reachable", extra={"url_scheme": database_url.split(":", 1)[0]})
            return 1
        if check_only:
            logger.info("Database reachable; schema untouched")
            return 0
        await db.create_schema()
        return 0
    finally:
        await db.shutdown()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create the SmileQuest database schema.")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    parser.add_argument("--check", action="store_true", help="Only check connectivity")
    args = parser.parse_args(argv)

    setup_logging()
    try:
        return asyncio.run(_run(args.database_url or Config.DATABASE_URL, args.check))
    except DatabaseInitializationError as exc:
        logger.error("Schema initialization failed", extra={"error": str(exc)})
        return 2
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
