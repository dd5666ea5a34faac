#!/usr/bin/env python3
"""Apply the Ella Rises schema to the configured database.

Uses the same settings as the web app (``ER_DATABASE_URL`` or the discrete
``RDS_*``/``DB_*`` variables). Every statement is idempotent.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from ella_rises.core.config import get_settings
from ella_rises.core.telemetry import configure_api_logging
from ella_rises.services.repository import PostgresRepository
from ella_rises.services.schema import SCHEMA_STATEMENTS

logger = logging.getLogger("apply_schema")


async def _apply(database_url: str | None) -> None:
    settings = get_settings()
    repository = PostgresRepository(
        database_url=database_url or settings.resolved_database_url(),
        min_pool_size=1,
        max_pool_size=1,
        command_timeout=settings.database_command_timeout_seconds,
        ssl_required=settings.ssl_required,
    )
    try:
        await repository.ensure_schema()
    finally:
        await repository.close()
    logger.info("applied %s schema statements", len(SCHEMA_STATEMENTS))


def main() -> None:
    parser = argparse.ArgumentParser(description="Create Ella Rises tables and indexes if missing.")
    parser.add_argument("--database-url", help="Override the configured database URL")
    args = parser.parse_args()

    configure_api_logging()
    asyncio.run(_apply(args.database_url))


if __name__ == "__main__":
    main()
