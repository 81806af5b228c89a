# main.py — Process lifecycle for the pack datastore
# Features:
# - Logging configured from LOG_LEVEL
# - Schema creation (development) or alembic-managed schema (production)
# - One-shot system pack data migration on startup
# - Optional OpenTelemetry tracing
# - Connection pools disposed on shutdown

import os
import logging
from contextlib import asynccontextmanager

from database import DATABASE_URL, READ_DATABASE_URL, close_db, engine, init_db
from store import Datastore
from telemetry import setup_telemetry

logger = logging.getLogger("packplane")


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
    )


def _check_startup_config():
    """Log configuration problems that do not prevent startup."""
    warnings = []

    if DATABASE_URL.startswith("sqlite"):
        warnings.append("DATABASE_URL points at SQLite; use PostgreSQL outside of development")
    if READ_DATABASE_URL and READ_DATABASE_URL == DATABASE_URL:
        warnings.append("READ_DATABASE_URL equals DATABASE_URL; a separate reader pool adds nothing")

    for w in warnings:
        logger.warning(w)

    return len(warnings) == 0


@asynccontextmanager
async def lifespan(create_schema: bool = None):
    """Start the datastore, yield it, and shut it down.

    `create_schema` defaults to CREATE_SCHEMA=true; production deployments
    run the alembic migrations instead.
    """
    if create_schema is None:
        create_schema = os.getenv("CREATE_SCHEMA", "false").lower() == "true"

    configure_logging()
    logger.info("Starting packplane datastore...")
    _check_startup_config()
    setup_telemetry(engine)
    if create_schema:
        await init_db()
        logger.info("Database schema created")

    ds = Datastore()
    repaired = await ds.migrate_data()
    logger.info(f"System pack migration complete ({repaired} renamed)")
    try:
        yield ds
    finally:
        logger.info("Shutting down packplane datastore...")
        await close_db()
