"""Block until Postgres accepts connections. Imported by start_api.py before migrating."""
import logging
import os
import time

import psycopg2

logging.basicConfig(level=logging.INFO, format="[wait_for_db] %(message)s")
logger = logging.getLogger("wait_for_db")


def _libpq_dsn(database_url: str) -> str:
    # SQLAlchemy URLs carry the driver name, libpq does not understand it
    for prefix in ("postgresql+psycopg2://", "postgres://"):
        if database_url.startswith(prefix):
            return "postgresql://" + database_url[len(prefix):]
    return database_url


def wait_for_postgres(database_url: str, timeout_s: int = 60) -> None:
    dsn = _libpq_dsn(database_url)
    if not dsn.startswith("postgresql://"):
        logger.info("Not a Postgres URL, nothing to wait for")
        return
    deadline = time.monotonic() + timeout_s
    logger.info("Waiting for Postgres (timeout=%ss)", timeout_s)
    while True:
        try:
            psycopg2.connect(dsn).close()
            logger.info("Postgres is ready.")
            return
        except psycopg2.OperationalError as e:
            if time.monotonic() > deadline:
                logger.error("Timed out waiting for DB. Last error: %s", e)
                raise
            time.sleep(1)


DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise SystemExit("DATABASE_URL is not set")
wait_for_postgres(DATABASE_URL, int(os.getenv("DB_WAIT_TIMEOUT", "60")))
