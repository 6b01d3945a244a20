"""Create the planning schema and tables.

Migrations are idempotent; statements that fail because the object already
exists are skipped inside a savepoint so the rest of the file still applies.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "db" / "migrations"


def _extract_statements(sql: str) -> list[str]:
    """Split SQL on ';' and strip comment-only chunks, returning executable statements."""
    statements = []
    for chunk in sql.split(";"):
        sql_lines = [line for line in chunk.splitlines() if not line.strip().startswith("--")]
        stmt = "\n".join(sql_lines).strip()
        if stmt:
            statements.append(stmt)
    return statements


async def setup() -> None:
    """Apply every migration file in name order."""
    from sqlalchemy import text
    from sqlalchemy.ext.asyncio import create_async_engine

    from planning_agent.core.config import to_asyncpg_url

    # DDL requires the admin connection (CREATE SCHEMA, CREATE TABLE)
    database_url = os.environ.get("DATABASE_URL_ADMIN") or os.environ.get("DATABASE_URL_APP")
    if not database_url:
        logger.error("DATABASE_URL_ADMIN (or DATABASE_URL_APP) not set")
        sys.exit(1)

    engine = create_async_engine(to_asyncpg_url(database_url))

    for migration_file in sorted(MIGRATIONS_DIR.glob("*.sql")):
        logger.info("Running migration: %s", migration_file.name)
        async with engine.begin() as conn:
            for statement in _extract_statements(migration_file.read_text()):
                try:
                    await conn.execute(text("SAVEPOINT _migration_stmt"))
                    await conn.execute(text(statement))
                    await conn.execute(text("RELEASE SAVEPOINT _migration_stmt"))
                except Exception as e:
                    await conn.execute(text("ROLLBACK TO SAVEPOINT _migration_stmt"))
                    logger.warning("Statement skipped (may already exist): %s", e)

    await engine.dispose()
    logger.info("Database setup complete")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(setup())
