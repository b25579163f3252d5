"""Additive, backward-compatible schema upgrades for existing databases.

Older deployments created ``submissions`` before claim tracking existed. The
columns below are added in place when missing; adding a column that is
already present is a no-op rather than an error.
"""

from __future__ import annotations

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, ProgrammingError

logger = logging.getLogger(__name__)

SUBMISSIONS_TABLE = "submissions"

# Column name -> DDL type clause. Order matters for readability only.
ADDITIVE_COLUMNS: dict[str, str] = {
    "claimed": "BOOLEAN DEFAULT FALSE NOT NULL",
    "claimed_at": "TIMESTAMP",
    "transaction_hash": "TEXT",
    "claim_attempted_at": "TIMESTAMP",
}


def _is_duplicate_column(exc: Exception) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return "duplicate column" in message or "already exists" in message


def ensure_additive_columns(engine: Engine, table: str = SUBMISSIONS_TABLE) -> list[str]:
    """Add any missing additive columns to ``table``.

    Args:
        engine: Engine bound to the target database.
        table: Table to upgrade.

    Returns:
        Names of the columns that were actually added.
    """
    inspector = inspect(engine)
    if not inspector.has_table(table):
        return []

    existing = {column["name"] for column in inspector.get_columns(table)}
    added: list[str] = []
    for name, ddl in ADDITIVE_COLUMNS.items():
        if name in existing:
            continue
        try:
            with engine.begin() as conn:
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))
        except (OperationalError, ProgrammingError) as exc:
            # Another process may have added it between inspection and ALTER.
            if not _is_duplicate_column(exc):
                raise
            logger.debug("Column %s.%s already present", table, name)
            continue
        logger.info("Added column %s.%s", table, name)
        added.append(name)
    return added
