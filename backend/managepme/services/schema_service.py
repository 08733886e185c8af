# Overview: Structural database schema checks (missing tables/columns after a skipped migration).

from __future__ import annotations

from sqlalchemy import inspect

from ..extensions import db
from .errors import ConfigurationError


MIGRATE_HINT = "Run `flask db upgrade` to apply pending migrations."


def missing_columns(table: str, columns) -> list[str]:
    inspector = inspect(db.engine)
    if not inspector.has_table(table):
        return list(columns)
    present = {col["name"] for col in inspector.get_columns(table)}
    return [c for c in columns if c not in present]


def require_columns(table: str, columns) -> None:
    """Raise ConfigurationError when the live table lacks any of the columns."""
    missing = missing_columns(table, columns)
    if missing:
        raise ConfigurationError(
            f"Table {table} is missing columns: {', '.join(missing)}. {MIGRATE_HINT}",
            details={"table": table, "missing_columns": missing},
        )


def check_schema() -> dict[str, list[str]]:
    """Compare every mapped table with the database; returns {table: [missing columns]}."""
    problems: dict[str, list[str]] = {}
    for table in db.metadata.sorted_tables:
        missing = missing_columns(table.name, [c.name for c in table.columns])
        if missing:
            problems[table.name] = missing
    return problems
