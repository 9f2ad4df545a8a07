"""SQL dialect specific expressions used by the query builder."""

from abc import ABC, abstractmethod

from sqlalchemy import Integer, Text, cast, func
from sqlalchemy.sql.elements import ColumnElement


class SqlDialect(ABC):
    """Dialect interface; shared expressions render the same on every supported backend."""

    name = "generic"

    def json_as_text(self, column: ColumnElement) -> ColumnElement:
        """Structured values cannot be compared or distinct-counted directly."""
        return cast(column, Text)

    @abstractmethod
    def date_range_of_days(self, column: ColumnElement) -> ColumnElement:
        """Whole days between the latest and earliest value."""

    def date_range_of_months(self, column: ColumnElement) -> ColumnElement:
        """`max,min` as one string; the month difference is computed after fetch."""
        return (
            func.coalesce(cast(func.max(column), Text), "")
            + ","
            + func.coalesce(cast(func.min(column), Text), "")
        )


class SqliteDialect(SqlDialect):
    name = "sqlite"

    def date_range_of_days(self, column: ColumnElement) -> ColumnElement:
        return cast(func.julianday(func.max(column)) - func.julianday(func.min(column)), Integer)


class PostgresDialect(SqlDialect):
    name = "postgresql"

    def date_range_of_days(self, column: ColumnElement) -> ColumnElement:
        return cast(func.date_part("day", func.max(column) - func.min(column)), Integer)


_DIALECTS = {
    "sqlite": SqliteDialect,
    "postgresql": PostgresDialect,
}


def get_dialect(name: str) -> SqlDialect:
    """Get the dialect helper for a SQLAlchemy dialect name."""
    dialect_cls = _DIALECTS.get(name)
    if dialect_cls is None:
        raise ValueError(f"Unsupported database dialect: {name}")
    return dialect_cls()
