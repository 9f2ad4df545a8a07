"""Data Access Objects for the table catalog."""

import json
from typing import Any, List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from tablestats.catalog.models import TableMeta, Field, View
from tablestats.catalog.schemas import (
    ColumnMeta,
    FieldDescriptor,
    FieldMap,
    STATISTICS_VIEW_TYPES,
    ViewRecord,
)
from tablestats.core.exceptions import MalformedStoredFilterError, NotFoundError


class TableDAO:
    """Resolves logical tables to their physical storage."""

    def __init__(self, db: Session):
        self.db = db

    def get_db_table_name(self, table_id: str) -> str:
        """Get the physical table name, failing if the table is unknown."""
        stmt = select(TableMeta.db_table_name).where(
            TableMeta.id == table_id, TableMeta.deleted_time.is_(None)
        )
        db_table_name = self.db.execute(stmt).scalar_one_or_none()
        if db_table_name is None:
            raise NotFoundError(f"Table {table_id} not found")
        return db_table_name


class FieldDAO:
    """Loads field descriptors for a table."""

    def __init__(self, db: Session):
        self.db = db

    def load_fields(self, table_id: str, field_ids: Optional[List[str]] = None) -> List[FieldDescriptor]:
        """Get the live fields of a table, optionally restricted to some ids."""
        stmt = select(Field).where(Field.table_id == table_id, Field.deleted_time.is_(None))
        if field_ids is not None:
            stmt = stmt.where(Field.id.in_(field_ids))
        stmt = stmt.order_by(Field.order, Field.created_time)
        result = self.db.execute(stmt)
        return [FieldDescriptor.from_model(row) for row in result.scalars().all()]

    def load_field_map(self, table_id: str) -> FieldMap:
        return FieldMap(self.load_fields(table_id))

    def get_field(self, field_id: str) -> FieldDescriptor:
        """Get a single live field by id."""
        stmt = select(Field).where(Field.id == field_id, Field.deleted_time.is_(None))
        row = self.db.execute(stmt).scalars().first()
        if row is None:
            raise NotFoundError(f"Field {field_id} not found")
        return FieldDescriptor.from_model(row)


class ViewDAO:
    """Loads stored view configuration."""

    def __init__(self, db: Session):
        self.db = db

    def find_view(self, table_id: str, view_id: Optional[str]) -> Optional[ViewRecord]:
        """
        Find a grid-like, non-deleted view of the table.

        A missing view is not an error: callers simply get no view context.
        """
        if not view_id:
            return None

        stmt = select(View).where(
            View.table_id == table_id,
            View.id == view_id,
            View.type.in_([view_type.value for view_type in STATISTICS_VIEW_TYPES]),
            View.deleted_time.is_(None),
        )
        view = self.db.execute(stmt).scalars().first()
        if view is None:
            return None

        column_meta_raw = self._decode(view, "column_meta") or {}
        try:
            column_meta = {
                field_id: ColumnMeta.model_validate(meta) for field_id, meta in column_meta_raw.items()
            }
        except (AttributeError, ValidationError) as e:
            raise MalformedStoredFilterError(f"View {view.id} has invalid column meta", str(e)) from e

        return ViewRecord(
            id=view.id,
            filter=self._decode(view, "filter"),
            sort=self._decode(view, "sort"),
            group=self._decode(view, "group"),
            column_meta=column_meta,
        )

    @staticmethod
    def _decode(view: View, attribute: str) -> Any:
        raw = getattr(view, attribute)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise MalformedStoredFilterError(f"View {view.id} has malformed {attribute}", str(e)) from e
