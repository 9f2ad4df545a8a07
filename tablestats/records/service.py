"""Link-field record lookups used to narrow row counts."""

import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import column, select, table
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from tablestats.catalog.dao import FieldDAO
from tablestats.catalog.schemas import FieldDescriptor, FieldType
from tablestats.core.exceptions import InvalidQueryError
from tablestats.query.executor import run_query

logger = logging.getLogger(__name__)


class RecordService:
    """Resolves link-cell selections and candidates through a link field's junction table."""

    def __init__(self, db: Session, field_dao: Optional[FieldDAO] = None):
        self.db = db
        self.field_dao = field_dao or FieldDAO(db)

    def get_link_selected_record_ids(self, filter_link_cell_selected: Sequence[str]) -> List[str]:
        """Ids of the records linked through the field (in one record, when a record id is given)."""
        field, record_id = self._resolve_link_field(filter_link_cell_selected)
        statement = self._linked_ids_query(field, record_id).distinct()
        rows = run_query(self.db, statement, "link selected records")
        return [row["foreign_id"] for row in rows]

    def build_link_candidate_query(self, statement: Select, query_builder, table_id: str, filter_link_cell_candidate: Sequence[str]) -> Select:
        """Narrow `statement` to rows that can still be linked (not already linked to the record)."""
        field, record_id = self._resolve_link_field(filter_link_cell_candidate)
        options = field.link_options()
        if options.foreign_table_id != table_id:
            raise InvalidQueryError(
                f"Field {field.id} does not link to table {table_id}", options.foreign_table_id
            )
        linked_ids = self._linked_ids_query(field, record_id)
        return statement.where(query_builder.id_column.not_in(linked_ids))

    def _resolve_link_field(self, link_cell: Sequence[str]) -> Tuple[FieldDescriptor, Optional[str]]:
        if not link_cell or len(link_cell) > 2:
            raise InvalidQueryError("Link cell filter must be [fieldId] or [fieldId, recordId]", link_cell)
        field_id = link_cell[0]
        record_id = link_cell[1] if len(link_cell) > 1 else None

        field = self.field_dao.get_field(field_id)
        if field.type != FieldType.LINK:
            raise InvalidQueryError(f"Field {field_id} is not a link field")
        return field, record_id

    @staticmethod
    def _linked_ids_query(field: FieldDescriptor, record_id: Optional[str]) -> Select:
        options = field.link_options()
        junction = table(
            options.fk_host_table_name,
            column(options.self_key_name),
            column(options.foreign_key_name),
        )
        foreign_key = junction.c[options.foreign_key_name]
        statement = select(foreign_key.label("foreign_id")).where(foreign_key.is_not(None))
        if record_id is not None:
            statement = statement.where(junction.c[options.self_key_name] == record_id)
        return statement
