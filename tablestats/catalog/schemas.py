"""
Catalog types shared by the query services.

Field descriptors are immutable once loaded for a request. The services only
read them, mostly to resolve storage columns and to turn raw store values
back into cell values.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField


class DbFieldType(str, Enum):
    """Storage types of physical columns."""

    TEXT = "TEXT"
    INTEGER = "INTEGER"
    REAL = "REAL"
    BOOLEAN = "BOOLEAN"
    DATETIME = "DATETIME"
    JSON = "JSON"
    BLOB = "BLOB"


class CellValueType(str, Enum):
    """Types of values as presented to API consumers."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATETIME = "dateTime"


class FieldType(str, Enum):
    """User-facing field types."""

    SINGLE_LINE_TEXT = "singleLineText"
    LONG_TEXT = "longText"
    NUMBER = "number"
    CHECKBOX = "checkbox"
    DATE = "date"
    SINGLE_SELECT = "singleSelect"
    MULTIPLE_SELECT = "multipleSelect"
    USER = "user"
    LINK = "link"
    ATTACHMENT = "attachment"


class ViewType(str, Enum):
    """View types. Only grid-like views carry statistics configuration."""

    GRID = "grid"
    GANTT = "gantt"
    KANBAN = "kanban"
    GALLERY = "gallery"
    FORM = "form"


STATISTICS_VIEW_TYPES = (ViewType.GRID, ViewType.GANTT)


@dataclass(frozen=True)
class LinkFieldOptions:
    """Junction-table layout of a link field."""

    foreign_table_id: str
    fk_host_table_name: str
    self_key_name: str
    foreign_key_name: str

    @classmethod
    def from_options(cls, options: Dict[str, Any]) -> "LinkFieldOptions":
        return cls(
            foreign_table_id=options["foreignTableId"],
            fk_host_table_name=options["fkHostTableName"],
            self_key_name=options["selfKeyName"],
            foreign_key_name=options["foreignKeyName"],
        )


@dataclass(frozen=True)
class FieldDescriptor:
    """Read-only description of a field and its storage column."""

    id: str
    name: str
    type: FieldType
    cell_value_type: CellValueType
    db_field_type: DbFieldType
    db_field_name: str
    is_multiple_cell_value: bool = False
    options: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_model(cls, model) -> "FieldDescriptor":
        """Build a descriptor from a `Field` row."""
        return cls(
            id=model.id,
            name=model.name,
            type=FieldType(model.type),
            cell_value_type=CellValueType(model.cell_value_type),
            db_field_type=DbFieldType(model.db_field_type),
            db_field_name=model.db_field_name,
            is_multiple_cell_value=bool(model.is_multiple_cell_value),
            options=json.loads(model.options) if model.options else {},
        )

    @property
    def is_json(self) -> bool:
        return self.db_field_type == DbFieldType.JSON

    def convert_db_value_to_cell_value(self, value: Any) -> Any:
        """Convert a raw store value into the value shown in a cell."""
        if value is None:
            return None

        if self.is_json:
            if isinstance(value, (bytes, str)):
                try:
                    return json.loads(value)
                except ValueError:
                    return value
            return value

        if self.cell_value_type == CellValueType.BOOLEAN:
            return bool(value)

        if self.cell_value_type == CellValueType.DATETIME:
            if isinstance(value, (datetime, date)):
                return value.isoformat()
            return str(value)

        if self.cell_value_type == CellValueType.NUMBER:
            if isinstance(value, Decimal):
                return float(value)
            return value

        return value

    def link_options(self) -> LinkFieldOptions:
        return LinkFieldOptions.from_options(self.options)


class FieldMap:
    """
    Field lookup by id and by name.

    Ids and names live in separate maps; `get` resolves an id first and only then
    falls back to the name, so a field named like another field's id never
    shadows that field.
    """

    def __init__(self, fields: Iterable[FieldDescriptor]):
        self.fields: List[FieldDescriptor] = list(fields)
        self.by_id: Dict[str, FieldDescriptor] = {f.id: f for f in self.fields}
        self.by_name: Dict[str, FieldDescriptor] = {f.name: f for f in self.fields}

    def get(self, key: str) -> Optional[FieldDescriptor]:
        return self.by_id.get(key) or self.by_name.get(key)

    def __getitem__(self, key: str) -> FieldDescriptor:
        descriptor = self.get(key)
        if descriptor is None:
            raise KeyError(key)
        return descriptor

    def __contains__(self, key: object) -> bool:
        return key in self.by_id or key in self.by_name

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)


class ColumnMeta(BaseModel):
    """Per-column view settings."""

    order: Optional[float] = None
    width: Optional[int] = None
    hidden: Optional[bool] = None
    statistic_func: Optional[str] = PydanticField(default=None, alias="statisticFunc")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


@dataclass
class ViewRecord:
    """Decoded view configuration."""

    id: str
    filter: Optional[Dict[str, Any]] = None
    sort: Optional[Dict[str, Any]] = None
    group: Optional[List[Dict[str, Any]]] = None
    column_meta: Dict[str, ColumnMeta] = field(default_factory=dict)
