"""
Filter and sort compilers.

Both take a statement plus the QueryBuilder that owns the table and return a new
statement. Every filter value is sent as a bound parameter.
"""

import logging
from typing import Any, List, Optional

from sqlalchemy import and_, false, not_, or_, true
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from tablestats.catalog.schemas import CellValueType, FieldDescriptor
from tablestats.core.exceptions import InvalidQueryError
from .schemas import ME, Conjunction, FilterItem, FilterOperator, FilterSet, SortItem, SortOrder

logger = logging.getLogger(__name__)

# Operators that do not need a value
VALUELESS_OPERATORS = {FilterOperator.IS_EMPTY, FilterOperator.IS_NOT_EMPTY}


class FilterCompiler:
    """Compiles a FilterSet into a WHERE predicate."""

    def apply(self, statement: Select, query_builder, filter_set: Optional[FilterSet], with_user_id: Optional[str] = None) -> Select:
        """Return `statement` narrowed by the filter; unchanged when the filter compiles to nothing."""
        if filter_set is None:
            return statement
        predicate = self._compile_set(filter_set, query_builder, with_user_id)
        if predicate is None:
            return statement
        return statement.where(predicate)

    def _compile_set(self, filter_set: FilterSet, query_builder, with_user_id: Optional[str]) -> Optional[ColumnElement]:
        predicates = []
        for entry in filter_set.filter_set:
            if isinstance(entry, FilterSet):
                predicate = self._compile_set(entry, query_builder, with_user_id)
            else:
                predicate = self._compile_item(entry, query_builder, with_user_id)
            if predicate is not None:
                predicates.append(predicate)

        if not predicates:
            return None
        if len(predicates) == 1:
            return predicates[0]
        if filter_set.conjunction == Conjunction.OR:
            return or_(*predicates)
        return and_(*predicates)

    def _compile_item(self, item: FilterItem, query_builder, with_user_id: Optional[str]) -> Optional[ColumnElement]:
        field = query_builder.field_map.get(item.field_id)
        if field is None:
            logger.debug("Skipping filter on unknown field %s", item.field_id)
            return None

        value = self._resolve_value(item.value, with_user_id)
        if item.operator not in VALUELESS_OPERATORS and value is None:
            # Incomplete filter items are ignored
            return None

        col = query_builder.column(field)
        text_col = query_builder.field_expression(field)
        operator = item.operator

        if operator == FilterOperator.IS_EMPTY:
            return self._is_empty(col, text_col, field)
        if operator == FilterOperator.IS_NOT_EMPTY:
            return not_(self._is_empty(col, text_col, field))

        if field.cell_value_type == CellValueType.BOOLEAN and operator in (FilterOperator.IS, FilterOperator.IS_NOT):
            checked = col == true()
            matches = checked if bool(value) else or_(col.is_(None), col == false())
            return matches if operator == FilterOperator.IS else not_(matches)

        if field.is_json:
            return self._compile_json_item(operator, text_col, col, value)

        if operator == FilterOperator.IS:
            return col == value
        if operator == FilterOperator.IS_NOT:
            return or_(col != value, col.is_(None))
        if operator == FilterOperator.CONTAINS:
            return col.contains(str(value), autoescape=True)
        if operator == FilterOperator.DOES_NOT_CONTAIN:
            return or_(not_(col.contains(str(value), autoescape=True)), col.is_(None))
        if operator == FilterOperator.IS_GREATER:
            return col > value
        if operator == FilterOperator.IS_GREATER_EQUAL:
            return col >= value
        if operator == FilterOperator.IS_LESS:
            return col < value
        if operator == FilterOperator.IS_LESS_EQUAL:
            return col <= value
        if operator == FilterOperator.IS_ANY_OF:
            return col.in_(self._as_list(value))
        if operator == FilterOperator.IS_NONE_OF:
            return or_(col.not_in(self._as_list(value)), col.is_(None))

        raise InvalidQueryError(f"Unsupported filter operator: {operator}")

    def _compile_json_item(self, operator: FilterOperator, text_col: ColumnElement, col: ColumnElement, value: Any) -> ColumnElement:
        """Structured values are matched on their text form."""
        if operator in (FilterOperator.IS, FilterOperator.CONTAINS):
            return text_col.contains(str(value), autoescape=True)
        if operator in (FilterOperator.IS_NOT, FilterOperator.DOES_NOT_CONTAIN):
            return or_(not_(text_col.contains(str(value), autoescape=True)), col.is_(None))
        if operator == FilterOperator.IS_ANY_OF:
            return or_(*[text_col.contains(str(v), autoescape=True) for v in self._as_list(value)])
        if operator == FilterOperator.IS_NONE_OF:
            return or_(
                and_(*[not_(text_col.contains(str(v), autoescape=True)) for v in self._as_list(value)]),
                col.is_(None),
            )
        raise InvalidQueryError(f"Operator {operator.value} is not supported on structured fields")

    @staticmethod
    def _is_empty(col: ColumnElement, text_col: ColumnElement, field: FieldDescriptor) -> ColumnElement:
        if field.cell_value_type == CellValueType.STRING or field.is_json:
            return or_(col.is_(None), text_col == "")
        return col.is_(None)

    @staticmethod
    def _resolve_value(value: Any, with_user_id: Optional[str]) -> Any:
        if with_user_id is None:
            return value
        if value == ME:
            return with_user_id
        if isinstance(value, list):
            return [with_user_id if v == ME else v for v in value]
        return value

    @staticmethod
    def _as_list(value: Any) -> List[Any]:
        return list(value) if isinstance(value, (list, tuple, set)) else [value]


class SortCompiler:
    """Compiles sort keys into ORDER BY clauses."""

    def apply(self, statement: Select, query_builder, sort_items: List[SortItem]) -> Select:
        clauses = []
        for item in sort_items:
            field = query_builder.field_map.get(item.field_id)
            if field is None:
                continue
            expression = query_builder.field_expression(field)
            clauses.append(expression.desc() if item.order == SortOrder.DESC else expression.asc())
        if not clauses:
            return statement
        return statement.order_by(*clauses)
