"""
Core QueryBuilder class for constructing statistics queries over one physical table.

Every method returns a new SQLAlchemy statement; nothing is mutated in place.
Filters, link narrowing and sorting are applied by their own compilers to the
statement returned by `select_rows`, and the builder then derives the final
aggregation, row-count, distinct-count or grouped statement from it.
"""

from typing import Iterable, List, Optional

from sqlalchemy import Float, case, column, func, select, table, true, type_coerce
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from tablestats.catalog.schemas import FieldDescriptor, FieldMap
from .dialect import SqlDialect
from .schemas import AggregationKey, AggregationPlan, StatisticsFunc

ID_COLUMN = "__id"
COUNT_LABEL = "count"
GROUP_COUNT_LABEL = "__c"
MAIN_TABLE_ALIAS = "main_table"


class QueryBuilder:
    """Builds statements for one table using a CTE-based approach for aggregations."""

    def __init__(self, db_table_name: str, field_map: FieldMap, dialect: SqlDialect):
        self.db_table_name = db_table_name
        self.field_map = field_map
        self.dialect = dialect

        column_names = [ID_COLUMN]
        for field in field_map:
            if field.db_field_name not in column_names:
                column_names.append(field.db_field_name)
        self.table = table(db_table_name, *[column(name) for name in column_names])

    # ===== COLUMN HELPERS =====

    @property
    def id_column(self) -> ColumnElement:
        return self.table.c[ID_COLUMN]

    def column(self, field: FieldDescriptor, source=None) -> ColumnElement:
        """The storage column of a field, on the base table or on a derived source."""
        return (source if source is not None else self.table).c[field.db_field_name]

    def field_expression(self, field: FieldDescriptor, source=None) -> ColumnElement:
        """The column as it is compared and grouped: JSON columns are cast to text."""
        col = self.column(field, source)
        return self.dialect.json_as_text(col) if field.is_json else col

    # ===== BASE STATEMENT =====

    def select_rows(self) -> Select:
        """All known columns of the table; the starting point for the filter compiler."""
        return select(*self.table.c).select_from(self.table)

    # ===== AGGREGATION =====

    def build_aggregation_query(self, filtered: Select, statistic_fields: Iterable[AggregationKey]) -> AggregationPlan:
        """
        Build one statement computing every requested statistic.

        The filtered rows are materialized once as the `main_table` CTE and every
        aggregate expression selects from it. Duplicate keys and keys naming
        unknown fields are planned away; with nothing left the plan is empty.
        """
        main_table = filtered.cte(MAIN_TABLE_ALIAS)

        columns = []
        labels = {}
        seen = set()
        for key in statistic_fields:
            if key in seen:
                continue
            seen.add(key)

            field = self.field_map.get(key.field_id)
            if field is None:
                continue

            label = f"agg_{len(columns)}"
            expression = self._aggregation_expression(field, key.statistic_func, main_table)
            columns.append(expression.label(label))
            labels[label] = key

        if not columns:
            return AggregationPlan(statement=None)

        statement = select(*columns).select_from(main_table)
        return AggregationPlan(statement=statement, labels=labels)

    def _aggregation_expression(self, field: FieldDescriptor, statistic_func: StatisticsFunc, source) -> ColumnElement:
        col = self.column(field, source)
        comparable = self.field_expression(field, source)
        total = func.count()

        if statistic_func == StatisticsFunc.COUNT:
            return total
        if statistic_func == StatisticsFunc.EMPTY:
            return total - func.count(col)
        if statistic_func == StatisticsFunc.FILLED:
            return func.count(col)
        if statistic_func == StatisticsFunc.UNIQUE:
            return func.count(comparable.distinct())
        if statistic_func in (StatisticsFunc.MAX, StatisticsFunc.LATEST_DATE):
            return func.max(col)
        if statistic_func in (StatisticsFunc.MIN, StatisticsFunc.EARLIEST_DATE):
            return func.min(col)
        if statistic_func == StatisticsFunc.SUM:
            return func.sum(col)
        if statistic_func == StatisticsFunc.AVERAGE:
            return type_coerce(func.avg(col), Float)
        if statistic_func == StatisticsFunc.CHECKED:
            return self._checked(col)
        if statistic_func == StatisticsFunc.UN_CHECKED:
            return total - self._checked(col)
        if statistic_func == StatisticsFunc.PERCENT_EMPTY:
            return self._percent(total - func.count(col))
        if statistic_func == StatisticsFunc.PERCENT_FILLED:
            return self._percent(func.count(col))
        if statistic_func == StatisticsFunc.PERCENT_UNIQUE:
            return self._percent(func.count(comparable.distinct()))
        if statistic_func == StatisticsFunc.PERCENT_CHECKED:
            return self._percent(self._checked(col))
        if statistic_func == StatisticsFunc.PERCENT_UN_CHECKED:
            return self._percent(total - self._checked(col))
        if statistic_func == StatisticsFunc.DATE_RANGE_OF_DAYS:
            return self.dialect.date_range_of_days(col)
        if statistic_func == StatisticsFunc.DATE_RANGE_OF_MONTHS:
            return self.dialect.date_range_of_months(col)

        raise ValueError(f"Unsupported statistic function: {statistic_func}")

    @staticmethod
    def _checked(col: ColumnElement) -> ColumnElement:
        return func.count(case((col == true(), 1)))

    @staticmethod
    def _percent(numerator: ColumnElement) -> ColumnElement:
        # NULL on an empty table instead of a division error
        return type_coerce(numerator * 100.0 / func.nullif(func.count(), 0), Float)

    # ===== ROW COUNT =====

    def build_row_count_query(self, statement: Select) -> Select:
        """
        COUNT(*) over the FROM and WHERE of `statement`.

        Whatever columns, ordering, grouping, having, limit or offset the
        statement carried are dropped.
        """
        count_statement = select(func.count().label(COUNT_LABEL)).select_from(*statement.get_final_froms())
        if statement.whereclause is not None:
            count_statement = count_statement.where(statement.whereclause)
        return count_statement

    # ===== GROUPING =====

    def build_distinct_count_query(self, statement: Select, group_fields: List[FieldDescriptor]) -> Select:
        """Number of distinct value combinations of the group fields among the filtered rows."""
        expressions = [
            self.field_expression(field).label(f"g_{index}") for index, field in enumerate(group_fields)
        ]
        distinct_rows = select(*expressions).select_from(*statement.get_final_froms())
        if statement.whereclause is not None:
            distinct_rows = distinct_rows.where(statement.whereclause)
        distinct_rows = distinct_rows.distinct().subquery("distinct_groups")
        return select(func.count().label(COUNT_LABEL)).select_from(distinct_rows)

    def build_group_query(self, statement: Select, group_fields: List[FieldDescriptor]) -> Select:
        """Row count per distinct combination of the group fields.

        Ordering is not applied here; callers sort the result by the group keys.
        """
        expressions = [self.field_expression(field) for field in group_fields]
        group_statement = select(
            func.count().label(GROUP_COUNT_LABEL),
            *[expression.label(field.db_field_name) for expression, field in zip(expressions, group_fields)],
        ).select_from(*statement.get_final_froms())
        if statement.whereclause is not None:
            group_statement = group_statement.where(statement.whereclause)
        return group_statement.group_by(*expressions)
