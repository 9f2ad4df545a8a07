# tablestats/aggregation/service.py
"""Statistics, row-count and group-point queries over user tables."""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from tablestats.catalog.dao import FieldDAO, TableDAO, ViewDAO
from tablestats.catalog.schemas import ColumnMeta, FieldDescriptor, FieldMap, ViewRecord
from tablestats.core.config import ThresholdConfig
from tablestats.core.exceptions import MalformedStoredFilterError, PayloadTooLargeError
from tablestats.filters.compiler import FilterCompiler, SortCompiler
from tablestats.filters.schemas import FilterSet, merge_with_default_filter, parse_filter
from tablestats.query.builder import COUNT_LABEL, QueryBuilder
from tablestats.query.dialect import get_dialect
from tablestats.query.executor import run_query
from tablestats.query.schemas import AggregationKey, StatisticsFunc
from tablestats.records.service import RecordService
from .converters import format_convert_value, group_rows_to_group_points
from .schemas import (
    AggregationTotal,
    CustomFieldStats,
    GroupPoint,
    GroupPointsQuery,
    RawAggregation,
    RawAggregationValue,
    RawRowCountValue,
    RowCountQuery,
    StatisticsParams,
    WithView,
)

logger = logging.getLogger(__name__)

GROUPING_OVER_LIMIT_MESSAGE = (
    "Grouping results exceed limit, please adjust grouping conditions to reduce the number of groups."
)


class AggregationService:
    """Plans, executes and decodes statistics queries for one request."""

    def __init__(
        self,
        db: Session,
        threshold_config: Optional[ThresholdConfig] = None,
        table_dao: Optional[TableDAO] = None,
        field_dao: Optional[FieldDAO] = None,
        view_dao: Optional[ViewDAO] = None,
        record_service: Optional[RecordService] = None,
        filter_compiler: Optional[FilterCompiler] = None,
        sort_compiler: Optional[SortCompiler] = None,
    ):
        self.db = db
        self.threshold_config = threshold_config or ThresholdConfig()
        self.table_dao = table_dao or TableDAO(db)
        self.field_dao = field_dao or FieldDAO(db)
        self.view_dao = view_dao or ViewDAO(db)
        self.record_service = record_service or RecordService(db, self.field_dao)
        self.filter_compiler = filter_compiler or FilterCompiler()
        self.sort_compiler = sort_compiler or SortCompiler()

    # ===== AGGREGATION =====

    def perform_aggregation(
        self,
        table_id: str,
        with_field_ids: Optional[List[str]] = None,
        with_view: Optional[WithView] = None,
        with_user_id: Optional[str] = None,
    ) -> RawAggregationValue:
        """Compute every requested statistic in a single query."""
        statistics_params, field_map = self.fetch_statistics_params(table_id, with_view, with_field_ids)
        db_table_name = self.table_dao.get_db_table_name(table_id)

        statistic_fields = statistics_params.statistic_fields
        if not statistic_fields:
            logger.info("No statistic fields resolved for table %s; skipping aggregation", table_id)
            return RawAggregationValue(aggregations=[])

        query_builder = self._query_builder(db_table_name, field_map)
        filtered = self.filter_compiler.apply(
            query_builder.select_rows(), query_builder, statistics_params.filter, with_user_id
        )
        plan = query_builder.build_aggregation_query(filtered, statistic_fields)
        if plan.is_empty:
            return RawAggregationValue(aggregations=[])

        rows = self._run_query(plan.statement, "aggregation")
        aggregation_result = rows[0] if rows else None

        aggregations = []
        if aggregation_result:
            for label, value in aggregation_result.items():
                key = plan.labels.get(label)
                if key is None:
                    continue
                aggregations.append(
                    RawAggregation(
                        field_id=key.field_id,
                        total=AggregationTotal(
                            value=format_convert_value(value, key.statistic_func),
                            agg_func=key.statistic_func,
                        ),
                    )
                )
        return RawAggregationValue(aggregations=aggregations)

    # ===== ROW COUNT =====

    def perform_row_count(
        self, table_id: str, query: Optional[RowCountQuery] = None, with_user_id: Optional[str] = None
    ) -> RawRowCountValue:
        """Count the rows matching the view filter, the caller filter and the link narrowing."""
        query = query or RowCountQuery()
        statistics_params, field_map = self.fetch_statistics_params(
            table_id, WithView(view_id=query.view_id, custom_filter=query.filter)
        )
        db_table_name = self.table_dao.get_db_table_name(table_id)

        if query.filter_link_cell_selected:
            # TODO: count the linked ids in the store instead of loading them
            ids = self.record_service.get_link_selected_record_ids(query.filter_link_cell_selected)
            return RawRowCountValue(row_count=len(ids))

        query_builder = self._query_builder(db_table_name, field_map)
        statement = self.filter_compiler.apply(
            query_builder.select_rows(), query_builder, statistics_params.filter, with_user_id
        )
        if query.filter_link_cell_candidate:
            statement = self.record_service.build_link_candidate_query(
                statement, query_builder, table_id, query.filter_link_cell_candidate
            )

        rows = self._run_query(query_builder.build_row_count_query(statement), "row count")
        row_count = rows[0].get(COUNT_LABEL) if rows else None
        return RawRowCountValue(row_count=int(row_count or 0))

    # ===== GROUP POINTS =====

    def get_group_points(self, table_id: str, query: Optional[GroupPointsQuery] = None) -> Optional[List[GroupPoint]]:
        """Nested group headers and row counts for a grouped view."""
        query = query or GroupPointsQuery()
        if not query.view_id:
            return None

        group_by = query.group_by
        if not group_by:
            logger.info("No group keys for table %s view %s", table_id, query.view_id)
            return None

        view = self.view_dao.find_view(table_id, query.view_id)
        field_map = self.field_dao.load_field_map(table_id)
        db_table_name = self.table_dao.get_db_table_name(table_id)

        merged_filter = merge_with_default_filter(self._stored_filter(view), query.filter)

        group_fields: List[FieldDescriptor] = []
        for item in group_by:
            field = field_map.get(item.field_id)
            if field is not None and field not in group_fields:
                group_fields.append(field)
        if not group_fields:
            logger.info("Group keys of view %s name no known fields", query.view_id)
            return None

        query_builder = self._query_builder(db_table_name, field_map)
        statement = self.filter_compiler.apply(query_builder.select_rows(), query_builder, merged_filter)

        if self._is_grouping_over_limit(query_builder, statement, group_fields):
            raise PayloadTooLargeError(GROUPING_OVER_LIMIT_MESSAGE)

        group_statement = query_builder.build_group_query(statement, group_fields)
        group_statement = self.sort_compiler.apply(group_statement, query_builder, group_by)

        rows = self._run_query(group_statement, "group points")
        return group_rows_to_group_points(rows, group_fields)

    def _is_grouping_over_limit(self, query_builder: QueryBuilder, statement, group_fields: List[FieldDescriptor]) -> bool:
        distinct_statement = query_builder.build_distinct_count_query(statement, group_fields)
        rows = self._run_query(distinct_statement, "group limit check")
        distinct_count = int(rows[0][COUNT_LABEL]) if rows else 0
        logger.debug(
            "Grouping produces %s combinations (limit %s)", distinct_count, self.threshold_config.max_group_points
        )
        return distinct_count > self.threshold_config.max_group_points

    # ===== STATISTICS PARAMETERS =====

    def fetch_statistics_params(
        self,
        table_id: str,
        with_view: Optional[WithView] = None,
        with_field_ids: Optional[List[str]] = None,
    ) -> Tuple[StatisticsParams, FieldMap]:
        """Merge the view's stored configuration with the caller's overrides."""
        view = self.view_dao.find_view(table_id, with_view.view_id if with_view else None)
        if with_view and with_view.view_id and view is None:
            logger.info("View %s not found for table %s; continuing without view context", with_view.view_id, table_id)

        field_map = self.field_dao.load_field_map(table_id)
        target_fields = self._filter_fields(field_map.fields, with_view, with_field_ids)
        statistics_params = self._build_statistics_params(target_fields, view, with_view)
        return statistics_params, field_map

    @staticmethod
    def _filter_fields(
        fields: List[FieldDescriptor], with_view: Optional[WithView], with_field_ids: Optional[List[str]]
    ) -> List[FieldDescriptor]:
        custom_field_stats = with_view.custom_field_stats if with_view else None
        if custom_field_stats is not None:
            target_field_ids = [stats.field_id for stats in custom_field_stats]
        else:
            target_field_ids = with_field_ids

        if not target_field_ids:
            return fields
        return [field for field in fields if field.id in target_field_ids]

    def _build_statistics_params(
        self, fields: List[FieldDescriptor], view: Optional[ViewRecord], with_view: Optional[WithView]
    ) -> StatisticsParams:
        custom_filter = with_view.custom_filter if with_view else None
        custom_field_stats = with_view.custom_field_stats if with_view else None

        statistics_params = StatisticsParams(view_id=view.id if view else None)

        stored_filter = self._stored_filter(view)
        if stored_filter or custom_filter:
            statistics_params.filter = merge_with_default_filter(stored_filter, custom_filter)

        if view is not None or custom_field_stats is not None:
            statistics_params.statistic_fields = self.get_statistic_fields(
                fields, view.column_meta if view else None, custom_field_stats
            )
        return statistics_params

    @staticmethod
    def get_statistic_fields(
        fields: List[FieldDescriptor],
        column_meta: Optional[Dict[str, ColumnMeta]] = None,
        custom_field_stats: Optional[List[CustomFieldStats]] = None,
    ) -> Optional[List[AggregationKey]]:
        """
        Statistic functions per field.

        Caller-supplied functions for a field take priority over the view's
        default for that column. Hidden columns and fields without any resolved
        function are left out; None when nothing is left.
        """
        custom_by_field = defaultdict(list)
        for stats in custom_field_stats or []:
            custom_by_field[stats.field_id].append(stats)

        statistic_fields: Optional[List[AggregationKey]] = None
        for field in fields:
            view_column_meta = column_meta.get(field.id) if column_meta else None
            field_custom_stats = custom_by_field.get(field.id)
            if view_column_meta is None and not field_custom_stats:
                continue

            hidden = view_column_meta.hidden if view_column_meta else None
            if hidden is True:
                continue

            func_list = [stats.statistic_func for stats in field_custom_stats or [] if stats.statistic_func]
            if not func_list and view_column_meta and view_column_meta.statistic_func:
                try:
                    func_list = [StatisticsFunc(view_column_meta.statistic_func)]
                except ValueError:
                    logger.warning(
                        "Ignoring unknown statistic function %s on field %s", view_column_meta.statistic_func, field.id
                    )

            if func_list:
                statistic_fields = statistic_fields if statistic_fields is not None else []
                statistic_fields.extend(AggregationKey(field.id, func) for func in func_list)
        return statistic_fields

    # ===== HELPERS =====

    @staticmethod
    def _stored_filter(view: Optional[ViewRecord]) -> Optional[FilterSet]:
        if view is None:
            return None
        return parse_filter(view.filter, MalformedStoredFilterError)

    def _query_builder(self, db_table_name: str, field_map: FieldMap) -> QueryBuilder:
        dialect = get_dialect(self.db.get_bind().dialect.name)
        return QueryBuilder(db_table_name, field_map, dialect)

    def _run_query(self, statement, purpose: str):
        logger.debug("Running %s query", purpose)
        return run_query(self.db, statement, purpose)
