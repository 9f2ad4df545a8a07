"""API router for the aggregation module."""

import json
from typing import Any, List, Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from tablestats.aggregation.schemas import (
    CustomFieldStats,
    GroupPointsQuery,
    HeaderGroupPoint,
    RawAggregationValue,
    RawRowCountValue,
    RowCountQuery,
    RowGroupPoint,
    WithView,
)
from tablestats.aggregation.service import AggregationService
from tablestats.core.dependencies import CurrentUserIdDep, get_aggregation_service
from tablestats.core.exceptions import InvalidQueryError
from tablestats.filters.schemas import parse_filter, parse_group

router = APIRouter(prefix="/table/{table_id}/aggregation", tags=["aggregation"])


def _parse_json_param(raw: Optional[str], name: str) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise InvalidQueryError(f"Query parameter '{name}' is not valid JSON", str(e)) from e


def _parse_field_stats(raw: Optional[str]) -> Optional[List[CustomFieldStats]]:
    """`{"sum": ["fldA"], "count": ["fldA", "fldB"]}` -> one entry per (field, function)."""
    data = _parse_json_param(raw, "field")
    if data is None:
        return None
    if not isinstance(data, dict):
        raise InvalidQueryError("Query parameter 'field' must map statistic functions to field ids")
    try:
        return [
            CustomFieldStats(field_id=field_id, statistic_func=statistic_func)
            for statistic_func, field_ids in data.items()
            for field_id in field_ids
        ]
    except (TypeError, ValidationError) as e:
        raise InvalidQueryError("Invalid statistic field selection", str(e)) from e


def _parse_link_cell(raw: Optional[str], name: str) -> Optional[List[str]]:
    data = _parse_json_param(raw, name)
    if data is None:
        return None
    if isinstance(data, str):
        data = [data]
    if not isinstance(data, list) or not 1 <= len(data) <= 2:
        raise InvalidQueryError(f"Query parameter '{name}' must be [fieldId] or [fieldId, recordId]")
    return [str(item) for item in data]


# ===== AGGREGATION ENDPOINTS =====


@router.get("/", response_model=RawAggregationValue)
def get_aggregation(
    table_id: str,
    user_id: CurrentUserIdDep,
    view_id: Optional[str] = Query(None, alias="viewId"),
    field_ids: Optional[List[str]] = Query(None, alias="fieldIds"),
    filter: Optional[str] = Query(None, description="Filter set as JSON"),
    field: Optional[str] = Query(None, description="Statistic functions per field as JSON"),
    service: AggregationService = Depends(get_aggregation_service),
) -> RawAggregationValue:
    """Compute the statistics configured on the view or requested by the caller."""
    with_view = WithView(
        view_id=view_id,
        custom_filter=parse_filter(filter),
        custom_field_stats=_parse_field_stats(field),
    )
    return service.perform_aggregation(
        table_id, with_field_ids=field_ids, with_view=with_view, with_user_id=user_id
    )


@router.get("/row-count", response_model=RawRowCountValue)
def get_row_count(
    table_id: str,
    user_id: CurrentUserIdDep,
    view_id: Optional[str] = Query(None, alias="viewId"),
    filter: Optional[str] = Query(None, description="Filter set as JSON"),
    filter_link_cell_candidate: Optional[str] = Query(None, alias="filterLinkCellCandidate"),
    filter_link_cell_selected: Optional[str] = Query(None, alias="filterLinkCellSelected"),
    service: AggregationService = Depends(get_aggregation_service),
) -> RawRowCountValue:
    """Count the rows of the table visible through the view and filters."""
    query = RowCountQuery(
        view_id=view_id,
        filter=parse_filter(filter),
        filter_link_cell_candidate=_parse_link_cell(filter_link_cell_candidate, "filterLinkCellCandidate"),
        filter_link_cell_selected=_parse_link_cell(filter_link_cell_selected, "filterLinkCellSelected"),
    )
    return service.perform_row_count(table_id, query, with_user_id=user_id)


@router.get("/group-points", response_model=Optional[List[Union[HeaderGroupPoint, RowGroupPoint]]])
def get_group_points(
    table_id: str,
    view_id: Optional[str] = Query(None, alias="viewId"),
    group_by: Optional[str] = Query(None, alias="groupBy", description="Group keys as JSON"),
    filter: Optional[str] = Query(None, description="Filter set as JSON"),
    service: AggregationService = Depends(get_aggregation_service),
) -> Optional[List[Union[HeaderGroupPoint, RowGroupPoint]]]:
    """Group headers and row counts for a grouped view."""
    query = GroupPointsQuery(
        view_id=view_id,
        group_by=parse_group(group_by),
        filter=parse_filter(filter),
    )
    return service.get_group_points(table_id, query)
