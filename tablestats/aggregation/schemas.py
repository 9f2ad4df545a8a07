"""Pydantic schemas for the aggregation module."""

from dataclasses import dataclass
from enum import IntEnum
from typing import Annotated, Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from tablestats.filters.schemas import FilterSet, SortItem
from tablestats.query.schemas import AggregationKey, StatisticsFunc

# [fieldId] or [fieldId, recordId]
LinkCellFilter = Annotated[List[str], Field(min_length=1, max_length=2)]


# ===== REQUEST SCHEMAS =====


class CustomFieldStats(BaseModel):
    """A caller-requested statistic for one field."""

    field_id: str = Field(alias="fieldId")
    statistic_func: Optional[StatisticsFunc] = Field(default=None, alias="statisticFunc")

    model_config = ConfigDict(populate_by_name=True)


class WithView(BaseModel):
    """View context and overrides for an aggregation request."""

    view_id: Optional[str] = Field(default=None, alias="viewId")
    custom_filter: Optional[FilterSet] = Field(default=None, alias="customFilter")
    custom_field_stats: Optional[List[CustomFieldStats]] = Field(default=None, alias="customFieldStats")

    model_config = ConfigDict(populate_by_name=True)


class RowCountQuery(BaseModel):
    view_id: Optional[str] = Field(default=None, alias="viewId")
    filter: Optional[FilterSet] = None
    filter_link_cell_candidate: Optional[LinkCellFilter] = Field(default=None, alias="filterLinkCellCandidate")
    filter_link_cell_selected: Optional[LinkCellFilter] = Field(default=None, alias="filterLinkCellSelected")

    model_config = ConfigDict(populate_by_name=True)


class GroupPointsQuery(BaseModel):
    view_id: Optional[str] = Field(default=None, alias="viewId")
    group_by: Optional[List[SortItem]] = Field(default=None, alias="groupBy")
    filter: Optional[FilterSet] = None

    model_config = ConfigDict(populate_by_name=True)


# ===== RESOLVED PARAMETERS =====


@dataclass
class StatisticsParams:
    """Merged view/caller statistics configuration; built per request, never stored."""

    view_id: Optional[str] = None
    filter: Optional[FilterSet] = None
    statistic_fields: Optional[List[AggregationKey]] = None


# ===== RESPONSE SCHEMAS =====


class AggregationTotal(BaseModel):
    value: Any = None
    agg_func: StatisticsFunc = Field(alias="aggFunc")

    model_config = ConfigDict(populate_by_name=True)


class RawAggregation(BaseModel):
    field_id: str = Field(alias="fieldId")
    total: Optional[AggregationTotal] = None

    model_config = ConfigDict(populate_by_name=True)


class RawAggregationValue(BaseModel):
    aggregations: List[RawAggregation] = []


class RawRowCountValue(BaseModel):
    row_count: int = Field(alias="rowCount", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class GroupPointType(IntEnum):
    HEADER = 0
    ROW = 1


class HeaderGroupPoint(BaseModel):
    """Entry into a new distinct value at nesting level `depth`."""

    id: str
    type: GroupPointType = GroupPointType.HEADER
    depth: int
    value: Any = None


class RowGroupPoint(BaseModel):
    """Row count of the most specific open group combination."""

    type: GroupPointType = GroupPointType.ROW
    count: int


GroupPoint = Union[HeaderGroupPoint, RowGroupPoint]
