"""
Filter expression tree and sort/group key schemas.

The tree is validated with pydantic and otherwise passed through untouched to
the filter compiler. Stored view filters and caller overrides are combined with
`merge_with_default_filter` so callers only ever see one effective filter.
"""

import json
from enum import Enum
from typing import Any, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tablestats.core.exceptions import InvalidQueryError, TableStatsError


class Conjunction(str, Enum):
    AND = "and"
    OR = "or"


class FilterOperator(str, Enum):
    IS = "is"
    IS_NOT = "isNot"
    CONTAINS = "contains"
    DOES_NOT_CONTAIN = "doesNotContain"
    IS_GREATER = "isGreater"
    IS_GREATER_EQUAL = "isGreaterEqual"
    IS_LESS = "isLess"
    IS_LESS_EQUAL = "isLessEqual"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    IS_ANY_OF = "isAnyOf"
    IS_NONE_OF = "isNoneOf"


# Placeholder value resolved to the acting user's id at compile time
ME = "me"


class FilterItem(BaseModel):
    """A single predicate on one field."""

    field_id: str = Field(alias="fieldId")
    operator: FilterOperator
    value: Any = None

    model_config = ConfigDict(populate_by_name=True)


class FilterSet(BaseModel):
    """A conjunction of predicates and nested filter sets."""

    conjunction: Conjunction = Conjunction.AND
    filter_set: List[Union[FilterItem, "FilterSet"]] = Field(alias="filterSet")

    model_config = ConfigDict(populate_by_name=True)


FilterSet.model_rebuild()


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortItem(BaseModel):
    """One ordering (or grouping) key."""

    field_id: str = Field(alias="fieldId")
    order: SortOrder = SortOrder.ASC

    model_config = ConfigDict(populate_by_name=True)


def _load(raw: Any, what: str, error_cls: Type[TableStatsError]) -> Any:
    if isinstance(raw, (str, bytes)):
        try:
            return json.loads(raw)
        except ValueError as e:
            raise error_cls(f"Invalid {what} JSON", str(e)) from e
    return raw


def parse_filter(raw: Any, error_cls: Type[TableStatsError] = InvalidQueryError) -> Optional[FilterSet]:
    """Parse a filter given as a JSON string, a dict or an already built FilterSet."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, FilterSet):
        return raw
    data = _load(raw, "filter", error_cls)
    if data is None:
        return None
    try:
        return FilterSet.model_validate(data)
    except ValidationError as e:
        raise error_cls("Invalid filter", str(e)) from e


def parse_group(raw: Any, error_cls: Type[TableStatsError] = InvalidQueryError) -> Optional[List[SortItem]]:
    """Parse a group-by key list; empty or absent input yields None."""
    if raw is None or raw == "":
        return None
    data = _load(raw, "groupBy", error_cls)
    if not data:
        return None
    if not isinstance(data, list):
        raise error_cls("groupBy must be a list")
    try:
        return [item if isinstance(item, SortItem) else SortItem.model_validate(item) for item in data]
    except ValidationError as e:
        raise error_cls("Invalid groupBy", str(e)) from e


def merge_with_default_filter(default_filter: Any, query_filter: Any) -> Optional[FilterSet]:
    """
    Combine a view's stored filter with a caller override.

    Both present: AND of the two. Only one present: that one. Neither: None.
    """
    base = parse_filter(default_filter)
    override = parse_filter(query_filter)

    if base is None and override is None:
        return None
    if base is None:
        return override
    if override is None:
        return base
    return FilterSet(conjunction=Conjunction.AND, filter_set=[base, override])
