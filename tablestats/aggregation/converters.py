"""Post-fetch conversion of aggregate values and grouped rows."""

import hashlib
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from dateutil.parser import parse as dateutil_parse
from dateutil.relativedelta import relativedelta

from tablestats.catalog.schemas import FieldDescriptor
from tablestats.query.builder import GROUP_COUNT_LABEL
from tablestats.query.schemas import PERCENT_FUNCS, StatisticsFunc
from .schemas import GroupPoint, HeaderGroupPoint, RowGroupPoint


def convert_value_to_number_or_string(value: Any) -> Union[int, float, str, None]:
    """Numbers stay numeric, dates become ISO-8601 strings, anything else a string."""
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def calculate_date_range_of_months(value: str) -> Optional[int]:
    """
    Whole months between the two dates of a `max,min` pair.

    0 if either side is missing; None if a side is not a date.
    """
    max_time, _, min_time = value.partition(",")
    if not max_time or not min_time:
        return 0
    try:
        delta = relativedelta(dateutil_parse(max_time), dateutil_parse(min_time))
    except (ValueError, OverflowError):
        return None
    return delta.years * 12 + delta.months


def format_convert_value(value: Any, statistic_func: Optional[StatisticsFunc] = None) -> Any:
    convert_value = convert_value_to_number_or_string(value)

    if statistic_func is None:
        return convert_value

    if statistic_func == StatisticsFunc.DATE_RANGE_OF_MONTHS and isinstance(value, str):
        convert_value = calculate_date_range_of_months(value)

    if statistic_func in PERCENT_FUNCS and convert_value is None:
        convert_value = 0

    return convert_value


def string_to_hash(value: str) -> str:
    """Stable id for a group header."""
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:16]


def group_key_text(value: Any) -> str:
    """Text form of a grouped value inside a header id, rendered the way JSON renders it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def group_rows_to_group_points(rows: List[Dict[str, Any]], group_fields: List[FieldDescriptor]) -> List[GroupPoint]:
    """
    Collapse ordered grouped rows into nested header and row-count markers.

    One "last seen" slot per depth holds the previous value as a 1-tuple, or None
    when no header has been emitted at that depth for the current parent. A
    header is emitted only when the value at its depth changes; a change resets
    every deeper slot so the next row opens fresh headers below it.
    """
    group_points: List[GroupPoint] = []
    last_seen: List[Optional[Tuple[Any]]] = [None] * len(group_fields)

    for row in rows:
        for depth, field in enumerate(group_fields):
            raw_value = row[field.db_field_name]
            if isinstance(raw_value, (dict, list)):
                raw_value = str(raw_value)

            if last_seen[depth] is not None and last_seen[depth][0] == raw_value:
                continue

            last_seen[depth] = (raw_value,)
            for deeper in range(depth + 1, len(group_fields)):
                last_seen[deeper] = None

            group_points.append(
                HeaderGroupPoint(
                    id=string_to_hash(f"{field.id}_{group_key_text(raw_value)}"),
                    depth=depth,
                    value=field.convert_db_value_to_cell_value(raw_value),
                )
            )

        group_points.append(RowGroupPoint(count=int(row[GROUP_COUNT_LABEL])))

    return group_points
