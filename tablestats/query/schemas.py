"""
Query planning types.

Statistic requests are keyed by a structured `(field_id, statistic_func)` pair;
aggregate columns get positional labels and the plan carries the label map, so
result decoding never has to split composite strings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from sqlalchemy.sql import Select


class StatisticsFunc(str, Enum):
    """Available statistic functions."""

    COUNT = "count"
    EMPTY = "empty"
    FILLED = "filled"
    UNIQUE = "unique"
    MAX = "max"
    MIN = "min"
    SUM = "sum"
    AVERAGE = "average"
    CHECKED = "checked"
    UN_CHECKED = "unChecked"
    PERCENT_EMPTY = "percentEmpty"
    PERCENT_FILLED = "percentFilled"
    PERCENT_UNIQUE = "percentUnique"
    PERCENT_CHECKED = "percentChecked"
    PERCENT_UN_CHECKED = "percentUnChecked"
    EARLIEST_DATE = "earliestDate"
    LATEST_DATE = "latestDate"
    DATE_RANGE_OF_DAYS = "dateRangeOfDays"
    DATE_RANGE_OF_MONTHS = "dateRangeOfMonths"


# A missing value for these decodes to 0 rather than None
PERCENT_FUNCS = frozenset(
    {
        StatisticsFunc.PERCENT_EMPTY,
        StatisticsFunc.PERCENT_FILLED,
        StatisticsFunc.PERCENT_UNIQUE,
        StatisticsFunc.PERCENT_CHECKED,
        StatisticsFunc.PERCENT_UN_CHECKED,
    }
)


@dataclass(frozen=True)
class AggregationKey:
    """One statistic requested over one field."""

    field_id: str
    statistic_func: StatisticsFunc


@dataclass
class AggregationPlan:
    """A compiled aggregation statement plus the label of each aggregate column."""

    statement: Optional[Select]
    labels: Dict[str, AggregationKey] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.statement is None
