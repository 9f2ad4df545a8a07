"""
Query module for the statistics services.

Main Components:
- QueryBuilder: builds immutable SQLAlchemy statements over one physical table
- SqlDialect: the dialect specific expressions (JSON casts, date ranges)
- run_query: executes a statement and surfaces store failures
- Schemas: statistic functions and aggregation plan types
"""

from .builder import QueryBuilder
from .dialect import SqlDialect, get_dialect
from .executor import run_query
from .schemas import AggregationKey, AggregationPlan, PERCENT_FUNCS, StatisticsFunc

__all__ = [
    "QueryBuilder",
    "SqlDialect",
    "get_dialect",
    "run_query",
    "AggregationKey",
    "AggregationPlan",
    "PERCENT_FUNCS",
    "StatisticsFunc",
]
