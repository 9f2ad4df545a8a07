# tablestats/core/exceptions.py
"""Domain exceptions raised by the query services."""

from typing import Any, Optional


class TableStatsError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, context: Any = None):
        if context:
            super().__init__(f"{message} (Context: {context})")
        else:
            super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(TableStatsError):
    """A table or field referenced by the request does not exist."""

    status_code = 404


class InvalidQueryError(TableStatsError):
    """Caller supplied a filter, group key list or link cell filter that cannot be parsed."""

    status_code = 400


class MalformedStoredFilterError(TableStatsError):
    """A view's stored JSON configuration could not be decoded."""

    status_code = 422


class PayloadTooLargeError(TableStatsError):
    """The requested grouping would produce more group points than allowed."""

    status_code = 413


class StoreExecutionError(TableStatsError):
    """Executing a generated query against the store failed."""

    status_code = 500

    def __init__(self, message: str, context: Any = None, original: Optional[BaseException] = None):
        super().__init__(message, context)
        self.original = original
