"""Statement execution against the store."""

import logging
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Executable

from tablestats.core.exceptions import StoreExecutionError

logger = logging.getLogger(__name__)


def run_query(db: Session, statement: Executable, purpose: str) -> List[Dict[str, Any]]:
    """
    Execute a statement and return its rows as dicts.

    Failures are logged and raised as StoreExecutionError; nothing is retried.
    """
    try:
        result = db.execute(statement)
        return [dict(row._mapping) for row in result]
    except SQLAlchemyError as e:
        logger.error("Query failed (%s): %s", purpose, e)
        raise StoreExecutionError(f"Failed to execute {purpose} query", original=e) from e
