# tablestats/core/dependencies.py
"""FastAPI dependencies shared by the routers."""

from typing import Annotated, Optional
from fastapi import Depends, Header
from sqlalchemy.orm import Session
from tablestats.core.config import ThresholdConfig, get_threshold_config
from tablestats.core.database import get_db

# Core dependencies
SessionDep = Annotated[Session, Depends(get_db)]
ThresholdConfigDep = Annotated[ThresholdConfig, Depends(get_threshold_config)]


def get_current_user_id(x_user_id: Annotated[Optional[str], Header()] = None) -> Optional[str]:
    """Acting identity for identity-scoped filter values such as "me"."""
    return x_user_id or None


CurrentUserIdDep = Annotated[Optional[str], Depends(get_current_user_id)]


def get_aggregation_service(db: SessionDep, threshold_config: ThresholdConfigDep):
    """Get aggregation service bound to the request's session"""
    from tablestats.aggregation.service import AggregationService
    return AggregationService(db, threshold_config)
