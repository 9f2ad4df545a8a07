# tablestats/core/database.py
"""Database configuration: one store for table metadata, request logs and the physical data tables."""

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from tablestats.core.config import DATABASE_URL

logger = logging.getLogger(__name__)

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# ===== SESSION GENERATORS =====


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ===== TABLE CREATION =====


def create_all_tables(bind=None):
    """Create the metadata and log tables."""
    # Import models to ensure they're registered with Base
    from tablestats.catalog.models import TableMeta, Field, View  # noqa: F401
    from tablestats.logging.models import Log  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def drop_all_tables(bind=None):
    """Drop the metadata and log tables (use with caution!)."""
    from tablestats.catalog.models import TableMeta, Field, View  # noqa: F401
    from tablestats.logging.models import Log  # noqa: F401

    Base.metadata.drop_all(bind=bind or engine)


def init_db(bind=None):
    """Initialize database tables if they do not exist yet."""
    create_all_tables(bind)
    logger.info("Metadata tables initialized")
