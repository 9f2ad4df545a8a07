"""Database models for the table catalog: table metadata, fields and views."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from tablestats.core.database import Base


class TableMeta(Base):
    """A logical table backed by one physical table in the store."""

    __tablename__ = "table_meta"

    id = Column(String(30), primary_key=True)
    name = Column(String, nullable=False)
    db_table_name = Column(String, nullable=False, unique=True)
    created_time = Column(DateTime, default=datetime.now)
    deleted_time = Column(DateTime, nullable=True)

    fields = relationship("Field", back_populates="table")
    views = relationship("View", back_populates="table")


class Field(Base):
    """A user-defined field; one physical column in the table's storage."""

    __tablename__ = "field"

    id = Column(String(30), primary_key=True)
    table_id = Column(String(30), ForeignKey("table_meta.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    cell_value_type = Column(String, nullable=False)
    is_multiple_cell_value = Column(Boolean, default=False)
    db_field_type = Column(String, nullable=False)
    db_field_name = Column(String, nullable=False)
    options = Column(Text, nullable=True)  # JSON
    order = Column(Integer, default=0)
    created_time = Column(DateTime, default=datetime.now)
    deleted_time = Column(DateTime, nullable=True)

    table = relationship("TableMeta", back_populates="fields")


class View(Base):
    """A saved view over a table with its stored filter, sort, group and column settings."""

    __tablename__ = "view"

    id = Column(String(30), primary_key=True)
    table_id = Column(String(30), ForeignKey("table_meta.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    filter = Column(Text, nullable=True)  # JSON
    sort = Column(Text, nullable=True)  # JSON
    group = Column(Text, nullable=True)  # JSON
    column_meta = Column(Text, nullable=True)  # JSON
    created_time = Column(DateTime, default=datetime.now)
    deleted_time = Column(DateTime, nullable=True)

    table = relationship("TableMeta", back_populates="views")
