"""
Test configuration and shared fixtures for the tablestats test suite.
Provides an in-memory database, seeded table metadata, a physical data table and a test client.
"""

import json
from datetime import datetime
from typing import List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tablestats.app import create_app
from tablestats.catalog.models import Field, TableMeta, View
from tablestats.core.database import get_db, init_db
from tablestats.aggregation.service import AggregationService
from tablestats.core.config import ThresholdConfig


TASKS_TABLE_ID = "tblTasks"
PROJECTS_TABLE_ID = "tblProjects"


# ===== DATABASE SETUP =====

@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine per test"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Create a database session for a single test"""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(session_factory, db_session, seeded_tables):
    """Create FastAPI test client with database overrides"""
    app = create_app(session_factory)

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def service(db_session, seeded_tables) -> AggregationService:
    return AggregationService(db_session, ThresholdConfig(max_group_points=100))


# ===== SAMPLE DATA FIXTURES =====

def _field(field_id, name, field_type, cell_value_type, db_field_type, db_field_name, order, table_id=TASKS_TABLE_ID, **kwargs):
    return Field(
        id=field_id,
        table_id=table_id,
        name=name,
        type=field_type,
        cell_value_type=cell_value_type,
        db_field_type=db_field_type,
        db_field_name=db_field_name,
        order=order,
        **kwargs,
    )


TASK_ROWS: List[dict] = [
    {"__id": "rec1", "status": "A", "category": "X", "amount": 10.0, "done": 1, "due": "2024-01-01", "tags": json.dumps(["red"]), "owner": "usr1"},
    {"__id": "rec2", "status": "A", "category": "X", "amount": 20.0, "done": 0, "due": "2024-03-15", "tags": json.dumps(["red", "blue"]), "owner": "usr2"},
    {"__id": "rec3", "status": "B", "category": "X", "amount": None, "done": 1, "due": None, "tags": None, "owner": "usr1"},
    {"__id": "rec4", "status": "A", "category": "Y", "amount": 30.0, "done": None, "due": "2024-02-10", "tags": json.dumps(["blue"]), "owner": None},
]


@pytest.fixture
def seeded_tables(db_session):
    """Tasks table with seven fields, four rows, several views and a link from projects"""
    db_session.add_all([
        TableMeta(id=TASKS_TABLE_ID, name="Tasks", db_table_name="tasks"),
        TableMeta(id=PROJECTS_TABLE_ID, name="Projects", db_table_name="projects"),
        TableMeta(id="tblGone", name="Gone", db_table_name="gone", deleted_time=datetime.now()),
    ])
    db_session.flush()

    db_session.add_all([
        _field("fldStatus", "Status", "singleSelect", "string", "TEXT", "status", 0),
        _field("fldCategory", "Category", "singleLineText", "string", "TEXT", "category", 1),
        _field("fldAmount", "Amount", "number", "number", "REAL", "amount", 2),
        _field("fldDone", "Done", "checkbox", "boolean", "BOOLEAN", "done", 3),
        _field("fldDue", "Due", "date", "dateTime", "DATETIME", "due", 4),
        _field("fldTags", "Tags", "multipleSelect", "string", "JSON", "tags", 5, is_multiple_cell_value=True),
        _field("fldOwner", "Owner", "user", "string", "TEXT", "owner", 6),
        _field("fldRemoved", "Removed", "singleLineText", "string", "TEXT", "removed", 7, deleted_time=datetime.now()),
        _field(
            "fldTasksLink", "Tasks", "link", "string", "JSON", "tasks_link", 0,
            table_id=PROJECTS_TABLE_ID,
            options=json.dumps({
                "foreignTableId": TASKS_TABLE_ID,
                "fkHostTableName": "junction_tasks",
                "selfKeyName": "__fk_project",
                "foreignKeyName": "__fk_task",
            }),
        ),
    ])

    db_session.add_all([
        View(
            id="viwGrid", table_id=TASKS_TABLE_ID, name="Grid", type="grid",
            column_meta=json.dumps({
                "fldAmount": {"statisticFunc": "sum"},
                "fldStatus": {"statisticFunc": "unique"},
                "fldOwner": {"hidden": True, "statisticFunc": "filled"},
                "fldCategory": {"width": 120},
            }),
        ),
        View(
            id="viwFiltered", table_id=TASKS_TABLE_ID, name="Only X", type="grid",
            filter=json.dumps({
                "conjunction": "and",
                "filterSet": [{"fieldId": "fldCategory", "operator": "is", "value": "X"}],
            }),
            column_meta=json.dumps({"fldAmount": {"statisticFunc": "sum"}}),
        ),
        View(id="viwGantt", table_id=TASKS_TABLE_ID, name="Timeline", type="gantt"),
        View(id="viwKanban", table_id=TASKS_TABLE_ID, name="Board", type="kanban",
             column_meta=json.dumps({"fldAmount": {"statisticFunc": "sum"}})),
        View(id="viwDeleted", table_id=TASKS_TABLE_ID, name="Old", type="grid",
             column_meta=json.dumps({"fldAmount": {"statisticFunc": "sum"}}), deleted_time=datetime.now()),
        View(id="viwBroken", table_id=TASKS_TABLE_ID, name="Broken", type="grid", filter="{not json"),
    ])

    db_session.execute(text(
        "CREATE TABLE tasks (__id TEXT PRIMARY KEY, status TEXT, category TEXT, amount REAL, "
        "done BOOLEAN, due TEXT, tags TEXT, owner TEXT)"
    ))
    db_session.execute(
        text(
            "INSERT INTO tasks (__id, status, category, amount, done, due, tags, owner) "
            "VALUES (:__id, :status, :category, :amount, :done, :due, :tags, :owner)"
        ),
        TASK_ROWS,
    )

    db_session.execute(text("CREATE TABLE projects (__id TEXT PRIMARY KEY, tasks_link TEXT)"))
    db_session.execute(text("INSERT INTO projects (__id) VALUES ('prj1'), ('prj2')"))
    db_session.execute(text("CREATE TABLE junction_tasks (__id INTEGER PRIMARY KEY, __fk_project TEXT, __fk_task TEXT)"))
    db_session.execute(text(
        "INSERT INTO junction_tasks (__fk_project, __fk_task) "
        "VALUES ('prj1', 'rec1'), ('prj1', 'rec2'), ('prj2', 'rec3')"
    ))
    db_session.commit()
    return db_session
