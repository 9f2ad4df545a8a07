"""FastAPI application entry point for the tablestats service."""

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from tablestats.core.database import SessionLocal, init_db
from tablestats.core.exceptions import TableStatsError
from tablestats.core.router import register_routes
from tablestats.logging.exception_handlers import (
    general_exception_handler,
    http_exception_handler,
    request_validation_exception_handler,
    table_stats_exception_handler,
)
from tablestats.logging.middleware import LoggingMiddleware


def create_app(session_factory: sessionmaker = SessionLocal) -> FastAPI:

    app = FastAPI(docs_url="/api/docs", redoc_url="/api/redoc", openapi_url="/api/openapi.json")
    init_db(session_factory.kw.get("bind"))

    # Request logs are written through this factory
    app.state.session_factory = session_factory

    # Add request logger middleware
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(TableStatsError, table_stats_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)

    return app
