# tablestats/core/router.py
"""
Module for registering routes in the FastAPI application.
"""

from fastapi import FastAPI

from tablestats.aggregation.router import router as aggregation_router


def register_routes(app: FastAPI) -> None:
    """
    Registers all the routes for the FastAPI application.

    Args:
        app (FastAPI): The FastAPI application instance.
    """
    app.include_router(aggregation_router, prefix="/api")

    @app.get("/health")
    def health():
        return {"status": "ok"}
