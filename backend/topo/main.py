"""
Main application module for the contour service.

This file sets up the FastAPI application, configures CORS so browser
map clients can make cross-origin requests, and exposes a simple health
check endpoint.  Routers for the TIN and contour APIs are included
under the ``/api`` namespace.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes_contours import router as contours_router
from .api.routes_tins import router as tins_router

# init_db creates the SQLite tables if they do not already exist.
from .services.tin_store import init_db


def create_app() -> FastAPI:
    """Factory to create and configure the FastAPI application.

    Returns:
        FastAPI: The configured FastAPI application instance.
    """
    app = FastAPI(title="Topo contours")

    # The schema must exist before any request is processed; init_db is
    # idempotent.
    @app.on_event("startup")  # type: ignore[misc]
    async def startup_event() -> None:
        init_db()

    # Allow all origins by default.  In production you should restrict
    # this to the domains that are allowed to access your API.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(tins_router, prefix="/api", tags=["tins"])
    app.include_router(contours_router, prefix="/api", tags=["contours"])

    return app


# Uvicorn imports this when running `uvicorn topo.main:app` from backend/
app = create_app()
