"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from envelope.api.v1 import budgets, transactions
from envelope.config import get_settings
from envelope.errors import (
    LedgerIntegrityError, NotFoundError, StoreInitError, StoreNotInitializedError, ValidationError,
)
from envelope.infrastructure.db.session import Database

logging.basicConfig(level=get_settings().LOG_LEVEL)
logger = logging.getLogger(__name__)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches everything the exception handlers did not, including sync routes"""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            tb_str = traceback.format_exc()
            logger.error(f"\n{'='*60}\nERROR on {request.method} {request.url.path}\n{tb_str}{'='*60}")
            return Response(content=f"Internal Server Error: {exc}", status_code=500)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app(database: Optional[Database] = None) -> FastAPI:
    """
    Application factory - creates and configures the FastAPI app

    Args:
        database: Store handle (default: built from settings). Opened on
            startup, closed on shutdown.

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.database.open()
        yield
        app.state.database.close()

    app = FastAPI(
        title="Envelope",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.database = database or Database()

    app.add_middleware(ErrorLoggingMiddleware)

    # Ledger errors -> HTTP (most specific class wins)
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, exc)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error(422, exc)

    @app.exception_handler(LedgerIntegrityError)
    async def integrity_handler(request: Request, exc: LedgerIntegrityError):
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc)
        return _error(409, exc)

    @app.exception_handler(StoreNotInitializedError)
    async def not_initialized_handler(request: Request, exc: StoreNotInitializedError):
        return _error(503, exc)

    @app.exception_handler(StoreInitError)
    async def store_init_handler(request: Request, exc: StoreInitError):
        logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
        return _error(503, exc)

    # Routers
    app.include_router(budgets.router)
    app.include_router(transactions.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (checks the database)"""
        app.state.database.check_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "envelope.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
