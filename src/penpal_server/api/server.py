"""
FastAPI application for the pen-pal letter exchange service.

``create_app`` wires:
- CORS middleware from ``config.security.cors_origins``
- one :class:`LetterExchangeService` shared by every route
- exception handlers turning domain and storage errors into JSON responses
- a lifespan hook that starts and stops the background timeout sweep

Error bodies always look like ``{"detail": {"code": ..., "message": ...}}``.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from penpal_server import __version__
from penpal_server.api.routes import register_routes
from penpal_server.db.errors import DatabaseError, TransactionConflictError
from penpal_server.exchange.errors import ExchangeError
from penpal_server.exchange.scheduler import SweepWorker
from penpal_server.services.letter_exchange import LetterExchangeService

logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": {"code": code, "message": message}})


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ExchangeError)
    async def handle_exchange_error(request: Request, exc: ExchangeError):
        return _error(exc.status_code, exc.code, exc.message)

    @app.exception_handler(TransactionConflictError)
    async def handle_conflict(request: Request, exc: TransactionConflictError):
        logger.warning("Request %s %s hit persistent write conflicts: %s",
                       request.method, request.url.path, exc)
        return _error(503, "busy", "The server is busy, please try again shortly.")

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("Database failure on %s %s: %s", request.method, request.url.path, exc)
        return _error(500, "storage_error", "Internal storage error.")


def create_app(
    service: LetterExchangeService | None = None,
    *,
    start_sweep_worker: bool | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        service: Service instance; a default one is built from config.
        start_sweep_worker: Run the background sweep during the app's
            lifespan. Defaults to ``config.scheduler.enabled``.
    """
    from penpal_server.config import config

    service = service or LetterExchangeService()
    if start_sweep_worker is None:
        start_sweep_worker = config.scheduler.enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        worker = None
        if start_sweep_worker:
            worker = SweepWorker(
                service.run_sweep, interval_seconds=config.scheduler.interval_minutes * 60
            )
            worker.start()
        app.state.sweep_worker = worker
        try:
            yield
        finally:
            if worker is not None:
                worker.stop()

    app = FastAPI(title="Pen-pal Exchange Server", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.state.sweep_worker = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_exception_handlers(app)
    register_routes(app, service)
    return app


def start_server(host: str | None = None, port: int | None = None) -> None:
    """Initialise the schema and serve the API with uvicorn."""
    import uvicorn

    from penpal_server.config import config
    from penpal_server.db.schema import init_database
    from penpal_server.logging_config import configure_logging

    configure_logging()
    init_database()
    uvicorn.run(
        create_app(),
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )
