"""API route registration."""

from fastapi import FastAPI

from penpal_server.api.routes import admin, exchange, health, reputation
from penpal_server.services.letter_exchange import LetterExchangeService


def register_routes(app: FastAPI, service: LetterExchangeService) -> None:
    """Register all API routes with the FastAPI app."""
    app.include_router(health.router)
    app.include_router(exchange.router(service))
    app.include_router(reputation.router(service))
    app.include_router(admin.router(service))
