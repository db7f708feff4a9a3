"""Middleware registration."""

from fastapi import FastAPI

from idbridge.config import Settings
from idbridge.middleware.cors import setup_cors
from idbridge.middleware.error_handler import setup_error_handlers
from idbridge.middleware.logging import setup_logging
from idbridge.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    FastAPI/Starlette executes middleware in reverse-add order (last added = outermost).
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
