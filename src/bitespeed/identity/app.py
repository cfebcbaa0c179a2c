from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from shared.logging import get_logger, setup_logging

from .config import IdentitySettings, get_settings
from .errors import InvalidRequest, InvariantViolation, StorageFailure
from .repository import ContactStore, create_store
from .routes import contacts, system
from .services import IdentityReconciler

logger = get_logger("identity.api")


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidRequest)
    async def invalid_request(_: Request, exc: InvalidRequest) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})

    @app.exception_handler(StorageFailure)
    async def storage_failure(_: Request, exc: StorageFailure) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "Contact store unavailable"},
        )

    @app.exception_handler(InvariantViolation)
    async def invariant_violation(_: Request, exc: InvariantViolation) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Contact data is inconsistent"},
        )


def create_app(store: ContactStore | None = None, settings: IdentitySettings | None = None) -> FastAPI:
    """Compose the identity API.

    When ``store`` is omitted one is built from ``settings`` and closed on
    shutdown; a caller-supplied store stays owned by the caller.
    """
    settings = settings or get_settings()
    owns_store = store is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(settings.log_level)
        logger.info("identity_api_ready", service=settings.service_name, backend=settings.store_backend)
        yield
        if owns_store:
            app.state.store.close()

    app = FastAPI(title="Bitespeed Identity Service", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store if store is not None else create_store(settings)
    app.state.reconciler = IdentityReconciler(app.state.store, default_region=settings.default_region)

    _register_error_handlers(app)
    app.include_router(system.router)
    app.include_router(contacts.router)
    return app


__all__ = ["create_app"]
