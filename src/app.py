"""
Warranty Sync - FastAPI Application

Provides the admin sync triggers, the field-mapping editor API, the Zoho
OAuth setup routes, the Zoho webhook receiver and a health check.
Used by tests and as a standalone server.

For production MCP+HTTP, use servers/crm_sync.py which mounts this
alongside the MCP streamable-HTTP transport.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from warranty_sync.entity_store import EntityStore, InMemoryEntityStore, PostgresEntityStore
from warranty_sync.errors import SyncError
from warranty_sync.middleware import CorrelationIdMiddleware, audit_log, setup_logging
from warranty_sync.settings import Settings
from warranty_sync.sync_service import SyncService

from mapping_routes import router as mapping_router
from oauth_routes import router as oauth_router
from sync_routes import router as sync_router
from zoho_webhooks import router as webhook_router

logger = logging.getLogger("warranty_sync.app")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[EntityStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the HTTP app. A ``store`` or ``http_client`` passed in is used as-is
    and left open; anything missing is created in the lifespan and closed on
    shutdown.
    """
    settings = settings or Settings.from_env()
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_store = None
        owned_client = None

        if app.state.store is None:
            if settings.use_postgres:
                owned_store = PostgresEntityStore()
                await owned_store.connect()
            else:
                owned_store = InMemoryEntityStore()
            app.state.store = owned_store
        if app.state.http_client is None:
            owned_client = httpx.AsyncClient(timeout=settings.http_timeout)
            app.state.http_client = owned_client

        app.state.sync_service = SyncService.from_settings(
            settings, app.state.store, app.state.http_client
        )
        if not settings.has_oauth_credentials:
            logger.warning("Zoho credentials incomplete; syncs will fail until configured")

        try:
            yield
        finally:
            if owned_client is not None:
                await owned_client.aclose()
            if isinstance(owned_store, PostgresEntityStore):
                await owned_store.disconnect()

    app = FastAPI(title="Warranty Portal CRM Sync", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.http_client = http_client
    app.state.sync_service = None
    if store is not None and http_client is not None:
        app.state.sync_service = SyncService.from_settings(settings, store, http_client)

    @app.exception_handler(SyncError)
    async def sync_error_handler(request: Request, exc: SyncError):
        audit_log(
            "sync.error",
            path=request.url.path,
            status=exc.status_code,
            error=exc.message,
            error_type=type(exc).__name__,
        )
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        return JSONResponse({"error": "Invalid request", "details": details}, status_code=400)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
        audit_log(
            "request.error",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse({"error": str(exc) or type(exc).__name__}, status_code=500)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(sync_router)
    app.include_router(mapping_router)
    app.include_router(oauth_router)
    app.include_router(webhook_router)
    app.add_middleware(CorrelationIdMiddleware)
    return app


app = create_app()
