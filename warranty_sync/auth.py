"""
Warranty Sync - Authentication

Two layers:

  - APIKeyMiddleware: ASGI gate in front of the MCP streamable-HTTP gateway.
    Reads the expected key from SYNC_API_KEY (falls back to
    SYNC_ADMIN_API_KEY). If neither is set, the gate is disabled (local dev).
  - Caller resolution for the FastAPI routes: a pluggable resolver returning
    the current user, and the ``require_admin`` dependency built on it.

Usage in server entrypoints:
    from warranty_sync.auth import apply_auth_middleware

    app = apply_auth_middleware(gateway)
    uvicorn.run(app, ...)
"""

import logging
import os
from typing import Awaitable, Callable, Optional

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from .errors import UnauthorizedError
from .models import USER, CurrentUser

logger = logging.getLogger("warranty_sync.auth")

# Paths that authenticate on their own terms (or not at all).
PUBLIC_PATHS = ("/health", "/healthz", "/ready", "/oauth/callback")
PUBLIC_PREFIXES = ("/webhooks/",)


def _bearer_token(authorization: str) -> Optional[str]:
    if not authorization.startswith("Bearer "):
        return None
    return authorization[7:].strip() or None


class APIKeyMiddleware:
    """ASGI middleware that enforces Bearer token authentication."""

    def __init__(self, app: ASGIApp, api_key: str) -> None:
        self.app = app
        self.api_key = api_key

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        path = request.url.path
        if path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES):
            await self.app(scope, receive, send)
            return

        token = _bearer_token(request.headers.get("authorization", ""))
        if token is None:
            response = JSONResponse(
                {"error": "Missing or invalid Authorization header. Use: Bearer <API_KEY>"},
                status_code=401,
            )
            await response(scope, receive, send)
            return

        if token != self.api_key:
            response = JSONResponse({"error": "Invalid API key"}, status_code=403)
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)


def apply_auth_middleware(app: ASGIApp) -> ASGIApp:
    """
    Wrap an ASGI app with API key auth if SYNC_API_KEY (or SYNC_ADMIN_API_KEY)
    is set. Returns the original app unchanged if no key is configured.
    """
    api_key = os.getenv("SYNC_API_KEY") or os.getenv("SYNC_ADMIN_API_KEY", "")
    if not api_key:
        return app
    return APIKeyMiddleware(app, api_key)


# ---------------------------------------------------------------------------
# Current-user resolution (pluggable)
# ---------------------------------------------------------------------------

UserResolver = Callable[[Request], Awaitable[Optional[CurrentUser]]]

_user_resolver_fn: Optional[UserResolver] = None


def set_user_resolver(fn: Optional[UserResolver]) -> None:
    """Inject the session system's user accessor. ``None`` restores the default."""
    global _user_resolver_fn
    _user_resolver_fn = fn


async def default_user_resolver(request: Request) -> Optional[CurrentUser]:
    """
    Bearer token equal to the configured admin key is the admin caller;
    any other token is matched against ``User.api_token``.
    """
    token = _bearer_token(request.headers.get("authorization", ""))
    if token is None:
        return None

    settings = getattr(request.app.state, "settings", None)
    admin_key = settings.admin_api_key if settings is not None else ""
    if admin_key and token == admin_key:
        return CurrentUser(email="admin", role="admin")

    store = getattr(request.app.state, "store", None)
    if store is None:
        return None
    users = await store.filter(USER, {"api_token": token})
    if not users:
        return None
    user = users[0]
    return CurrentUser(
        id=user.get("id"),
        email=user.get("email") or "",
        role=user.get("role") or "user",
        full_name=user.get("full_name"),
        phone=user.get("phone"),
    )


async def get_current_user(request: Request) -> Optional[CurrentUser]:
    resolver = _user_resolver_fn or default_user_resolver
    return await resolver(request)


async def require_admin(request: Request) -> CurrentUser:
    """FastAPI dependency: the calling admin, or 401."""
    user = await get_current_user(request)
    if user is None or not user.is_admin:
        logger.warning("Rejected non-admin caller on %s", request.url.path)
        raise UnauthorizedError()
    return user
