"""
Warranty Sync - Logging Middleware

Provides:
  - Correlation ID generation and propagation (ContextVar + ASGI header hook)
  - Structured JSON logging to stderr
  - Audit events with timing for MCP tools and sync runs

Usage:
    from warranty_sync.middleware import audit_log, wrap_tool_with_logging

    audit_log("sync.start", module="Policies")
    wrap_tool_with_logging(mcp)
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any

from starlette.types import ASGIApp, Receive, Scope, Send

# ---------------------------------------------------------------------------
# Correlation ID context
# ---------------------------------------------------------------------------

CORRELATION_HEADER = "x-correlation-id"

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Get the current correlation ID, or generate one if not set."""
    cid = _correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())
        _correlation_id.set(cid)
    return cid


def set_correlation_id(cid: str) -> None:
    _correlation_id.set(cid)


# ---------------------------------------------------------------------------
# Structured JSON logger
# ---------------------------------------------------------------------------

_logger = logging.getLogger("warranty_sync")


def setup_logging(level: int = logging.INFO) -> None:
    """Attach the JSON formatter to the package logger once."""
    if _logger.handlers:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_StructuredFormatter())
    _logger.addHandler(handler)
    _logger.setLevel(level)


class _StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S.000Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra_data"):
            entry.update(record.extra_data)
        cid = _correlation_id.get()
        if cid:
            entry["correlation_id"] = cid
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def audit_log(event_type: str, **kwargs: Any) -> None:
    """Emit a structured audit log entry."""
    setup_logging()
    record = _logger.makeRecord(
        name="warranty_sync.audit",
        level=logging.INFO,
        fn="",
        lno=0,
        msg=f"{event_type}",
        args=(),
        exc_info=None,
    )
    record.extra_data = {"event_type": event_type, **kwargs}
    _logger.handle(record)


# ---------------------------------------------------------------------------
# ASGI correlation middleware
# ---------------------------------------------------------------------------

class CorrelationIdMiddleware:
    """Adopt an inbound X-Correlation-ID (or mint one) for each HTTP request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        inbound = headers.get(CORRELATION_HEADER.encode(), b"").decode("latin-1")
        cid = inbound or str(uuid.uuid4())
        set_correlation_id(cid)

        async def _send(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].append((CORRELATION_HEADER.encode(), cid.encode()))
            await send(message)

        await self.app(scope, receive, _send)


# ---------------------------------------------------------------------------
# Tool wrapper: correlation ID + timing + audit logging
# ---------------------------------------------------------------------------

def wrap_tool_with_logging(mcp_server) -> None:
    """
    Patch every registered tool on an MCP server to add a correlation ID,
    tool.start / tool.end / tool.error audit events and duration tracking.

    Call this AFTER all @mcp.tool() decorators have run.
    """
    setup_logging()
    tool_manager = mcp_server._tool_manager

    for tool_name, tool in tool_manager._tools.items():
        original_fn = tool.fn

        async def _wrapped(*args, _orig=original_fn, _name=tool_name, **kwargs):
            cid = get_correlation_id()
            if not cid:
                cid = str(uuid.uuid4())
                set_correlation_id(cid)

            audit_log("tool.start", tool=_name)
            start = time.monotonic()

            try:
                result = await _orig(*args, **kwargs)
            except Exception as exc:
                audit_log(
                    "tool.error",
                    tool=_name,
                    duration_ms=int((time.monotonic() - start) * 1000),
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise
            audit_log(
                "tool.end",
                tool=_name,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
            return result

        tool.fn = _wrapped
