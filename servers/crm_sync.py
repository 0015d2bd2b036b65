"""
Warranty Sync - Zoho CRM Sync MCP Server
==========================================
Pull-based reconciliation of Zoho CRM policies, claims and RE Pros into the
warranty portal's entity store, plus the field-mapping editor operations.
Official MCP Python SDK (FastMCP) implementation.

Run:
    python -m servers.crm_sync
    python -m servers.crm_sync --transport streamable-http --port 8002
"""

# NOTE: Do NOT use 'from __future__ import annotations' here.
# The MCP SDK introspects tool function signatures at runtime via
# inspect.signature() to auto-generate JSON schemas.

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

import httpx
from mcp.server.fastmcp import FastMCP, Context

from warranty_sync.entity_store import (
    EntityStore, InMemoryEntityStore, PostgresEntityStore, claims_for_policy,
)
from warranty_sync.errors import SyncError
from warranty_sync.middleware import wrap_tool_with_logging
from warranty_sync.models import (
    REProSyncRequest, SyncAllRequest, SyncRequest,
)
from warranty_sync.settings import Settings
from warranty_sync.sync_service import SyncService

logger = logging.getLogger("warranty_sync.mcp")


# ---------------------------------------------------------------------------
# Application context
# ---------------------------------------------------------------------------

@dataclass
class SyncContext:
    settings: Settings
    store: EntityStore
    http_client: httpx.AsyncClient
    service: SyncService


@asynccontextmanager
async def sync_lifespan(server: FastMCP) -> AsyncIterator[SyncContext]:
    """Open the entity store and the shared HTTP client."""
    settings = Settings.from_env()

    if settings.use_postgres:
        store = PostgresEntityStore()
        await store.connect()
    else:
        store = InMemoryEntityStore()

    if settings.has_oauth_credentials:
        logger.info("Zoho OAuth2 configured, a fresh token is fetched per sync")
    else:
        logger.warning(
            "Zoho credentials incomplete, sync tools will fail unless an admin "
            "user carries a saved refresh token"
        )

    http_client = httpx.AsyncClient(timeout=settings.http_timeout)
    try:
        yield SyncContext(
            settings=settings,
            store=store,
            http_client=http_client,
            service=SyncService.from_settings(settings, store, http_client),
        )
    finally:
        await http_client.aclose()
        if settings.use_postgres:
            await store.disconnect()


# ---------------------------------------------------------------------------
# MCP Server definition
# ---------------------------------------------------------------------------

mcp = FastMCP(
    name="Warranty Portal CRM Sync",
    instructions=(
        "Reconciles Zoho CRM records into the warranty portal. Syncs policies "
        "(with their related claims), standalone claims and RE Pros, and "
        "manages the field mappings that override default field extraction."
    ),
    lifespan=sync_lifespan,
)


def _service(ctx: Context) -> SyncService:
    return ctx.request_context.lifespan_context.service


def _failure(exc: SyncError) -> dict:
    result = {"success": False, "error": exc.message}
    if exc.details is not None:
        result["details"] = exc.details
    return result


# ---------------------------------------------------------------------------
# Tools - Sync
# ---------------------------------------------------------------------------

@mcp.tool()
async def sync_policies(
    module: Optional[str] = None,
    limit: Optional[int] = None,
    record_ids: Optional[List[str]] = None,
    date_field: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    ctx: Context = None,
) -> dict:
    """
    Pull policies from Zoho CRM and upsert them locally, cascading to each
    policy's related claims.

    record_ids: policy numbers to look up (searched by Policy_Number, then Name)
    date_field/start_date/end_date: restrict to a date range (all three needed)
    """
    req = SyncRequest(
        module=module, limit=limit, record_ids=record_ids,
        date_field=date_field, start_date=start_date, end_date=end_date,
    )
    try:
        result = await _service(ctx).sync_policies(req)
    except SyncError as exc:
        await ctx.error(f"Policy sync failed: {exc.message}")
        return _failure(exc)

    await ctx.info(
        f"Policies: {result.policies.created} created, {result.policies.updated} updated; "
        f"claims: {result.claims.created} created, {result.claims.updated} updated"
    )
    return result.to_payload()


@mcp.tool()
async def sync_claims(
    module: Optional[str] = None,
    limit: Optional[int] = None,
    record_ids: Optional[List[str]] = None,
    date_field: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    ctx: Context = None,
) -> dict:
    """
    Pull standalone claims from Zoho CRM and upsert them locally.

    record_ids: claim numbers to look up (searched by Claim_Number, then Name)
    """
    req = SyncRequest(
        module=module, limit=limit, record_ids=record_ids,
        date_field=date_field, start_date=start_date, end_date=end_date,
    )
    try:
        result = await _service(ctx).sync_claims(req)
    except SyncError as exc:
        await ctx.error(f"Claim sync failed: {exc.message}")
        return _failure(exc)

    await ctx.info(f"Claims: {result.created} created, {result.updated} updated")
    return result.to_payload()


@mcp.tool()
async def sync_re_pros(
    module: Optional[str] = None,
    limit: Optional[int] = None,
    record_ids: Optional[List[str]] = None,
    ctx: Context = None,
) -> dict:
    """
    Pull RE Pros from Zoho CRM, upsert them locally and tag matching portal
    users as "RE Pro" (or "Combo" when they also own policies).

    record_ids: emails, names or Zoho record ids to look up
    """
    req = REProSyncRequest(module=module, limit=limit, record_ids=record_ids)
    try:
        result = await _service(ctx).sync_re_pros(req)
    except SyncError as exc:
        await ctx.error(f"RE Pro sync failed: {exc.message}")
        return _failure(exc)

    await ctx.info(
        f"RE Pros: {result.created} created, {result.updated} updated, "
        f"{result.users_tagged or 0} users tagged"
    )
    return result.to_payload()


@mcp.tool()
async def sync_all(limit: Optional[int] = None, ctx: Context = None) -> dict:
    """Sync policies (with claims), the RE Pros they reference, then standalone claims."""
    try:
        result = await _service(ctx).sync_all(SyncAllRequest(limit=limit))
    except SyncError as exc:
        await ctx.error(f"Full sync failed: {exc.message}")
        return _failure(exc)
    return result.to_payload()


@mcp.tool()
async def get_remote_fields(module: str = "Policies", ctx: Context = None) -> dict:
    """List the API field names of a Zoho CRM module, with one sample record."""
    try:
        result = await _service(ctx).get_remote_fields(module)
    except SyncError as exc:
        return _failure(exc)
    return result.to_payload()


# ---------------------------------------------------------------------------
# Tools - Field mappings
# ---------------------------------------------------------------------------

@mcp.tool()
async def list_field_mappings(
    record_type: Optional[str] = None,
    active_only: bool = False,
    ctx: Context = None,
) -> dict:
    """List field mappings, optionally for one record type ("Policy" or "Claim")."""
    mappings = _service(ctx).mappings
    rows = await mappings.list_mappings(record_type, active_only=active_only)
    return {"success": True, "mappings": [m.model_dump() for m in rows]}


@mcp.tool()
async def add_field_mapping(
    record_type: str,
    app_field: str,
    external_field_path: str,
    ctx: Context = None,
) -> dict:
    """
    Read app_field from a dotted path of the raw Zoho record instead of the
    default rule, e.g. claim_type -> "System.label".
    """
    try:
        mapping = await _service(ctx).mappings.add_mapping(
            record_type, app_field, external_field_path.strip()
        )
    except SyncError as exc:
        return _failure(exc)
    await ctx.info(f"Mapped {record_type}.{app_field} -> {mapping.external_field_path}")
    return {"success": True, "mapping": mapping.model_dump()}


@mcp.tool()
async def set_field_mapping_active(mapping_id: str, active: bool, ctx: Context = None) -> dict:
    """Enable or disable a field mapping without deleting it."""
    try:
        mapping = await _service(ctx).mappings.set_active(mapping_id, active)
    except SyncError as exc:
        return _failure(exc)
    return {"success": True, "mapping": mapping.model_dump()}


@mcp.tool()
async def delete_field_mapping(mapping_id: str, ctx: Context = None) -> dict:
    """Remove a field mapping; the default rule applies again on the next sync."""
    try:
        await _service(ctx).mappings.delete_mapping(mapping_id)
    except SyncError as exc:
        return _failure(exc)
    return {"success": True}


# ---------------------------------------------------------------------------
# Tools - Local reads
# ---------------------------------------------------------------------------

@mcp.tool()
async def list_policy_claims(policy_number: str, ctx: Context = None) -> dict:
    """Claims stored locally for a policy number."""
    store = ctx.request_context.lifespan_context.store
    claims = await claims_for_policy(store, policy_number)
    return {"success": True, "policy_number": policy_number.strip(), "claims": claims}


# ---------------------------------------------------------------------------
# Resources - Sync status
# ---------------------------------------------------------------------------

@mcp.resource("status://crm-sync")
def crm_sync_status() -> str:
    """Zoho CRM sync configuration status."""
    settings = Settings.from_env()
    return json.dumps({
        "server": "Warranty Portal CRM Sync",
        "version": "1.0.0",
        "zoho_api_base": settings.zoho_api_base,
        "zoho_configured": settings.has_oauth_credentials,
        "entity_store": "postgres" if settings.use_postgres else "memory",
        "page_size": settings.page_size,
        "default_limit": settings.default_limit,
    }, indent=2)


# ---------------------------------------------------------------------------
# Middleware - correlation ID + audit logging for all tools
# ---------------------------------------------------------------------------

wrap_tool_with_logging(mcp)

# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import argparse
    import os
    import sys

    parser = argparse.ArgumentParser(description="Warranty Portal CRM Sync MCP Server")
    parser.add_argument(
        "--transport", choices=["stdio", "streamable-http", "sse"],
        default="stdio", help="Transport mechanism (default: stdio)"
    )
    parser.add_argument("--port", type=int, default=8002, help="HTTP port (default: 8002)")
    parser.add_argument("--host", default="0.0.0.0", help="HTTP host (default: 0.0.0.0)")
    args = parser.parse_args()

    if args.transport == "stdio":
        mcp.run(transport="stdio")
    else:
        import uvicorn
        from mcp.server.transport_security import TransportSecuritySettings
        from warranty_sync.auth import apply_auth_middleware

        # Add src/ to path for the HTTP routes
        sys.path.insert(
            0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "src")
        )
        from app import create_app

        mcp.settings.host = args.host
        mcp.settings.port = args.port
        mcp.settings.json_response = True
        mcp.settings.transport_security = TransportSecuritySettings(
            enable_dns_rebinding_protection=False,
        )

        # --- FastAPI gateway: sync/mapping/OAuth/webhook routes + MCP ---
        gateway = create_app()
        mcp_http = mcp.streamable_http_app()
        gateway.mount("/", mcp_http)

        app = apply_auth_middleware(gateway)
        uvicorn.run(app, host=args.host, port=args.port)
