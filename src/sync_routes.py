"""
Sync Trigger Endpoints - Warranty Sync

Routes:
    POST /sync/policies
    POST /sync/claims
    POST /sync/re-pros
    POST /sync/all
    POST /zoho/fields

Admin only. ``SyncError`` subclasses answer with their own status through the
app-level handler; anything else aborts the call with a 500 carrying the
stack trace, which is acceptable because every caller is an operator.
"""

import logging
import traceback
from typing import Awaitable, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from warranty_sync.auth import require_admin
from warranty_sync.errors import SyncError
from warranty_sync.middleware import audit_log
from warranty_sync.models import (
    REProSyncRequest,
    RemoteFieldsRequest,
    SyncAllRequest,
    SyncRequest,
)
from warranty_sync.sync_service import SyncService

logger = logging.getLogger("warranty_sync.routes.sync")

router = APIRouter(tags=["sync"], dependencies=[Depends(require_admin)])


def get_sync_service(request: Request) -> SyncService:
    return request.app.state.sync_service


async def _run(operation: str, call: Awaitable):
    try:
        result = await call
    except SyncError:
        raise
    except Exception as exc:
        logger.error("%s failed", operation, exc_info=True)
        audit_log("sync.error", operation=operation, error=str(exc), error_type=type(exc).__name__)
        return JSONResponse(
            {"error": str(exc) or type(exc).__name__, "stack": traceback.format_exc()},
            status_code=500,
        )
    return result.to_payload()


@router.post("/sync/policies")
async def sync_policies(
    body: Optional[SyncRequest] = None,
    service: SyncService = Depends(get_sync_service),
):
    return await _run("sync_policies", service.sync_policies(body or SyncRequest()))


@router.post("/sync/claims")
async def sync_claims(
    body: Optional[SyncRequest] = None,
    service: SyncService = Depends(get_sync_service),
):
    return await _run("sync_claims", service.sync_claims(body or SyncRequest()))


@router.post("/sync/re-pros")
async def sync_re_pros(
    body: Optional[REProSyncRequest] = None,
    service: SyncService = Depends(get_sync_service),
):
    return await _run("sync_re_pros", service.sync_re_pros(body or REProSyncRequest()))


@router.post("/sync/all")
async def sync_all(
    body: Optional[SyncAllRequest] = None,
    service: SyncService = Depends(get_sync_service),
):
    return await _run("sync_all", service.sync_all(body or SyncAllRequest()))


@router.post("/zoho/fields")
async def remote_fields(
    body: Optional[RemoteFieldsRequest] = None,
    service: SyncService = Depends(get_sync_service),
):
    """Field names and a sample record of a CRM module, for the mapping editor."""
    module = (body or RemoteFieldsRequest()).module
    return await _run("get_remote_fields", service.get_remote_fields(module))
