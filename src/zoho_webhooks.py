"""
Zoho Webhook Endpoint - Warranty Sync

Routes:
    POST /webhooks/zoho

Receives Zoho CRM workflow notifications and applies them to the local store
keyed by the remote record id. No signature scheme exists on the Zoho side,
so the route is unauthenticated and trusts the sender.
"""

import logging

from fastapi import APIRouter, Request

from warranty_sync.models import WebhookPayload

logger = logging.getLogger("warranty_sync.routes.webhooks")

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/zoho")
async def zoho_webhook(payload: WebhookPayload, request: Request):
    logger.info(
        "Zoho webhook received: %s %s (%d records)",
        payload.module, payload.operation, len(payload.data),
    )
    return await request.app.state.sync_service.apply_webhook(payload)
