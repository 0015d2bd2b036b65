"""
Zoho OAuth Setup Endpoints - Warranty Sync

One-off operator flow that provisions the long-lived refresh token:

    GET  /oauth/authorize-url   (admin)  -> Zoho consent URL
    GET  /oauth/callback        (public) -> Zoho redirects here with ?code=
    POST /oauth/refresh-token   (admin)  -> save a refresh token on the caller
    POST /oauth/access-token    (admin)  -> mint an access token (diagnostics)

The callback is unauthenticated because it is a browser redirect from Zoho.
"""

import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, ConfigDict, Field

from warranty_sync.auth import require_admin
from warranty_sync.errors import ConfigurationError
from warranty_sync.models import USER, CurrentUser
from warranty_sync.zoho_auth import build_authorization_url, exchange_authorization_code

logger = logging.getLogger("warranty_sync.routes.oauth")

router = APIRouter(prefix="/oauth", tags=["oauth"])

CALLBACK_PATH = "/oauth/callback"


class SaveRefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, alias="refreshToken")

    model_config = ConfigDict(populate_by_name=True)


def _callback_uri(request: Request) -> str:
    return str(request.base_url).rstrip("/") + CALLBACK_PATH


@router.get("/authorize-url")
async def authorize_url(
    request: Request,
    redirect_uri: Optional[str] = None,
    _admin: CurrentUser = Depends(require_admin),
):
    settings = request.app.state.settings
    redirect_uri = redirect_uri or _callback_uri(request)
    url = build_authorization_url(
        settings.zoho_client_id, redirect_uri, accounts_url=settings.zoho_accounts_url
    )
    # redirectUri is echoed so the operator can check it against the Zoho console
    return {"authUrl": url, "redirectUri": redirect_uri}


@router.get("/callback", response_class=HTMLResponse)
async def oauth_callback(request: Request, code: str):
    settings = request.app.state.settings
    tokens = await exchange_authorization_code(
        request.app.state.http_client,
        code=code,
        client_id=settings.zoho_client_id,
        client_secret=settings.zoho_client_secret,
        redirect_uri=_callback_uri(request),
        token_url=settings.zoho_token_url,
        timeout=settings.http_timeout,
    )
    logger.info("Zoho authorization code exchanged for a refresh token")
    refresh_token = html.escape(tokens["refresh_token"])
    return f"""
<html>
  <body style="font-family: sans-serif; padding: 40px; max-width: 600px; margin: 0 auto;">
    <h2>Zoho CRM connected</h2>
    <p>Your refresh token has been generated. Save it as ZOHO_REFRESH_TOKEN, or
       POST it to /oauth/refresh-token to store it on your admin account:</p>
    <pre style="background: #f5f5f5; padding: 15px; word-break: break-all; white-space: pre-wrap;">{refresh_token}</pre>
  </body>
</html>
"""


@router.post("/refresh-token")
async def save_refresh_token(
    request: Request,
    body: SaveRefreshTokenRequest,
    admin: CurrentUser = Depends(require_admin),
):
    store = request.app.state.store
    user_id = admin.id
    if user_id is None:
        users = await store.filter(USER, {"email": admin.email, "role": "admin"})
        if not users:
            raise ConfigurationError("The calling admin has no user record to store the token on")
        user_id = users[0]["id"]

    await store.update(USER, user_id, {"zoho_refresh_token": body.refresh_token})
    logger.info("Zoho refresh token saved on user %s", user_id)
    return {"success": True, "message": "Refresh token saved successfully"}


@router.post("/access-token")
async def access_token(request: Request, _admin: CurrentUser = Depends(require_admin)):
    service = request.app.state.sync_service
    token = await service.token_provider.get_access_token(service.http_client)
    return {"accessToken": token}
