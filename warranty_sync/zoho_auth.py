"""
Warranty Sync - Zoho OAuth2 Token Provider
============================================
Exchanges the stored long-lived refresh token for a short-lived access token.

A fresh token is fetched on every sync invocation and never cached across
invocations: syncs are infrequent, manually triggered bulk operations.

Setup:
    1. Create a server-based client at https://api-console.zoho.com/
    2. Run the authorization flow (``build_authorization_url`` then
       ``exchange_authorization_code``) to obtain a refresh token
    3. Set ZOHO_CLIENT_ID, ZOHO_CLIENT_SECRET, ZOHO_REFRESH_TOKEN, or save the
       refresh token on an admin user record
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlencode

import httpx

from .entity_store import EntityStore
from .errors import AuthError, ConfigurationError
from .models import USER
from .settings import DEFAULT_ACCOUNTS_URL, DEFAULT_TIMEOUT, DEFAULT_TOKEN_URL, Settings

logger = logging.getLogger("warranty_sync.zoho_auth")

ZOHO_SCOPE = "ZohoCRM.modules.ALL"


@dataclass(frozen=True)
class ExternalCredential:
    client_id: str
    client_secret: str
    refresh_token: str

    def missing_fields(self) -> List[str]:
        return [
            name
            for name, value in (
                ("client_id", self.client_id),
                ("client_secret", self.client_secret),
                ("refresh_token", self.refresh_token),
            )
            if not value
        ]


@dataclass
class CredentialProvider:
    """
    Supplies the Zoho client credentials and refresh token.

    When no refresh token is configured, falls back to the one saved on the
    first admin user (written by the OAuth setup routes).
    """

    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""
    store: Optional[EntityStore] = field(default=None, repr=False)

    @classmethod
    def from_settings(
        cls, settings: Settings, store: Optional[EntityStore] = None
    ) -> "CredentialProvider":
        return cls(
            client_id=settings.zoho_client_id,
            client_secret=settings.zoho_client_secret,
            refresh_token=settings.zoho_refresh_token,
            store=store,
        )

    async def get_credential(self) -> ExternalCredential:
        refresh_token = self.refresh_token
        if not refresh_token and self.store is not None:
            admins = await self.store.filter(USER, {"role": "admin"})
            if admins and admins[0].get("zoho_refresh_token"):
                refresh_token = admins[0]["zoho_refresh_token"]
        return ExternalCredential(self.client_id, self.client_secret, refresh_token)


@dataclass
class ZohoTokenProvider:
    credentials: CredentialProvider
    token_url: str = DEFAULT_TOKEN_URL
    timeout: float = DEFAULT_TIMEOUT

    async def get_access_token(self, http_client: httpx.AsyncClient) -> str:
        """
        Exchange the refresh token for a bearer token.

        Raises:
            ConfigurationError: client id, secret or refresh token is absent.
            AuthError: the token endpoint did not return an access token.
        """
        credential = await self.credentials.get_credential()
        missing = credential.missing_fields()
        if missing:
            logger.error("Zoho credentials missing: %s", ", ".join(missing))
            raise ConfigurationError(
                "Zoho credentials not configured. Please set ZOHO_CLIENT_ID, "
                "ZOHO_CLIENT_SECRET, and ZOHO_REFRESH_TOKEN in environment variables.",
                details={"missing": missing},
            )

        logger.info("Requesting Zoho access token")
        try:
            resp = await http_client.post(
                self.token_url,
                data={
                    "refresh_token": credential.refresh_token,
                    "client_id": credential.client_id,
                    "client_secret": credential.client_secret,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.error("Zoho token request HTTP error: %s", exc)
            raise AuthError("Failed to get access token", details={"error": str(exc)}) from exc

        try:
            data = resp.json()
        except ValueError:
            data = {"status_code": resp.status_code, "body": resp.text[:500]}

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            logger.error("Zoho token response missing access_token: %s", data)
            raise AuthError("Failed to get access token", details=data)

        logger.info("Zoho access token obtained")
        return token


# ---------------------------------------------------------------------------
# Authorization-code flow (one-off operator setup)
# ---------------------------------------------------------------------------

def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    accounts_url: str = DEFAULT_ACCOUNTS_URL,
    scope: str = ZOHO_SCOPE,
) -> str:
    if not client_id:
        raise ConfigurationError("ZOHO_CLIENT_ID not set")
    query = urlencode({
        "scope": scope,
        "client_id": client_id,
        "response_type": "code",
        "access_type": "offline",
        "redirect_uri": redirect_uri,
    })
    return f"{accounts_url}/oauth/v2/auth?{query}"


async def exchange_authorization_code(
    http_client: httpx.AsyncClient,
    *,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    token_url: str = DEFAULT_TOKEN_URL,
    timeout: float = DEFAULT_TIMEOUT,
) -> dict:
    """Trade an authorization code for tokens; the result carries ``refresh_token``."""
    if not client_id or not client_secret:
        raise ConfigurationError("Zoho client id/secret not configured")

    resp = await http_client.post(
        token_url,
        data={
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
            "code": code,
        },
        timeout=timeout,
    )
    try:
        data = resp.json()
    except ValueError:
        data = {"status_code": resp.status_code, "body": resp.text[:500]}

    if not isinstance(data, dict) or not data.get("refresh_token"):
        logger.error("Zoho code exchange returned no refresh token: %s", data)
        raise AuthError("Failed to get refresh token", details=data)
    return data
