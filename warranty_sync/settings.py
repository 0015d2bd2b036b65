"""
Warranty Sync - Process Settings

All environment access happens here. Components receive explicit values so the
sync core never reads ambient state.

Env vars:
    ZOHO_CLIENT_ID       - OAuth2 client ID from the Zoho API Console
    ZOHO_CLIENT_SECRET   - OAuth2 client secret
    ZOHO_REFRESH_TOKEN   - Long-lived refresh token
    ZOHO_TOKEN_URL       - Token endpoint (default: https://accounts.zoho.com/oauth/v2/token)
    ZOHO_ACCOUNTS_URL    - Accounts host used for the authorization URL
    ZOHO_API_BASE        - CRM REST base (default: https://www.zohoapis.com/crm/v2)
    ZOHO_PAGE_SIZE       - Records per page (Zoho max is 200)
    ZOHO_HTTP_TIMEOUT    - Seconds per remote call
    SYNC_DEFAULT_LIMIT   - Record cap when a request gives none
    SYNC_ADMIN_API_KEY   - Bearer key accepted as the admin caller
    PGHOST / PGDATABASE  - When both are set, entities live in Postgres
"""

import os
from dataclasses import dataclass

DEFAULT_TOKEN_URL = "https://accounts.zoho.com/oauth/v2/token"
DEFAULT_ACCOUNTS_URL = "https://accounts.zoho.com"
DEFAULT_API_BASE = "https://www.zohoapis.com/crm/v2"
DEFAULT_PAGE_SIZE = 200
DEFAULT_LIMIT = 10000
DEFAULT_TIMEOUT = 30.0


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass
class Settings:
    zoho_client_id: str = ""
    zoho_client_secret: str = ""
    zoho_refresh_token: str = ""
    zoho_token_url: str = DEFAULT_TOKEN_URL
    zoho_accounts_url: str = DEFAULT_ACCOUNTS_URL
    zoho_api_base: str = DEFAULT_API_BASE
    page_size: int = DEFAULT_PAGE_SIZE
    default_limit: int = DEFAULT_LIMIT
    http_timeout: float = DEFAULT_TIMEOUT
    admin_api_key: str = ""
    use_postgres: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            zoho_client_id=os.getenv("ZOHO_CLIENT_ID", ""),
            zoho_client_secret=os.getenv("ZOHO_CLIENT_SECRET", ""),
            zoho_refresh_token=os.getenv("ZOHO_REFRESH_TOKEN", ""),
            zoho_token_url=os.getenv("ZOHO_TOKEN_URL", DEFAULT_TOKEN_URL),
            zoho_accounts_url=os.getenv("ZOHO_ACCOUNTS_URL", DEFAULT_ACCOUNTS_URL),
            zoho_api_base=os.getenv("ZOHO_API_BASE", DEFAULT_API_BASE),
            page_size=min(_int_env("ZOHO_PAGE_SIZE", DEFAULT_PAGE_SIZE), DEFAULT_PAGE_SIZE),
            default_limit=_int_env("SYNC_DEFAULT_LIMIT", DEFAULT_LIMIT),
            http_timeout=_float_env("ZOHO_HTTP_TIMEOUT", DEFAULT_TIMEOUT),
            admin_api_key=os.getenv("SYNC_ADMIN_API_KEY", ""),
            use_postgres=bool(os.getenv("PGHOST") and os.getenv("PGDATABASE")),
        )

    @property
    def has_oauth_credentials(self) -> bool:
        return bool(self.zoho_client_id and self.zoho_client_secret and self.zoho_refresh_token)
