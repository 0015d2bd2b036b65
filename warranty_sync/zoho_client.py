"""
Warranty Sync - Zoho CRM REST Client

Thin async wrapper over the four CRM endpoints the sync needs: the paginated
list endpoint, the COQL query endpoint, single-field search, and the
parent-scoped related-list endpoint (plus get-by-id).

List and query failures raise ``ZohoAPIError``; they abort the sync. Search,
get-by-id and related-list calls treat any failure as "no records".
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .errors import ZohoAPIError
from .settings import DEFAULT_API_BASE

logger = logging.getLogger("warranty_sync.zoho_client")


@dataclass
class ZohoPage:
    records: List[Dict[str, Any]] = field(default_factory=list)
    more_records: bool = False


class ZohoClient:
    """Client for one sync invocation, bound to a freshly issued access token."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        access_token: str,
        api_base: str = DEFAULT_API_BASE,
    ):
        self.http_client = http_client
        self.access_token = access_token
        self.api_base = api_base.rstrip("/")

    @property
    def _headers(self) -> dict:
        return {"Authorization": f"Zoho-oauthtoken {self.access_token}"}

    # -- strict endpoints ---------------------------------------------------

    @staticmethod
    def _parse_page(resp: httpx.Response, what: str) -> ZohoPage:
        if resp.status_code >= 400:
            logger.error("Zoho %s failed: HTTP %d %s", what, resp.status_code, resp.text[:500])
            try:
                details = resp.json()
            except ValueError:
                details = resp.text[:500]
            raise ZohoAPIError(f"Zoho {what} failed: HTTP {resp.status_code}", details=details)
        if resp.status_code == 204 or not resp.content:
            return ZohoPage()
        try:
            body = resp.json()
        except ValueError as exc:
            raise ZohoAPIError(f"Zoho {what} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise ZohoAPIError(f"Zoho {what} returned an unexpected body", details=body)
        info = body.get("info") or {}
        return ZohoPage(
            records=body.get("data") or [],
            more_records=bool(info.get("more_records")),
        )

    async def list_records(
        self,
        module: str,
        page: int = 1,
        per_page: int = 200,
        sort_by: str = "Created_Time",
        sort_order: str = "desc",
        fields: Optional[List[str]] = None,
    ) -> ZohoPage:
        params = {
            "per_page": per_page,
            "page": page,
            "sort_by": sort_by,
            "sort_order": sort_order,
        }
        if fields:
            params["fields"] = ",".join(fields)
        try:
            resp = await self.http_client.get(
                f"{self.api_base}/{module}", headers=self._headers, params=params
            )
        except httpx.HTTPError as exc:
            raise ZohoAPIError(f"Zoho list {module} failed: {exc}") from exc
        return self._parse_page(resp, f"list {module}")

    async def query(self, select_query: str) -> ZohoPage:
        try:
            resp = await self.http_client.post(
                f"{self.api_base}/coql",
                headers=self._headers,
                json={"select_query": select_query},
            )
        except httpx.HTTPError as exc:
            raise ZohoAPIError(f"Zoho COQL query failed: {exc}") from exc
        return self._parse_page(resp, "COQL query")

    # -- tolerant endpoints -------------------------------------------------

    async def _get_records(self, url: str, params: Optional[dict] = None) -> List[Dict[str, Any]]:
        try:
            resp = await self.http_client.get(url, headers=self._headers, params=params)
        except httpx.HTTPError as exc:
            logger.warning("Zoho GET %s failed: %s", url, exc)
            return []
        if resp.status_code >= 400:
            logger.info("Zoho GET %s returned HTTP %d", url, resp.status_code)
            return []
        if not resp.content:
            return []
        try:
            body = resp.json()
        except ValueError:
            logger.info("Zoho GET %s returned unparsable body", url)
            return []
        if not isinstance(body, dict):
            return []
        return body.get("data") or []

    async def search(self, module: str, field_name: str, value: str) -> List[Dict[str, Any]]:
        """Records of ``module`` whose ``field_name`` equals ``value``."""
        return await self._get_records(
            f"{self.api_base}/{module}/search",
            params={"criteria": f"({field_name}:equals:{value})"},
        )

    async def get_record(self, module: str, record_id: str) -> List[Dict[str, Any]]:
        return await self._get_records(f"{self.api_base}/{module}/{record_id}")

    async def related_records(
        self, module: str, record_id: str, related_list: str
    ) -> List[Dict[str, Any]]:
        return await self._get_records(f"{self.api_base}/{module}/{record_id}/{related_list}")
