"""
Shared test fixtures for the warranty sync tests.

FakeZoho answers the Zoho endpoints the sync core uses (token, list, COQL,
search, by-id, related list) from in-memory module data through
httpx.MockTransport, so no test touches the network.
"""

import json
import re
from typing import Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from warranty_sync.entity_store import InMemoryEntityStore
from warranty_sync.settings import Settings
from warranty_sync.sync_service import SyncService

API_BASE = "https://zoho.test/crm/v2"
TOKEN_URL = "https://accounts.zoho.test/oauth/v2/token"
ACCESS_TOKEN = "access-123"
ADMIN_KEY = "admin-key"

_COQL = re.compile(
    r"select \* from (\w+) where (\w+) between '(.*?)' and '(.*?)' "
    r"order by Created_Time desc limit (\d+) offset (\d+)"
)
_CRITERIA = re.compile(r"\((\w+):equals:(.*)\)")


class FakeZoho:
    def __init__(self):
        self.modules: Dict[str, List[dict]] = {}
        self.related: Dict[str, List[dict]] = {}
        self.token_reply = (200, {"access_token": ACCESS_TOKEN})
        self.fail_paths: Dict[str, int] = {}
        self.fail_pages: Dict[int, int] = {}
        self.requests: List[httpx.Request] = []

    def add(self, module: str, *records: dict) -> None:
        self.modules.setdefault(module, []).extend(records)

    def add_related(self, parent_id: str, *records: dict) -> None:
        self.related.setdefault(parent_id, []).extend(records)

    def calls(self, suffix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    # -- transport ----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if str(request.url).startswith(TOKEN_URL):
            return self._token()
        if request.headers.get("authorization") != f"Zoho-oauthtoken {ACCESS_TOKEN}":
            return httpx.Response(401, json={"code": "INVALID_TOKEN"})
        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path], json={"code": "INTERNAL_ERROR"})

        parts = path[len("/crm/v2/"):].split("/")
        if parts == ["coql"]:
            return self._coql(json.loads(request.content)["select_query"])
        if len(parts) == 1:
            return self._list(parts[0], request.url.params)
        if len(parts) == 2 and parts[1] == "search":
            return self._search(parts[0], request.url.params["criteria"])
        if len(parts) == 2:
            return self._by_id(parts[0], parts[1])
        if len(parts) == 3:
            return self._data(self.related.get(parts[1], []))
        return httpx.Response(404)

    def _token(self) -> httpx.Response:
        status, body = self.token_reply
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    @staticmethod
    def _data(records: List[dict], more: Optional[bool] = None) -> httpx.Response:
        if not records:
            return httpx.Response(204)
        body = {"data": records}
        if more is not None:
            body["info"] = {"more_records": more, "count": len(records)}
        return httpx.Response(200, json=body)

    def _page(self, records: List[dict], offset: int, size: int) -> httpx.Response:
        page = records[offset:offset + size]
        return self._data(page, more=offset + size < len(records))

    def _list(self, module: str, params) -> httpx.Response:
        per_page = int(params["per_page"])
        page = int(params["page"])
        if page in self.fail_pages:
            return httpx.Response(self.fail_pages[page], json={"code": "INTERNAL_ERROR"})
        return self._page(self.modules.get(module, []), (page - 1) * per_page, per_page)

    def _coql(self, query: str) -> httpx.Response:
        module, field, start, end, limit, offset = _COQL.match(query).groups()
        matched = [
            r for r in self.modules.get(module, [])
            if r.get(field) and start <= r[field] <= end
        ]
        return self._page(matched, int(offset), int(limit))

    def _search(self, module: str, criteria: str) -> httpx.Response:
        field, value = _CRITERIA.match(criteria).groups()
        return self._data([
            r for r in self.modules.get(module, []) if str(r.get(field)) == value
        ])

    def _by_id(self, module: str, record_id: str) -> httpx.Response:
        hits = [r for r in self.modules.get(module, []) if str(r.get("id")) == record_id]
        if not hits:
            return httpx.Response(400, json={"code": "INVALID_DATA"})
        return self._data(hits)


def token_form(request: httpx.Request) -> Dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------

def policy_record(zoho_id: str, number: str, **extra) -> dict:
    record = {
        "id": zoho_id,
        "Name": f"POL-{number}",
        "Policy_Number": number,
        "Plan_Name": "Gold",
        "Status": "Active",
        "Email": "owner@example.com",
        "Customer": {"name": "Pat Owner", "id": "c1"},
        "Address_1": "1 Main St",
        "City": "Austin",
        "State": "TX",
        "Zip": "78701",
        "Created_Time": "2024-03-01T10:00:00-05:00",
    }
    record.update(extra)
    return record


def claim_record(zoho_id: str, number: str, **extra) -> dict:
    record = {
        "id": zoho_id,
        "Name": f"CLM-{number}",
        "Claim_Number": number,
        "Policy_Name": {"name": "P-100", "id": "p1"},
        "Email": "owner@example.com",
        "Claim_Type": "Plumbing",
        "Status": "Open",
        "Created_Time": "2024-03-02T10:00:00-05:00",
    }
    record.update(extra)
    return record


def re_pro_record(zoho_id: str, email: str, **extra) -> dict:
    record = {"id": zoho_id, "Name": f"Agent {zoho_id}", "Email": email, "Phone": "555-0100"}
    record.update(extra)
    return record


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def zoho():
    return FakeZoho()


@pytest.fixture
def http_client(zoho):
    return httpx.AsyncClient(transport=httpx.MockTransport(zoho.handler))


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def settings():
    return Settings(
        zoho_client_id="client-id",
        zoho_client_secret="client-secret",
        zoho_refresh_token="refresh-token",
        zoho_token_url=TOKEN_URL,
        zoho_api_base=API_BASE,
        admin_api_key=ADMIN_KEY,
    )


@pytest.fixture
def service(settings, store, http_client):
    return SyncService.from_settings(settings, store, http_client)
