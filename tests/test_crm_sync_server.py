"""
Tests for the CRM Sync MCP server: tool registration, the status resource
and tool behavior against an in-process lifespan context.
Run: pytest tests/test_crm_sync_server.py -v
"""

import json
from types import SimpleNamespace

import pytest

from servers import crm_sync
from servers.crm_sync import SyncContext, crm_sync_status, mcp
from warranty_sync.middleware import get_correlation_id, set_correlation_id

from conftest import claim_record


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def test_server_name():
    assert mcp.name == "Warranty Portal CRM Sync"


def test_tool_count():
    assert len(mcp._tool_manager._tools) == 10


def test_expected_tools():
    names = {t.name for t in mcp._tool_manager._tools.values()}
    assert names == {
        "sync_policies",
        "sync_claims",
        "sync_re_pros",
        "sync_all",
        "get_remote_fields",
        "list_field_mappings",
        "add_field_mapping",
        "set_field_mapping_active",
        "delete_field_mapping",
        "list_policy_claims",
    }


def test_status_resource(monkeypatch):
    monkeypatch.setenv("ZOHO_CLIENT_ID", "cid")
    monkeypatch.setenv("ZOHO_CLIENT_SECRET", "secret")
    monkeypatch.delenv("ZOHO_REFRESH_TOKEN", raising=False)
    monkeypatch.delenv("PGHOST", raising=False)

    status = json.loads(crm_sync_status())

    assert status["zoho_configured"] is False
    assert status["entity_store"] == "memory"


# ---------------------------------------------------------------------------
# Tool calls (lifespan context injected directly)
# ---------------------------------------------------------------------------

class _FakeContext:
    def __init__(self, app: SyncContext):
        self.request_context = SimpleNamespace(lifespan_context=app)
        self.messages = []

    async def info(self, message):
        self.messages.append(("info", message))

    async def error(self, message):
        self.messages.append(("error", message))


@pytest.fixture
def ctx(settings, store, http_client, service):
    return _FakeContext(SyncContext(settings=settings, store=store, http_client=http_client, service=service))


@pytest.mark.anyio
async def test_sync_claims_tool(zoho, ctx):
    zoho.add("Claims", claim_record("c1", "C-1"))

    result = await crm_sync.sync_claims(ctx=ctx)

    assert result["success"] is True
    assert result["created"] == 1
    assert ctx.messages == [("info", "Claims: 1 created, 0 updated")]


@pytest.mark.anyio
async def test_sync_tool_reports_sync_errors(ctx):
    result = await crm_sync.sync_policies(record_ids=["P-404"], ctx=ctx)

    assert result["success"] is False
    assert result["error"] == "No policies found for the provided numbers"
    assert result["details"]["searched"] == ["P-404"]
    assert ctx.messages[0][0] == "error"


@pytest.mark.anyio
async def test_mapping_tools(ctx):
    added = await crm_sync.add_field_mapping("Claim", "claim_type", "System.label", ctx=ctx)
    mapping_id = added["mapping"]["id"]

    listed = await crm_sync.list_field_mappings(record_type="Claim", ctx=ctx)
    assert [m["id"] for m in listed["mappings"]] == [mapping_id]

    toggled = await crm_sync.set_field_mapping_active(mapping_id, False, ctx=ctx)
    assert toggled["mapping"]["active"] is False

    assert (await crm_sync.delete_field_mapping(mapping_id, ctx=ctx)) == {"success": True}
    missing = await crm_sync.delete_field_mapping(mapping_id, ctx=ctx)
    assert missing["success"] is False


@pytest.mark.anyio
async def test_add_mapping_tool_rejects_unknown_field(ctx):
    result = await crm_sync.add_field_mapping("Policy", "nope", "X", ctx=ctx)
    assert result["success"] is False
    assert "allowed" in result["details"]


@pytest.mark.anyio
async def test_list_policy_claims_tool(ctx, store):
    await store.create("Claim", {"claim_name": "C1", "policy_id": "P-100 "})

    result = await crm_sync.list_policy_claims(" P-100", ctx=ctx)

    assert result["policy_number"] == "P-100"
    assert [c["claim_name"] for c in result["claims"]] == ["C1"]


@pytest.mark.anyio
async def test_wrapped_tool_keeps_inbound_correlation_id(ctx):
    set_correlation_id("abc-123")
    tool = mcp._tool_manager._tools["list_field_mappings"]

    await tool.fn(ctx=ctx)

    assert get_correlation_id() == "abc-123"
