"""
Tests for the reconciler: idempotent upserts, per-record failure isolation
and policy -> related-claim inheritance.
"""

import pytest

from warranty_sync.field_mapping import FieldMappingResolver
from warranty_sync.models import FieldMapping
from warranty_sync.reconciler import Reconciler
from warranty_sync.record_shapes import build_policy

from conftest import claim_record, policy_record

pytestmark = pytest.mark.anyio


async def test_second_run_only_updates(store):
    reconciler = Reconciler(store)
    raw = [policy_record("z1", "P-1"), policy_record("z2", "P-2")]

    first = await reconciler.reconcile("Policy", raw, FieldMappingResolver())
    stored_first = sorted(await store.filter("Policy"), key=lambda p: p["zoho_id"])
    second = await reconciler.reconcile("Policy", raw, FieldMappingResolver())
    stored_second = sorted(await store.filter("Policy"), key=lambda p: p["zoho_id"])

    assert (first.created, first.updated) == (2, 0)
    assert (second.created, second.updated) == (0, 2)
    assert len(stored_second) == 2
    strip = lambda rows: [{k: v for k, v in r.items() if k != "updated_date"} for r in rows]
    assert strip(stored_first) == strip(stored_second)


async def test_update_keeps_local_id(store):
    reconciler = Reconciler(store)
    await reconciler.reconcile("Claim", [claim_record("z1", "C-1")], FieldMappingResolver())
    (before,) = await store.filter("Claim")

    await reconciler.reconcile("Claim", [claim_record("z1", "C-1", Status="Closed")], FieldMappingResolver())
    (after,) = await store.filter("Claim")

    assert after["id"] == before["id"]
    assert after["claim_status"] == "Closed"


async def test_bad_record_does_not_abort_batch(store):
    raw = [
        claim_record("z1", "C-1"),
        claim_record("z2", "C-2", Name="CLM-BAD", Contractor_Info=["not", "an", "object"]),
        claim_record("z3", "C-3"),
    ]

    result = await Reconciler(store).reconcile("Claim", raw, FieldMappingResolver())

    assert result.created == 2
    assert len(result.errors) == 1
    assert result.errors[0].identifier == "CLM-BAD"
    assert {c["zoho_id"] for c in await store.filter("Claim")} == {"z1", "z3"}


async def test_record_without_id_is_an_error_row(store):
    result = await Reconciler(store).reconcile("Policy", [{"Name": "POL-X"}], FieldMappingResolver())
    assert result.created == 0
    assert result.errors[0].identifier == "POL-X"
    assert result.errors[0].error


async def test_mapping_applies_during_reconcile(store):
    resolver = FieldMappingResolver.from_mappings([
        FieldMapping(record_type="Claim", app_field="claim_type", external_field_path="System.label"),
    ])
    raw = [claim_record("z1", "C-1", System={"label": "HVAC"}), claim_record("z2", "C-2", System=None)]

    await Reconciler(store).reconcile("Claim", raw, resolver)

    by_id = {c["zoho_id"]: c for c in await store.filter("Claim")}
    assert by_id["z1"]["claim_type"] == "HVAC"
    assert by_id["z2"]["claim_type"] is None


async def test_related_claims_inherit_from_policy(store):
    resolver = FieldMappingResolver()
    policy = build_policy(
        resolver, policy_record("p1", "P-100", Buyer_Agent={"email": "buyer@agents.test"})
    )
    related = [
        {"id": "c1", "Name": "CLM-1", "System": "Roof", "Stage": "Dispatched"},
        {"id": "c2", "Name": "CLM-2", "Email": "tenant@example.com", "Street_Address": "9 Side St"},
    ]

    result = await Reconciler(store).reconcile("Claim", related, resolver, parent=policy)

    assert result.created == 2
    by_id = {c["zoho_id"]: c for c in await store.filter("Claim")}
    assert by_id["c1"]["policy_id"] == "P-100"
    assert by_id["c1"]["customer_email"] == "owner@example.com"
    assert by_id["c1"]["property_address"] == "1 Main St, Austin, TX, 78701"
    assert by_id["c1"]["claim_type"] == "Roof"
    assert by_id["c1"]["claim_status"] == "Dispatched"
    assert by_id["c1"]["buyer_agent_email"] == "buyer@agents.test"
    assert by_id["c2"]["customer_email"] == "tenant@example.com"
    assert by_id["c2"]["property_address"] == "9 Side St"
    assert by_id["c2"]["claim_status"] == "Pending"


async def test_on_reconciled_failure_is_per_record(store):
    seen = []

    async def hook(raw, data):
        seen.append(raw["id"])
        if raw["id"] == "z1":
            raise RuntimeError("cascade failed")

    raw = [policy_record("z1", "P-1"), policy_record("z2", "P-2")]
    result = await Reconciler(store).reconcile("Policy", raw, FieldMappingResolver(), on_reconciled=hook)

    assert seen == ["z1", "z2"]
    assert result.created == 2
    assert [(e.identifier, e.error) for e in result.errors] == [("POL-P-1", "cascade failed")]
