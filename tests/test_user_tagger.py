"""
Tests for RE Pro / Combo user tagging.
"""

import pytest

from warranty_sync.user_tagger import COMBO_TYPE, RE_PRO_TYPE, UserTagger

pytestmark = pytest.mark.anyio


async def test_tags_re_pro_and_combo(store):
    agent = await store.create("User", {"email": "agent@example.com", "customer_type": "Customer"})
    combo = await store.create("User", {"email": "owner@example.com"})
    await store.create("Policy", {"policy_number": "P-1", "customer_email": "owner@example.com"})

    result = await UserTagger(store).tag(["agent@example.com", "owner@example.com"])

    assert result.updated == 2
    assert result.errors == []
    assert (await store.get("User", agent["id"]))["customer_type"] == RE_PRO_TYPE
    assert (await store.get("User", combo["id"]))["customer_type"] == COMBO_TYPE


async def test_unchanged_type_is_not_rewritten(store):
    await store.create("User", {"email": "agent@example.com", "customer_type": RE_PRO_TYPE})
    result = await UserTagger(store).tag(["agent@example.com", "agent@example.com"])
    assert result.updated == 0


async def test_emails_without_users_are_skipped(store):
    result = await UserTagger(store).tag(["nobody@example.com", "", None])
    assert result.updated == 0
    assert result.errors == []


async def test_failure_is_recorded_per_email(store, monkeypatch):
    await store.create("User", {"email": "a@example.com"})
    await store.create("User", {"email": "b@example.com"})
    original = store.update

    async def flaky_update(entity_type, entity_id, data):
        user = await store.get(entity_type, entity_id)
        if user["email"] == "a@example.com":
            raise RuntimeError("store unavailable")
        return await original(entity_type, entity_id, data)

    monkeypatch.setattr(store, "update", flaky_update)
    result = await UserTagger(store).tag(["a@example.com", "b@example.com"])

    assert result.updated == 1
    assert [(e.identifier, e.error) for e in result.errors] == [("a@example.com", "store unavailable")]
