"""
Tests for field mapping resolution: nested paths, mapping precedence and the
default extraction rules.
"""

from warranty_sync.field_mapping import FieldMappingResolver, get_nested_value
from warranty_sync.models import FieldMapping
from warranty_sync.record_shapes import (
    CLAIM_RULES,
    build_claim,
    build_policy,
    build_re_pro,
    extract_re_pro_ids,
)

from conftest import claim_record, policy_record


def _mapping(record_type, app_field, path, active=True):
    return FieldMapping(
        record_type=record_type, app_field=app_field, external_field_path=path, active=active
    )


# ═══════════════════════════════════════════
# Nested path walker
# ═══════════════════════════════════════════


class TestNestedValue:
    def test_dotted_path(self):
        assert get_nested_value({"System": {"label": "Plumbing"}}, "System.label") == "Plumbing"

    def test_null_segment_returns_none(self):
        assert get_nested_value({"System": None}, "System.label") is None

    def test_missing_segment_returns_none(self):
        assert get_nested_value({}, "System.label") is None

    def test_scalar_segment_returns_none(self):
        assert get_nested_value({"System": "Plumbing"}, "System.label") is None

    def test_list_index(self):
        record = {"Options": [{"name": "Pool"}, {"name": "Spa"}]}
        assert get_nested_value(record, "Options.1.name") == "Spa"
        assert get_nested_value(record, "Options.5.name") is None

    def test_non_decimal_digit_segment_returns_none(self):
        assert get_nested_value({"Options": ["a"]}, "Options.²") is None

    def test_falsy_leaf_is_kept(self):
        assert get_nested_value({"Amount": 0}, "Amount") == 0

    def test_default(self):
        assert get_nested_value({}, "a.b", default="x") == "x"


# ═══════════════════════════════════════════
# Resolver precedence
# ═══════════════════════════════════════════


class TestResolver:
    def test_mapping_overrides_default(self):
        raw = claim_record("z1", "C1", Claim_Type="Electrical", System={"label": "Plumbing"})
        resolver = FieldMappingResolver.from_mappings([_mapping("Claim", "claim_type", "System.label")])
        assert resolver.resolve_field("Claim", raw, "claim_type", CLAIM_RULES["claim_type"]) == "Plumbing"

    def test_mapped_null_does_not_fall_back(self):
        raw = claim_record("z1", "C1", Claim_Type="Electrical", System=None)
        resolver = FieldMappingResolver.from_mappings([_mapping("Claim", "claim_type", "System.label")])
        assert resolver.resolve_field("Claim", raw, "claim_type", CLAIM_RULES["claim_type"]) is None

    def test_inactive_mapping_reverts_to_default(self):
        raw = claim_record("z1", "C1", Claim_Type="Electrical", System={"label": "Plumbing"})
        resolver = FieldMappingResolver.from_mappings(
            [_mapping("Claim", "claim_type", "System.label", active=False)]
        )
        assert resolver.resolve_field("Claim", raw, "claim_type", CLAIM_RULES["claim_type"]) == "Electrical"

    def test_first_duplicate_wins(self):
        resolver = FieldMappingResolver.from_mappings([
            _mapping("Claim", "claim_type", "System.label"),
            _mapping("Claim", "claim_type", "Type"),
        ])
        assert resolver.path_for("Claim", "claim_type") == "System.label"

    def test_mapping_scoped_by_record_type(self):
        resolver = FieldMappingResolver.from_mappings([_mapping("Policy", "customer_email", "Owner.email")])
        assert resolver.path_for("Claim", "customer_email") is None

    def test_mapping_only_touches_its_field(self):
        raw = policy_record("z1", "P-100", Alt_Status="Lapsed")
        resolver = FieldMappingResolver.from_mappings([_mapping("Policy", "policy_status", "Alt_Status")])
        policy = build_policy(resolver, raw)
        assert policy["policy_status"] == "Lapsed"
        assert policy["policy_number"] == "P-100"


# ═══════════════════════════════════════════
# Default rules
# ═══════════════════════════════════════════


class TestDefaultRules:
    def test_claim_name_falls_back_to_name(self):
        raw = claim_record("z1", "unused")
        del raw["Claim_Number"]
        raw["Name"] = "C100"
        assert build_claim(FieldMappingResolver(), raw)["claim_name"] == "C100"

    def test_claim_policy_reference_from_lookup(self):
        claim = build_claim(FieldMappingResolver(), claim_record("z1", "C1"))
        assert claim["policy_id"] == "P-100"
        assert claim["zoho_id"] == "z1"

    def test_claim_status_defaults_to_pending(self):
        claim = build_claim(FieldMappingResolver(), claim_record("z1", "C1", Status=None))
        assert claim["claim_status"] == "Pending"

    def test_policy_defaults(self):
        raw = policy_record(
            "z9", "P-100",
            Status=None,
            Options=["Pool", "Septic"],
            Buyer_Agent={"email": "buyer@agents.test"},
        )
        policy = build_policy(FieldMappingResolver(), raw)
        assert policy["policy_status"] == "Active"
        assert policy["policy_id"] == "POL-P-100"
        assert policy["customer_name"] == "Pat Owner"
        assert policy["property_address"] == "1 Main St, Austin, TX, 78701"
        assert policy["add_ons"] == ["Pool", "Septic"]
        assert policy["buyer_agent_email"] == "buyer@agents.test"
        assert policy["listing_agent_email"] is None
        assert policy["zoho_id"] == "z9"

    def test_re_pro_defaults(self):
        re_pro = build_re_pro({"id": 77, "Full_Name": "Sam Agent", "Mobile": "555", "Company": "Acme"})
        assert re_pro == {
            "rep_name": "Sam Agent",
            "rep_email": None,
            "rep_phone": "555",
            "brokerage": "Acme",
            "license_number": None,
            "rep_type": "Other",
            "zoho_id": "77",
        }


class TestRePro:
    def test_ids_from_list(self):
        assert extract_re_pro_ids({"Re_Pros": [{"id": "1"}, {"id": "2"}]}) == ["1", "2"]

    def test_ids_from_single_lookup(self):
        assert extract_re_pro_ids({"RE_Pros": {"id": "3"}}) == ["3"]

    def test_ids_fall_back_to_agent(self):
        assert extract_re_pro_ids({"Re_Pros": None, "Agent": {"id": "4"}}) == ["4"]

    def test_no_ids(self):
        assert extract_re_pro_ids({}) == []
