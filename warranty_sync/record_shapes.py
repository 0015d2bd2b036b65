"""
Warranty Sync - Record Shapes

Default extraction rules that turn a raw Zoho record into a local entity
document, and the builders that combine them with operator mappings.

Rule order matters: the first non-empty source wins, mirroring how the CRM
layouts evolved (e.g. ``Claim_Number`` was added after ``Name``).
"""

from typing import Any, Dict, List, Mapping, Optional

from .field_mapping import DefaultExtractor, FieldMappingResolver
from .models import CLAIM, POLICY

Record = Mapping[str, Any]


# ---------------------------------------------------------------------------
# Small extraction helpers
# ---------------------------------------------------------------------------

def _first(*values: Any) -> Any:
    for value in values:
        if value:
            return value
    return None


def _attr(value: Any, name: str) -> Any:
    """``value.name`` for a lookup field; raises on a malformed (non-object) value."""
    return value.get(name) if value else None


def _join_address(*parts: Any) -> Optional[str]:
    return ", ".join(str(p) for p in parts if p) or None


def _policy_reference(value: Any) -> Any:
    if not value:
        return None
    if isinstance(value, Mapping):
        return _first(value.get("Policy_Number"), value.get("name"))
    return str(value)


def _add_ons(r: Record) -> List[Any]:
    options = r.get("Options")
    return list(options) if isinstance(options, list) else []


def _claim_address(r: Record) -> Optional[str]:
    return _join_address(
        _first(r.get("Street_Address"), r.get("Street"), r.get("Address")),
        r.get("City"),
        r.get("State"),
        _first(r.get("Zip"), r.get("Zip_Code")),
    )


def record_identifier(raw: Any) -> Optional[str]:
    """Human-readable handle used in error rows: ``Name``, else the remote id."""
    if not isinstance(raw, Mapping):
        return None
    value = _first(raw.get("Name"), raw.get("id"))
    return str(value) if value is not None else None


# ---------------------------------------------------------------------------
# Default rules (mappable app fields)
# ---------------------------------------------------------------------------

POLICY_RULES: Dict[str, DefaultExtractor] = {
    "policy_id": lambda r: r.get("Name"),
    "policy_number": lambda r: r.get("Policy_Number"),
    "policy_name": lambda r: r.get("Plan_Name"),
    "details_of_coverage": lambda r: _first(r.get("Coverage_Details"), r.get("Details_of_Coverage")),
    "add_ons": _add_ons,
    "policy_status": lambda r: r.get("Status") or "Active",
    "effective_date": lambda r: r.get("Effective_Date"),
    "expiration_date": lambda r: r.get("Expiration_Date"),
    "customer_name": lambda r: _attr(r.get("Customer"), "name"),
    "customer_email": lambda r: r.get("Email"),
    "property_address": lambda r: _join_address(
        r.get("Address_1"), r.get("Address_2"), r.get("City"), r.get("State"), r.get("Zip")
    ),
}

CLAIM_RULES: Dict[str, DefaultExtractor] = {
    "claim_name": lambda r: _first(r.get("Claim_Number"), r.get("Name")),
    "policy_id": lambda r: _policy_reference(r.get("Policy_Name")),
    "customer_email": lambda r: r.get("Email"),
    "customer_phone": lambda r: r.get("Phone"),
    "claim_type": lambda r: _first(r.get("Claim_Type"), r.get("Type")),
    "claim_status": lambda r: r.get("Status") or "Pending",
    "contractor": lambda r: _attr(r.get("Contractor_Info"), "name"),
    "contractor_email": lambda r: r.get("Contractor_Email"),
    "property_address": _claim_address,
    "customer_facing_description": lambda r: _first(
        r.get("Description"), r.get("Customer_Facing_Description")
    ),
    "claim_date": lambda r: _first(r.get("Claim_Date"), r.get("Created_Time")),
}

# Claims reached through a policy's Claim_Info related list use another layout.
RELATED_CLAIM_RULES: Dict[str, DefaultExtractor] = {
    **CLAIM_RULES,
    "claim_type": lambda r: r.get("System"),
    "claim_status": lambda r: _first(r.get("Stage"), r.get("Status")) or "Pending",
    "contractor": lambda r: _attr(r.get("Contractor"), "name"),
    "customer_facing_description": lambda r: r.get("Issue_Description"),
    "claim_date": lambda r: _first(r.get("Created_Time"), r.get("Claim_Date")),
}

# claim field -> parent policy field it falls back to
INHERITED_CLAIM_FIELDS = {
    "policy_id": "policy_number",
    "customer_email": "customer_email",
    "property_address": "property_address",
}

APP_FIELDS: Dict[str, tuple] = {
    POLICY: tuple(POLICY_RULES),
    CLAIM: tuple(CLAIM_RULES),
}


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def extract_re_pro_ids(raw: Record) -> List[str]:
    """RE Pro references: ``Re_Pros`` or ``RE_Pros`` (object or list), else ``Agent``."""

    def _ids(value: Any) -> List[str]:
        if isinstance(value, list):
            return [str(v["id"]) for v in value if isinstance(v, Mapping) and v.get("id")]
        if isinstance(value, Mapping) and value.get("id"):
            return [str(value["id"])]
        return []

    for key in ("Re_Pros", "RE_Pros"):
        if raw.get(key):
            return _ids(raw[key])
    return _ids(raw.get("Agent"))


def build_policy(resolver: FieldMappingResolver, raw: Record) -> Dict[str, Any]:
    data = resolver.resolve(POLICY, raw, POLICY_RULES)
    data["buyer_agent_email"] = _attr(raw.get("Buyer_Agent"), "email") or None
    data["listing_agent_email"] = _attr(raw.get("Listing_Agent"), "email") or None
    data["title_escrow_email"] = _attr(raw.get("Title_Escrow"), "email") or None
    data["re_pro_ids"] = extract_re_pro_ids(raw)
    data["zoho_id"] = str(raw["id"])
    return data


def build_claim(resolver: FieldMappingResolver, raw: Record) -> Dict[str, Any]:
    data = resolver.resolve(CLAIM, raw, CLAIM_RULES)
    data["zoho_id"] = str(raw["id"])
    return data


def build_related_claim(
    resolver: FieldMappingResolver, raw: Record, parent: Mapping[str, Any]
) -> Dict[str, Any]:
    """Shape a claim from a policy's related list, inheriting what it omits."""
    data = resolver.resolve(CLAIM, raw, RELATED_CLAIM_RULES)
    for claim_field, policy_field in INHERITED_CLAIM_FIELDS.items():
        if not data.get(claim_field):
            data[claim_field] = parent.get(policy_field)
    data["buyer_agent_email"] = (
        _attr(raw.get("Buyer_Agent"), "email") or parent.get("buyer_agent_email")
    )
    data["zoho_id"] = str(raw["id"])
    return data


def build_re_pro(raw: Record) -> Dict[str, Any]:
    return {
        "rep_name": _first(raw.get("Name"), raw.get("Full_Name")),
        "rep_email": raw.get("Email"),
        "rep_phone": _first(raw.get("Phone"), raw.get("Mobile")),
        "brokerage": _first(raw.get("Brokerage"), raw.get("Company")),
        "license_number": raw.get("License_Number"),
        "rep_type": raw.get("Type") or "Other",
        "zoho_id": str(raw["id"]),
    }


# ---------------------------------------------------------------------------
# Webhook shapes (push notifications use the CRM's API names directly)
# ---------------------------------------------------------------------------

def webhook_policy(record: Record) -> Dict[str, Any]:
    return {
        "policy_number": _first(record.get("Policy_Number"), record.get("Name")),
        "policy_name": _first(record.get("Policy_Name"), record.get("Plan_Name")),
        "details_of_coverage": _first(
            record.get("Coverage_Details"), record.get("Details_of_Coverage")
        ),
        "policy_status": record.get("Status") or "Active",
        "effective_date": record.get("Effective_Date"),
        "expiration_date": record.get("Expiration_Date"),
        "customer_name": record.get("Customer_Name"),
        "customer_email": _first(record.get("Customer_Email"), record.get("Email")),
        "property_address": _first(record.get("Property_Address"), record.get("Address")),
        "zoho_id": str(record["id"]),
    }


def webhook_claim(record: Record) -> Dict[str, Any]:
    return {
        "claim_name": _first(record.get("Claim_Number"), record.get("Name")),
        "policy_id": record.get("Policy_ID"),
        "customer_email": _first(record.get("Customer_Email"), record.get("Email")),
        "claim_type": _first(record.get("Claim_Type"), record.get("Type")),
        "claim_status": record.get("Status") or "Pending",
        "contractor": _first(record.get("Contractor"), record.get("Contractor_Name")),
        "contractor_email": record.get("Contractor_Email"),
        "customer_facing_description": _first(
            record.get("Description"), record.get("Customer_Facing_Description")
        ),
        "claim_date": _first(record.get("Claim_Date"), record.get("Created_Time")),
        "zoho_id": str(record["id"]),
    }
