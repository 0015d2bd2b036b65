"""
Warranty Sync - Shared Domain Models

Request/response shapes for the sync triggers, the field-mapping configuration
record, and the ephemeral sync result. Local entities (Policy, Claim, REPro,
User) are plain documents in the entity store and are not modelled here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

RecordType = Literal["Policy", "Claim"]

POLICY = "Policy"
CLAIM = "Claim"
RE_PRO = "REPro"
USER = "User"
FIELD_MAPPING = "FieldMapping"

NOT_FOUND_MESSAGE = "Not found in remote system"


# ---------------------------------------------------------------------------
# Field mapping configuration
# ---------------------------------------------------------------------------

class FieldMapping(BaseModel):
    """Operator override: read ``app_field`` from a dotted path in the raw record."""

    id: Optional[str] = None
    record_type: RecordType
    app_field: str
    external_field_path: str
    active: bool = True

    model_config = ConfigDict(extra="ignore")


class FieldMappingCreate(BaseModel):
    record_type: RecordType
    app_field: str
    external_field_path: str = Field(..., min_length=1)

    @field_validator("external_field_path")
    @classmethod
    def strip_path(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("external_field_path must not be blank")
        return v


class FieldMappingUpdate(BaseModel):
    active: bool


# ---------------------------------------------------------------------------
# Sync results
# ---------------------------------------------------------------------------

class SyncErrorEntry(BaseModel):
    identifier: Optional[str] = None
    error: str


class SyncCounts(BaseModel):
    created: int = 0
    updated: int = 0


class SyncResult(BaseModel):
    """Outcome of reconciling one batch of raw records."""

    created: int = 0
    updated: int = 0
    errors: List[SyncErrorEntry] = Field(default_factory=list)

    def record(self, outcome: str) -> None:
        if outcome == "created":
            self.created += 1
        else:
            self.updated += 1

    def merge(self, other: "SyncResult") -> None:
        self.created += other.created
        self.updated += other.updated
        self.errors.extend(other.errors)

    @property
    def counts(self) -> SyncCounts:
        return SyncCounts(created=self.created, updated=self.updated)


class DebugInfo(BaseModel):
    available_fields: List[str] = Field(default_factory=list, alias="availableFields")
    sample_record: Optional[Dict[str, Any]] = Field(None, alias="sampleRecord")
    sample_policy_name_field: Optional[Any] = Field(None, alias="samplePolicyNameField")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_records(cls, records: List[Dict[str, Any]], **extra: Any) -> "DebugInfo":
        sample = records[0] if records else None
        return cls(
            available_fields=list(sample.keys()) if sample else [],
            sample_record=sample,
            **extra,
        )


class _SyncResponse(BaseModel):
    success: bool = True
    total: int = 0
    errors: List[SyncErrorEntry] = Field(default_factory=list)
    debug_info: DebugInfo = Field(default_factory=DebugInfo, alias="debugInfo")

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        data = self.model_dump(by_alias=True)
        if not data["errors"]:
            data.pop("errors")
        if data["debugInfo"].get("samplePolicyNameField") is None:
            data["debugInfo"].pop("samplePolicyNameField", None)
        return data


class PolicySyncResponse(_SyncResponse):
    policies: SyncCounts = Field(default_factory=SyncCounts)
    claims: SyncCounts = Field(default_factory=SyncCounts)
    re_pro_ids: List[str] = Field(default_factory=list, alias="reProIds")


class RecordSyncResponse(_SyncResponse):
    created: int = 0
    updated: int = 0
    users_tagged: Optional[int] = Field(None, alias="usersTagged")

    def to_payload(self) -> dict:
        data = super().to_payload()
        if data.get("usersTagged") is None:
            data.pop("usersTagged", None)
        return data


class SyncAllResponse(BaseModel):
    success: bool = True
    policies: Optional[dict] = None
    re_pros: Optional[dict] = Field(None, alias="rePros")
    claims: Optional[dict] = None
    errors: List[SyncErrorEntry] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        data = self.model_dump(by_alias=True)
        if not data["errors"]:
            data.pop("errors")
        return data


class RemoteFieldsResponse(BaseModel):
    success: bool = True
    module: str
    available_fields: List[str] = Field(default_factory=list, alias="availableFields")
    sample_record: Optional[Dict[str, Any]] = Field(None, alias="sampleRecord")

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Sync trigger requests
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DateRange:
    field: str
    start: str
    end: str


class SyncRequest(BaseModel):
    """Body of the policy and claim sync triggers."""

    module: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1)
    fields: Any = None
    date_field: Optional[str] = Field(None, alias="dateField")
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    record_id: Optional[str] = Field(None, alias="recordId")
    record_ids: Optional[List[str]] = Field(None, alias="recordIds")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def ids_to_sync(self) -> List[str]:
        if self.record_ids is not None:
            return [i for i in self.record_ids if i]
        return [self.record_id] if self.record_id else []

    def date_range(self) -> Optional[DateRange]:
        if self.date_field and self.start_date and self.end_date:
            return DateRange(self.date_field, self.start_date, self.end_date)
        return None

    def requested_fields(self) -> List[str]:
        """Explicit API field names to request; the admin UI sends ``{}`` here."""
        if isinstance(self.fields, list):
            return [str(f) for f in self.fields if f]
        return []


class REProSyncRequest(BaseModel):
    module: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1)
    record_ids: Optional[List[str]] = Field(None, alias="recordIds")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SyncAllRequest(BaseModel):
    """Policies (with cascaded claims), then RE Pros seen on them, then claims."""

    limit: Optional[int] = Field(None, ge=1)
    policy_module: Optional[str] = Field(None, alias="policyModule")
    claim_module: Optional[str] = Field(None, alias="claimModule")
    re_pro_module: Optional[str] = Field(None, alias="reProModule")
    policy_date_field: Optional[str] = Field(None, alias="policyDateField")
    policy_start_date: Optional[str] = Field(None, alias="policyStartDate")
    policy_end_date: Optional[str] = Field(None, alias="policyEndDate")
    claim_date_field: Optional[str] = Field(None, alias="claimDateField")
    claim_start_date: Optional[str] = Field(None, alias="claimStartDate")
    claim_end_date: Optional[str] = Field(None, alias="claimEndDate")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def policy_request(self) -> SyncRequest:
        return SyncRequest(
            module=self.policy_module,
            limit=self.limit,
            date_field=self.policy_date_field,
            start_date=self.policy_start_date,
            end_date=self.policy_end_date,
        )

    def claim_request(self) -> SyncRequest:
        return SyncRequest(
            module=self.claim_module,
            limit=self.limit,
            date_field=self.claim_date_field,
            start_date=self.claim_start_date,
            end_date=self.claim_end_date,
        )


class RemoteFieldsRequest(BaseModel):
    module: str = "Policies"


class WebhookPayload(BaseModel):
    """Zoho workflow webhook body."""

    module: Optional[str] = None
    operation: Optional[Literal["insert", "update", "delete"]] = None
    data: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


# ---------------------------------------------------------------------------
# Callers and references
# ---------------------------------------------------------------------------

class CurrentUser(BaseModel):
    id: Optional[str] = None
    email: str
    role: str = "user"
    full_name: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class PolicyRef:
    """A claim's link to its policy, stored as the policy_number string.

    Joins compare trimmed strings; the stored value is never normalised.
    """

    policy_number: str

    @classmethod
    def of(cls, value: Any) -> Optional["PolicyRef"]:
        if value is None:
            return None
        text = str(value).strip()
        return cls(text) if text else None

    def matches(self, other: Any) -> bool:
        if isinstance(other, PolicyRef):
            other = other.policy_number
        if other is None:
            return False
        return self.policy_number.strip() == str(other).strip()
