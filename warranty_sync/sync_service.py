"""
Warranty Sync - Sync Orchestration

Pull-based, idempotent reconciliation of Zoho CRM records into the portal's
entity store:

    token -> fetch (sweep | date query | targeted lookup) -> shape -> upsert

Each public operation obtains its own access token and re-reads the field
mappings; nothing is shared across invocations except the store itself.
"""

import logging
import time
from typing import Any, Dict, List, Mapping

import httpx

from .entity_store import EntityStore
from .errors import InvalidPayloadError, NoRecordsError, NotFoundError
from .fetcher import FetchResult, RecordFetcher
from .field_mapping import FieldMappingResolver
from .mapping_store import FieldMappingStore
from .middleware import audit_log
from .models import (
    CLAIM,
    POLICY,
    RE_PRO,
    DebugInfo,
    PolicySyncResponse,
    RecordSyncResponse,
    REProSyncRequest,
    RemoteFieldsResponse,
    SyncAllRequest,
    SyncAllResponse,
    SyncErrorEntry,
    SyncRequest,
    SyncResult,
    WebhookPayload,
)
from .reconciler import Reconciler
from .record_shapes import webhook_claim, webhook_policy
from .settings import DEFAULT_API_BASE, DEFAULT_LIMIT, DEFAULT_PAGE_SIZE, Settings
from .user_tagger import UserTagger
from .zoho_auth import CredentialProvider, ZohoTokenProvider
from .zoho_client import ZohoClient

logger = logging.getLogger("warranty_sync.sync")

POLICIES_MODULE = "Policies"
CLAIMS_MODULE = "Claims"
RE_PROS_MODULE = "RE_Pros"
RELATED_CLAIMS_LIST = "Claim_Info"

WEBHOOK_MODULES = {
    POLICIES_MODULE: (POLICY, webhook_policy),
    CLAIMS_MODULE: (CLAIM, webhook_claim),
}


class SyncService:
    def __init__(
        self,
        store: EntityStore,
        token_provider: ZohoTokenProvider,
        http_client: httpx.AsyncClient,
        api_base: str = DEFAULT_API_BASE,
        page_size: int = DEFAULT_PAGE_SIZE,
        default_limit: int = DEFAULT_LIMIT,
    ):
        self.store = store
        self.token_provider = token_provider
        self.http_client = http_client
        self.api_base = api_base
        self.page_size = page_size
        self.default_limit = default_limit
        self.mappings = FieldMappingStore(store)
        self.reconciler = Reconciler(store)
        self.user_tagger = UserTagger(store)

    @classmethod
    def from_settings(
        cls, settings: Settings, store: EntityStore, http_client: httpx.AsyncClient
    ) -> "SyncService":
        token_provider = ZohoTokenProvider(
            CredentialProvider.from_settings(settings, store),
            token_url=settings.zoho_token_url,
            timeout=settings.http_timeout,
        )
        return cls(
            store,
            token_provider,
            http_client,
            api_base=settings.zoho_api_base,
            page_size=settings.page_size,
            default_limit=settings.default_limit,
        )

    async def _open_fetcher(self) -> RecordFetcher:
        token = await self.token_provider.get_access_token(self.http_client)
        client = ZohoClient(self.http_client, token, self.api_base)
        return RecordFetcher(client, self.page_size)

    async def _fetch(
        self,
        fetcher: RecordFetcher,
        module: str,
        request: SyncRequest,
        primary_field: str,
        label: str,
    ) -> FetchResult:
        limit = request.limit or self.default_limit
        ids = request.ids_to_sync()

        if ids:
            logger.info("Searching %s for %d keys", module, len(ids))
            fetched = await fetcher.lookup(module, ids, primary_field)
            if not fetched.records:
                raise NotFoundError(
                    f"No {label} found for the provided numbers",
                    details={
                        "searched": ids,
                        "errors": [e.model_dump() for e in fetched.errors],
                    },
                )
        else:
            fetched = await fetcher.sweep(
                module, limit, request.date_range(), request.requested_fields()
            )
            if not fetched.records:
                raise NoRecordsError(f"No {label} found", details="No records matched the criteria")

        fetched.records = fetched.records[:limit]
        return fetched

    # -----------------------------------------------------------------------
    # Policies (cascade: related claims, RE Pro references)
    # -----------------------------------------------------------------------

    async def sync_policies(self, request: SyncRequest) -> PolicySyncResponse:
        fetcher = await self._open_fetcher()
        return await self._sync_policies(fetcher, request)

    async def _sync_policies(self, fetcher: RecordFetcher, request: SyncRequest) -> PolicySyncResponse:
        module = request.module or POLICIES_MODULE
        start = time.monotonic()
        audit_log("sync.start", kind="policies", module=module)

        fetched = await self._fetch(fetcher, module, request, "Policy_Number", "policies")
        resolver = await self.mappings.load_resolver()
        claims = SyncResult()
        re_pro_ids: Dict[str, None] = {}

        async def cascade(raw: Mapping[str, Any], policy: Dict[str, Any]) -> None:
            re_pro_ids.update(dict.fromkeys(policy.get("re_pro_ids") or []))
            related = await fetcher.related(module, str(raw["id"]), RELATED_CLAIMS_LIST)
            if not related:
                return
            logger.info(
                "Found %d related claims for policy %s", len(related), policy.get("policy_number")
            )
            claims.merge(
                await self.reconciler.reconcile(CLAIM, related, resolver, parent=policy)
            )

        policies = await self.reconciler.reconcile(
            POLICY, fetched.records, resolver, on_reconciled=cascade
        )

        response = PolicySyncResponse(
            policies=policies.counts,
            claims=claims.counts,
            total=len(fetched.records),
            errors=fetched.errors + policies.errors + claims.errors,
            re_pro_ids=list(re_pro_ids),
            debug_info=DebugInfo.from_records(fetched.records),
        )
        audit_log(
            "sync.end",
            kind="policies",
            module=module,
            policies_created=policies.created,
            policies_updated=policies.updated,
            claims_created=claims.created,
            claims_updated=claims.updated,
            errors=len(response.errors),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return response

    # -----------------------------------------------------------------------
    # Standalone claims
    # -----------------------------------------------------------------------

    async def sync_claims(self, request: SyncRequest) -> RecordSyncResponse:
        fetcher = await self._open_fetcher()
        return await self._sync_claims(fetcher, request)

    async def _sync_claims(self, fetcher: RecordFetcher, request: SyncRequest) -> RecordSyncResponse:
        module = request.module or CLAIMS_MODULE
        start = time.monotonic()
        audit_log("sync.start", kind="claims", module=module)

        fetched = await self._fetch(fetcher, module, request, "Claim_Number", "claims")
        resolver = await self.mappings.load_resolver()
        result = await self.reconciler.reconcile(CLAIM, fetched.records, resolver)

        sample_policy_ref = fetched.records[0].get("Policy_Name") if fetched.records else None
        response = RecordSyncResponse(
            created=result.created,
            updated=result.updated,
            total=len(fetched.records),
            errors=fetched.errors + result.errors,
            debug_info=DebugInfo.from_records(
                fetched.records, sample_policy_name_field=sample_policy_ref
            ),
        )
        audit_log(
            "sync.end",
            kind="claims",
            module=module,
            created=result.created,
            updated=result.updated,
            errors=len(response.errors),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return response

    # -----------------------------------------------------------------------
    # RE Pros (+ user tagging)
    # -----------------------------------------------------------------------

    async def sync_re_pros(self, request: REProSyncRequest) -> RecordSyncResponse:
        fetcher = await self._open_fetcher()
        return await self._sync_re_pros(fetcher, request)

    async def _sync_re_pros(
        self, fetcher: RecordFetcher, request: REProSyncRequest
    ) -> RecordSyncResponse:
        module = request.module or RE_PROS_MODULE
        limit = request.limit or self.default_limit
        start = time.monotonic()
        audit_log("sync.start", kind="re_pros", module=module)

        ids = [i for i in (request.record_ids or []) if i]
        if ids:
            fetched = await fetcher.lookup(module, ids, "Email", id_fallback=True)
            if not fetched.records:
                raise NotFoundError(
                    "No RE Pros found",
                    details={
                        "searched": ids,
                        "errors": [e.model_dump() for e in fetched.errors],
                    },
                )
        else:
            fetched = await fetcher.sweep(module, limit)
            if not fetched.records:
                raise NoRecordsError("No RE Pros found")
        records = fetched.records[:limit]

        emails: List[str] = []

        async def collect_email(raw: Mapping[str, Any], re_pro: Dict[str, Any]) -> None:
            if re_pro.get("rep_email"):
                emails.append(re_pro["rep_email"])

        result = await self.reconciler.reconcile(
            RE_PRO, records, FieldMappingResolver(), on_reconciled=collect_email
        )
        tagged = await self.user_tagger.tag(emails)

        response = RecordSyncResponse(
            created=result.created,
            updated=result.updated,
            total=len(records),
            errors=fetched.errors + result.errors + tagged.errors,
            users_tagged=tagged.updated,
            debug_info=DebugInfo.from_records(records),
        )
        audit_log(
            "sync.end",
            kind="re_pros",
            module=module,
            created=result.created,
            updated=result.updated,
            users_tagged=tagged.updated,
            errors=len(response.errors),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return response

    # -----------------------------------------------------------------------
    # Everything
    # -----------------------------------------------------------------------

    async def sync_all(self, request: SyncAllRequest) -> SyncAllResponse:
        """
        Policies first (they cascade to claims and surface RE Pro ids), then the
        RE Pros observed on them, then standalone claims. RE Pro tagging needs
        the policies to be present locally.
        """
        fetcher = await self._open_fetcher()
        response = SyncAllResponse()

        policies = await self._sync_policies(fetcher, request.policy_request())
        response.policies = policies.to_payload()

        if policies.re_pro_ids:
            try:
                re_pros = await self._sync_re_pros(
                    fetcher,
                    REProSyncRequest(module=request.re_pro_module, record_ids=policies.re_pro_ids),
                )
                response.re_pros = re_pros.to_payload()
            except (NotFoundError, NoRecordsError) as exc:
                response.errors.append(SyncErrorEntry(identifier="RE Pros", error=exc.message))

        try:
            claims = await self._sync_claims(fetcher, request.claim_request())
            response.claims = claims.to_payload()
        except (NotFoundError, NoRecordsError) as exc:
            response.errors.append(SyncErrorEntry(identifier="Claims", error=exc.message))

        return response

    # -----------------------------------------------------------------------
    # Mapping editor support
    # -----------------------------------------------------------------------

    async def get_remote_fields(self, module: str) -> RemoteFieldsResponse:
        fetcher = await self._open_fetcher()
        page = await fetcher.client.list_records(module, page=1, per_page=1)
        if not page.records:
            raise NoRecordsError("No records found in this module", details={"module": module})
        sample = page.records[0]
        return RemoteFieldsResponse(
            module=module, available_fields=list(sample.keys()), sample_record=sample
        )

    # -----------------------------------------------------------------------
    # Webhook (push)
    # -----------------------------------------------------------------------

    async def apply_webhook(self, payload: WebhookPayload) -> dict:
        """Upsert or delete the local entity for the first pushed record."""
        if not payload.data:
            return {"message": "No data received"}

        target = WEBHOOK_MODULES.get(payload.module or "")
        if target is None:
            logger.info("Ignoring webhook for module %s", payload.module)
            return {"success": True, "message": f"Module {payload.module} ignored"}

        entity_type, shape = target
        record = payload.data[0]
        if not record.get("id"):
            raise InvalidPayloadError("Webhook record has no id", details={"module": payload.module})

        zoho_id = str(record["id"])
        existing = await self.store.filter(entity_type, {"zoho_id": zoho_id})

        if payload.operation == "delete":
            if existing:
                await self.store.delete(entity_type, existing[0]["id"])
                action = "deleted"
            else:
                action = "ignored"
        elif existing:
            await self.store.update(entity_type, existing[0]["id"], shape(record))
            action = "updated"
        else:
            await self.store.create(entity_type, shape(record))
            action = "created"

        audit_log("webhook.processed", module=payload.module, zoho_id=zoho_id, action=action)
        return {"success": True, "message": "Webhook processed", "action": action}
