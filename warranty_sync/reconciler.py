"""
Warranty Sync - Reconciler

Turns raw CRM records into local entities, one record at a time:
shape -> find by ``zoho_id`` -> update or create. A failure on one record is
recorded against that record and the batch moves on.

Processing is strictly sequential. Concurrent upserts keyed by external id
would need a per-key lock to avoid duplicate creates.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional

from .entity_store import EntityStore
from .errors import RecordReconcileError
from .field_mapping import FieldMappingResolver
from .models import CLAIM, POLICY, RE_PRO, SyncErrorEntry, SyncResult
from .record_shapes import (
    build_claim,
    build_policy,
    build_re_pro,
    build_related_claim,
    record_identifier,
)

logger = logging.getLogger("warranty_sync.reconciler")

OnReconciled = Callable[[Mapping[str, Any], Dict[str, Any]], Awaitable[None]]


class Reconciler:
    def __init__(self, store: EntityStore):
        self.store = store

    def _shape(
        self,
        record_type: str,
        raw: Mapping[str, Any],
        resolver: FieldMappingResolver,
        parent: Optional[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        if record_type == POLICY:
            return build_policy(resolver, raw)
        if record_type == CLAIM:
            if parent is not None:
                return build_related_claim(resolver, raw, parent)
            return build_claim(resolver, raw)
        if record_type == RE_PRO:
            return build_re_pro(raw)
        raise ValueError(f"Unsupported record type: {record_type}")

    async def upsert(self, entity_type: str, data: Dict[str, Any]) -> str:
        """Create or update the entity owning ``data['zoho_id']``; returns the outcome."""
        existing = await self.store.filter(entity_type, {"zoho_id": data["zoho_id"]})
        if existing:
            await self.store.update(entity_type, existing[0]["id"], data)
            return "updated"
        await self.store.create(entity_type, data)
        return "created"

    async def reconcile(
        self,
        record_type: str,
        raw_records: Iterable[Mapping[str, Any]],
        resolver: FieldMappingResolver,
        *,
        parent: Optional[Mapping[str, Any]] = None,
        on_reconciled: Optional[OnReconciled] = None,
    ) -> SyncResult:
        """
        Reconcile ``raw_records`` as ``record_type`` entities.

        ``parent`` is the shaped policy a related claim inherits from.
        ``on_reconciled(raw, data)`` runs after each successful upsert, inside
        the same per-record error boundary.
        """
        result = SyncResult()

        for raw in raw_records:
            try:
                data = self._shape(record_type, raw, resolver, parent)
                outcome = await self.upsert(record_type, data)
                result.record(outcome)
                logger.info("%s %s %s", outcome.capitalize(), record_type, record_identifier(raw))
                if on_reconciled is not None:
                    await on_reconciled(raw, data)
            except Exception as exc:
                err = RecordReconcileError(record_identifier(raw), exc)
                logger.warning("Error processing %s %s: %s", record_type, err.identifier, err)
                result.errors.append(SyncErrorEntry(identifier=err.identifier, error=str(err)))

        return result
