"""
Warranty Sync - Field Mapping Store

Persistence and editor rules for operator field mappings. Mappings are read
fresh on every sync run so edits apply immediately.
"""

import logging
from typing import Dict, List, Optional

from .entity_store import EntityStore
from .errors import MappingConflictError, MappingError, NotFoundError
from .field_mapping import FieldMappingResolver
from .models import FIELD_MAPPING, FieldMapping
from .record_shapes import APP_FIELDS

logger = logging.getLogger("warranty_sync.mapping_store")


class FieldMappingStore:
    def __init__(self, store: EntityStore):
        self.store = store

    async def list_mappings(
        self, record_type: Optional[str] = None, active_only: bool = False
    ) -> List[FieldMapping]:
        criteria = {}
        if record_type:
            criteria["record_type"] = record_type
        if active_only:
            criteria["active"] = True
        rows = await self.store.filter(FIELD_MAPPING, criteria, sort="created_date")
        return [FieldMapping(**row) for row in rows]

    def available_app_fields(self, record_type: str, mappings: List[FieldMapping]) -> List[str]:
        """App fields the editor may still offer for ``record_type``."""
        in_use = {m.app_field for m in mappings if m.record_type == record_type}
        return [f for f in APP_FIELDS.get(record_type, ()) if f not in in_use]

    async def add_mapping(
        self, record_type: str, app_field: str, external_field_path: str
    ) -> FieldMapping:
        if app_field not in APP_FIELDS.get(record_type, ()):
            raise MappingError(
                f"Unknown {record_type} field: {app_field}",
                details={"allowed": list(APP_FIELDS.get(record_type, ()))},
            )
        existing = await self.store.filter(
            FIELD_MAPPING, {"record_type": record_type, "app_field": app_field}
        )
        if existing:
            raise MappingConflictError(
                f"{record_type}.{app_field} is already mapped",
                details={"id": existing[0]["id"]},
            )

        row = await self.store.create(FIELD_MAPPING, {
            "record_type": record_type,
            "app_field": app_field,
            "external_field_path": external_field_path,
            "active": True,
        })
        logger.info("Mapped %s.%s -> %s", record_type, app_field, external_field_path)
        return FieldMapping(**row)

    async def _get(self, mapping_id: str) -> dict:
        row = await self.store.get(FIELD_MAPPING, mapping_id)
        if row is None:
            raise NotFoundError(f"Field mapping {mapping_id} not found")
        return row

    async def set_active(self, mapping_id: str, active: bool) -> FieldMapping:
        await self._get(mapping_id)
        row = await self.store.update(FIELD_MAPPING, mapping_id, {"active": active})
        return FieldMapping(**row)

    async def delete_mapping(self, mapping_id: str) -> None:
        row = await self._get(mapping_id)
        await self.store.delete(FIELD_MAPPING, mapping_id)
        logger.info("Removed mapping %s.%s", row.get("record_type"), row.get("app_field"))

    async def load_active(self, record_type: str) -> Dict[str, str]:
        """``{app_field: path}`` for the active mappings of one record type."""
        active: Dict[str, str] = {}
        for mapping in await self.list_mappings(record_type, active_only=True):
            if mapping.external_field_path:
                active.setdefault(mapping.app_field, mapping.external_field_path)
        return active

    async def load_resolver(self) -> FieldMappingResolver:
        return FieldMappingResolver.from_mappings(await self.list_mappings(active_only=True))
