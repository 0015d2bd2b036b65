"""
Field Mapping Editor Endpoints - Warranty Sync

Routes:
    GET    /mappings
    POST   /mappings
    PATCH  /mappings/{mapping_id}
    DELETE /mappings/{mapping_id}

Admin only. Edits take effect on the next sync run.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from warranty_sync.auth import require_admin
from warranty_sync.mapping_store import FieldMappingStore
from warranty_sync.models import FieldMappingCreate, FieldMappingUpdate, RecordType
from warranty_sync.record_shapes import APP_FIELDS

router = APIRouter(prefix="/mappings", tags=["mappings"], dependencies=[Depends(require_admin)])


def get_mapping_store(request: Request) -> FieldMappingStore:
    return request.app.state.sync_service.mappings


@router.get("")
async def list_mappings(
    record_type: Optional[RecordType] = None,
    active_only: bool = False,
    mappings: FieldMappingStore = Depends(get_mapping_store),
):
    rows = await mappings.list_mappings(record_type, active_only=active_only)
    return {
        "success": True,
        "mappings": [m.model_dump() for m in rows],
        "appFields": {rt: list(fields) for rt, fields in APP_FIELDS.items()},
        "availableAppFields": {
            rt: mappings.available_app_fields(rt, rows) for rt in APP_FIELDS
        },
    }


@router.post("", status_code=201)
async def add_mapping(
    body: FieldMappingCreate,
    mappings: FieldMappingStore = Depends(get_mapping_store),
):
    mapping = await mappings.add_mapping(body.record_type, body.app_field, body.external_field_path)
    return {"success": True, "mapping": mapping.model_dump()}


@router.patch("/{mapping_id}")
async def update_mapping(
    mapping_id: str,
    body: FieldMappingUpdate,
    mappings: FieldMappingStore = Depends(get_mapping_store),
):
    mapping = await mappings.set_active(mapping_id, body.active)
    return {"success": True, "mapping": mapping.model_dump()}


@router.delete("/{mapping_id}")
async def delete_mapping(
    mapping_id: str,
    mappings: FieldMappingStore = Depends(get_mapping_store),
):
    await mappings.delete_mapping(mapping_id)
    return {"success": True}
