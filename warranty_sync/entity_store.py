"""
Warranty Sync - Entity Store

The portal's keyed document store: filter/create/update/delete per entity type.
Postgres (single JSONB table via asyncpg) and in-memory implementations.
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from .models import CLAIM, PolicyRef

ENTITY_TYPES = (
    "Policy",
    "Claim",
    "REPro",
    "User",
    "FieldMapping",
    "Message",
    "EmailTemplate",
)

_SYSTEM_FIELDS = ("id", "created_date", "updated_date")


def _check_type(entity_type: str) -> None:
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown entity type: {entity_type}")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Abstract store
# ---------------------------------------------------------------------------

class EntityStore(ABC):
    @abstractmethod
    async def filter(
        self,
        entity_type: str,
        criteria: Optional[Dict[str, Any]] = None,
        sort: Optional[str] = None,
    ) -> List[dict]:
        """Equality match on every criteria key. ``sort`` is a field, ``-`` prefix for descending."""

    @abstractmethod
    async def get(self, entity_type: str, entity_id: str) -> Optional[dict]: ...

    @abstractmethod
    async def create(self, entity_type: str, data: Dict[str, Any]) -> dict: ...

    @abstractmethod
    async def update(self, entity_type: str, entity_id: str, data: Dict[str, Any]) -> dict:
        """Merge ``data`` into the stored document."""

    @abstractmethod
    async def delete(self, entity_type: str, entity_id: str) -> None: ...


async def claims_for_policy(store: EntityStore, policy_number: str) -> List[dict]:
    """Claims whose ``policy_id`` names ``policy_number`` (trimmed-string join)."""
    ref = PolicyRef.of(policy_number)
    if ref is None:
        return []
    claims = await store.filter(CLAIM)
    return [c for c in claims if ref.matches(c.get("policy_id"))]


# ---------------------------------------------------------------------------
# Postgres store
# ---------------------------------------------------------------------------

def _build_database_url() -> str:
    user = os.getenv("PGUSER", "")
    pw = os.getenv("PGPASSWORD", "")
    host = os.getenv("PGHOST", "localhost")
    port = os.getenv("PGPORT", "5432")
    db = os.getenv("PGDATABASE", "")
    sslmode = os.getenv("PGSSLMODE", "")
    url = f"postgresql://{user}:{pw}@{host}:{port}/{db}"
    if sslmode:
        url += f"?sslmode={sslmode}"
    return url


_SCHEMA = """
CREATE TABLE IF NOT EXISTS entities (
    id           TEXT PRIMARY KEY,
    entity_type  TEXT NOT NULL,
    data         JSONB NOT NULL,
    created_date TIMESTAMPTZ NOT NULL,
    updated_date TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS entities_type_idx ON entities (entity_type);
CREATE INDEX IF NOT EXISTS entities_zoho_id_idx ON entities (entity_type, (data->>'zoho_id'));
"""


class PostgresEntityStore(EntityStore):
    """Async Postgres store using asyncpg directly (no SQLAlchemy overhead)."""

    def __init__(self, dsn: Optional[str] = None):
        self._dsn = dsn or _build_database_url()
        self._pool = None

    async def connect(self):
        import asyncpg
        self._pool = await asyncpg.create_pool(self._dsn, min_size=2, max_size=10)
        await self._pool.execute(_SCHEMA)

    async def disconnect(self):
        if self._pool:
            await self._pool.close()

    @staticmethod
    def _row_to_entity(row) -> dict:
        data = row["data"]
        if isinstance(data, str):
            data = json.loads(data)
        return {
            **data,
            "id": row["id"],
            "created_date": row["created_date"].isoformat(),
            "updated_date": row["updated_date"].isoformat(),
        }

    async def filter(self, entity_type, criteria=None, sort=None):
        _check_type(entity_type)
        query = "SELECT id, data, created_date, updated_date FROM entities WHERE entity_type = $1"
        args: list = [entity_type]
        criteria = dict(criteria or {})
        entity_id = criteria.pop("id", None)
        if entity_id is not None:
            args.append(entity_id)
            query += f" AND id = ${len(args)}"
        if criteria:
            args.append(json.dumps(criteria, default=str))
            query += f" AND data @> ${len(args)}::jsonb"
        if sort:
            field = sort.lstrip("-")
            direction = "DESC" if sort.startswith("-") else "ASC"
            if field in ("created_date", "updated_date"):
                query += f" ORDER BY {field} {direction}"
            else:
                args.append(field)
                query += f" ORDER BY data->>${len(args)} {direction}"
        else:
            query += " ORDER BY created_date ASC"
        rows = await self._pool.fetch(query, *args)
        return [self._row_to_entity(r) for r in rows]

    async def get(self, entity_type, entity_id):
        _check_type(entity_type)
        row = await self._pool.fetchrow(
            "SELECT id, data, created_date, updated_date FROM entities "
            "WHERE entity_type = $1 AND id = $2",
            entity_type,
            entity_id,
        )
        return self._row_to_entity(row) if row else None

    async def create(self, entity_type, data):
        _check_type(entity_type)
        payload = {k: v for k, v in data.items() if k not in _SYSTEM_FIELDS}
        now = datetime.now(timezone.utc)
        row = await self._pool.fetchrow(
            """
            INSERT INTO entities (id, entity_type, data, created_date, updated_date)
            VALUES ($1, $2, $3::jsonb, $4, $4)
            RETURNING id, data, created_date, updated_date
            """,
            str(uuid4()),
            entity_type,
            json.dumps(payload, default=str),
            now,
        )
        return self._row_to_entity(row)

    async def update(self, entity_type, entity_id, data):
        _check_type(entity_type)
        payload = {k: v for k, v in data.items() if k not in _SYSTEM_FIELDS}
        row = await self._pool.fetchrow(
            """
            UPDATE entities
               SET data = data || $3::jsonb, updated_date = $4
             WHERE entity_type = $1 AND id = $2
            RETURNING id, data, created_date, updated_date
            """,
            entity_type,
            entity_id,
            json.dumps(payload, default=str),
            datetime.now(timezone.utc),
        )
        if row is None:
            raise KeyError(f"{entity_type} {entity_id} not found")
        return self._row_to_entity(row)

    async def delete(self, entity_type, entity_id):
        _check_type(entity_type)
        await self._pool.execute(
            "DELETE FROM entities WHERE entity_type = $1 AND id = $2",
            entity_type,
            entity_id,
        )


# ---------------------------------------------------------------------------
# In-memory store (for development/testing)
# ---------------------------------------------------------------------------

class InMemoryEntityStore(EntityStore):
    def __init__(self):
        self.entities: Dict[str, Dict[str, dict]] = {t: {} for t in ENTITY_TYPES}

    async def filter(self, entity_type, criteria=None, sort=None):
        _check_type(entity_type)
        criteria = criteria or {}
        matches = [
            deepcopy(e)
            for e in self.entities[entity_type].values()
            if all(e.get(k) == v for k, v in criteria.items())
        ]
        if sort:
            field = sort.lstrip("-")
            matches.sort(
                key=lambda e: (e.get(field) is None, str(e.get(field) or "")),
                reverse=sort.startswith("-"),
            )
        return matches

    async def get(self, entity_type, entity_id):
        _check_type(entity_type)
        entity = self.entities[entity_type].get(entity_id)
        return deepcopy(entity) if entity else None

    async def create(self, entity_type, data):
        _check_type(entity_type)
        now = _now()
        entity = {
            **deepcopy({k: v for k, v in data.items() if k not in _SYSTEM_FIELDS}),
            "id": str(uuid4()),
            "created_date": now,
            "updated_date": now,
        }
        self.entities[entity_type][entity["id"]] = entity
        return deepcopy(entity)

    async def update(self, entity_type, entity_id, data):
        _check_type(entity_type)
        entity = self.entities[entity_type].get(entity_id)
        if entity is None:
            raise KeyError(f"{entity_type} {entity_id} not found")
        entity.update(deepcopy({k: v for k, v in data.items() if k not in _SYSTEM_FIELDS}))
        entity["updated_date"] = _now()
        return deepcopy(entity)

    async def delete(self, entity_type, entity_id):
        _check_type(entity_type)
        self.entities[entity_type].pop(entity_id, None)
