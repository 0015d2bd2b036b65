"""
Warranty Sync - RE Pro User Tagging

Post-reconciliation step: a portal user whose email belongs to a synced RE Pro
is tagged "RE Pro", or "Combo" when that email also owns policies as a
customer. Run after policies and RE Pros are both reconciled; the tag is only
maintained at sync time.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from .entity_store import EntityStore
from .models import POLICY, USER, SyncErrorEntry

logger = logging.getLogger("warranty_sync.user_tagger")

RE_PRO_TYPE = "RE Pro"
COMBO_TYPE = "Combo"


@dataclass
class TagResult:
    updated: int = 0
    errors: List[SyncErrorEntry] = field(default_factory=list)


class UserTagger:
    def __init__(self, store: EntityStore):
        self.store = store

    async def customer_type_for(self, email: str) -> str:
        owned = await self.store.filter(POLICY, {"customer_email": email})
        return COMBO_TYPE if owned else RE_PRO_TYPE

    async def tag(self, emails: Iterable[str]) -> TagResult:
        result = TagResult()

        for email in dict.fromkeys(e for e in emails if e):
            try:
                users = await self.store.filter(USER, {"email": email})
                if not users:
                    continue
                user = users[0]
                new_type = await self.customer_type_for(email)
                if user.get("customer_type") != new_type:
                    await self.store.update(USER, user["id"], {"customer_type": new_type})
                    result.updated += 1
                    logger.info("Tagged user %s as %s", email, new_type)
            except Exception as exc:
                logger.warning("Tagging user %s failed: %s", email, exc)
                result.errors.append(SyncErrorEntry(identifier=email, error=str(exc)))

        return result
