"""
Warranty Sync - Remote Record Fetcher

Three mutually exclusive strategies, picked by the caller:

  - sweep:  page through the list endpoint, newest first
  - sweep with a DateRange: page through a COQL ``between`` query instead,
            since list-endpoint criteria are unreliable for date ranges
  - lookup: per business key, search the primary field, then ``Name``, then
            (when enabled) treat the key as a native record id

Every strategy returns a flat ordered list of raw records plus per-key
errors. Zero results is never an exception at this layer.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .errors import ZohoAPIError
from .models import NOT_FOUND_MESSAGE, DateRange, SyncErrorEntry
from .settings import DEFAULT_PAGE_SIZE
from .zoho_client import ZohoClient

logger = logging.getLogger("warranty_sync.fetcher")

NAME_FIELD = "Name"


@dataclass
class FetchResult:
    records: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[SyncErrorEntry] = field(default_factory=list)


def build_select_query(module: str, date_range: DateRange, page: int, page_size: int) -> str:
    offset = (page - 1) * page_size
    return (
        f"select * from {module} "
        f"where {date_range.field} between '{date_range.start}' and '{date_range.end}' "
        f"order by Created_Time desc limit {page_size} offset {offset}"
    )


class RecordFetcher:
    def __init__(self, client: ZohoClient, page_size: int = DEFAULT_PAGE_SIZE):
        self.client = client
        self.page_size = page_size

    async def sweep(
        self,
        module: str,
        limit: int,
        date_range: Optional[DateRange] = None,
        fields: Optional[List[str]] = None,
    ) -> FetchResult:
        """
        Fetch pages one at a time until a page is empty, the remote reports no
        more records, or ``limit`` records have accumulated. The result is
        truncated to ``limit``.

        A failure on the first page is fatal. A failure on a later page ends
        the sweep with the records gathered so far plus one error row.
        """
        result = FetchResult()
        page = 1
        has_more = True

        while has_more and len(result.records) < limit:
            try:
                if date_range is not None:
                    fetched = await self.client.query(
                        build_select_query(module, date_range, page, self.page_size)
                    )
                else:
                    fetched = await self.client.list_records(
                        module, page=page, per_page=self.page_size, fields=fields
                    )
            except ZohoAPIError as exc:
                if page == 1:
                    raise
                logger.warning("%s page %d failed, keeping %d records: %s",
                               module, page, len(result.records), exc.message)
                result.errors.append(
                    SyncErrorEntry(identifier=f"{module} page {page}", error=exc.message)
                )
                break

            if not fetched.records:
                break

            result.records.extend(fetched.records)
            has_more = fetched.more_records
            logger.info(
                "Fetched %s page %d (%d records, %d total)",
                module, page, len(fetched.records), len(result.records),
            )
            page += 1

        result.records = result.records[:limit]
        return result

    async def lookup(
        self,
        module: str,
        keys: Iterable[str],
        primary_field: str,
        id_fallback: bool = False,
    ) -> FetchResult:
        """Search each key independently; misses become error rows."""
        result = FetchResult()

        for key in keys:
            hits = await self.client.search(module, primary_field, key)
            if not hits:
                logger.info("%s %s not found by %s, trying %s", module, key, primary_field, NAME_FIELD)
                hits = await self.client.search(module, NAME_FIELD, key)
            if not hits and id_fallback:
                logger.info("%s %s not found by %s, trying record id", module, key, NAME_FIELD)
                hits = await self.client.get_record(module, key)

            if hits:
                result.records.extend(hits)
            else:
                logger.warning("%s %s not found in remote system", module, key)
                result.errors.append(SyncErrorEntry(identifier=str(key), error=NOT_FOUND_MESSAGE))

        return result

    async def related(self, module: str, record_id: str, related_list: str) -> List[Dict[str, Any]]:
        return await self.client.related_records(module, record_id, related_list)
