"""
Supabase table access: list candidate rows, patch image_url.

Both classes wrap an already-built ``supabase.Client``; nothing here creates
clients.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from supabase import Client

from . import results
from .results import StageResult

log = logging.getLogger(__name__)

DB_PAGE_SIZE = 1000
ROW_COLUMNS  = "id,name,image_url"


@dataclass(frozen=True)
class Row:
    id: Any
    name: str
    image_url: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Row":
        name = record.get("name")
        return cls(
            id=record.get("id"),
            name="" if name is None else str(name),
            image_url=record.get("image_url") or None,
        )


class SupabaseRowSource:
    """Row Source: every row of a table that still needs an image.

    Pages through the table ordered by ``id`` and returns the collected list,
    so callers see one snapshot taken before any row is patched.
    """

    def __init__(self, supabase: Client, only_missing: bool = True, page_size: int = DB_PAGE_SIZE):
        self.supabase = supabase
        self.only_missing = only_missing
        self.page_size = page_size

    def list_rows(self, table: str) -> StageResult:
        rows: List[Row] = []
        offset = 0
        try:
            while True:
                query = self.supabase.table(table).select(ROW_COLUMNS)
                if self.only_missing:
                    query = query.or_("image_url.is.null,image_url.eq.")
                resp = (
                    query.order("id")
                    .range(offset, offset + self.page_size - 1)
                    .execute()
                )
                page = resp.data or []
                rows.extend(Row.from_record(r) for r in page)
                if len(page) < self.page_size:
                    break
                offset += self.page_size
        except Exception as e:
            log.debug("list_rows(%s) failed", table, exc_info=True)
            return results.error(results.FETCH_ERROR, f"Error fetching from \"{table}\": {e}")
        return results.ok(rows)


class SupabaseRowUpdater:
    """Row Updater: set ``image_url`` on one row, keyed by ``id``."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def patch(self, table: str, row_id: Any, fields: Dict[str, Any]) -> StageResult:
        try:
            resp = self.supabase.table(table).update(fields).eq("id", row_id).execute()
        except Exception as e:
            return results.error(results.UPDATE_ERROR, f"DB update error for row ID:{row_id}: {e}")
        # RLS or a vanished row turns an update into a silent no-op
        if not resp.data:
            return results.error(
                results.UPDATE_ERROR, f"DB update matched no row for ID:{row_id}"
            )
        return results.ok(row_id)
