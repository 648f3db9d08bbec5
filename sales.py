"""Sales-entry sync summary for the admin dashboard."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

UNTAGGED = "untagged"
# PostgREST's default max-rows
SOURCE_PAGE_SIZE = 1000


def summarize_sources(sources: Iterable[Optional[str]]) -> List[Dict[str, Any]]:
    """Histogram of entry sources, highest count first.

    Null or empty sources count as ``"untagged"``.  Ties keep the order in
    which the source was first seen.
    """
    counts: Dict[str, int] = {}
    for source in sources:
        key = source or UNTAGGED
        counts[key] = counts.get(key, 0) + 1
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [{"source": source, "count": count} for source, count in ordered]


def _source_values(db: Any, client_id: str) -> List[Optional[str]]:
    # PostgREST caps every response at its max-rows setting, so read in pages
    sources: List[Optional[str]] = []
    start = 0
    while True:
        page = (
            db.table("sales_entries")
            .select("source")
            .eq("client_id", client_id)
            .order("id")
            .range(start, start + SOURCE_PAGE_SIZE - 1)
            .execute()
        )
        rows = page.data or []
        sources.extend(row.get("source") for row in rows)
        if len(rows) < SOURCE_PAGE_SIZE:
            return sources
        start += SOURCE_PAGE_SIZE


def sync_info(db: Any, client_id: str) -> Dict[str, Any]:
    """Four read-only aggregates over a tenant's ``sales_entries``."""
    total = (
        db.table("sales_entries")
        .select("*", count="exact", head=True)
        .eq("client_id", client_id)
        .execute()
    )
    untagged = (
        db.table("sales_entries")
        .select("*", count="exact", head=True)
        .eq("client_id", client_id)
        .is_("source", "null")
        .execute()
    )
    latest = (
        db.table("sales_entries")
        .select("sold_at")
        .eq("client_id", client_id)
        .not_.is_("sold_at", "null")
        .order("sold_at", desc=True)
        .limit(1)
        .execute()
    )

    last_rows = latest.data or []
    return {
        "total_entries": total.count or 0,
        "untagged_count": untagged.count or 0,
        "last_entry_at": last_rows[0].get("sold_at") if last_rows else None,
        "sources": summarize_sources(_source_values(db, client_id)),
    }
