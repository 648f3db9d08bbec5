"""Tenant scoping helpers.

Every client-facing write names its tenant explicitly and is filtered by
it in the same statement, so a mismatched tenant simply updates nothing.
Zero affected rows is reported as "not found or not authorized"; the
caller can never tell whether a row exists under another tenant.

Reads that embed a parent relation are checked again after the fetch
with :func:`owned_by`, because the child table cannot be trusted to
carry (or to have been filtered on) the tenant column.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from fastapi import HTTPException


def require_tenant_id(tenant_id: Optional[str], field: str = "client_id") -> str:
    """Reject a missing or blank tenant identifier with a 400."""
    if tenant_id is None or not str(tenant_id).strip():
        raise HTTPException(status_code=400, detail=f"{field} required")
    return str(tenant_id)


def _embedded(row: Dict[str, Any], relation: str) -> Optional[Dict[str, Any]]:
    parent = row.get(relation)
    # PostgREST returns a list for one-to-many embeds
    if isinstance(parent, list):
        parent = parent[0] if parent else None
    return parent if isinstance(parent, dict) else None


def parent_owner(row: Dict[str, Any], relation: str, owner_field: str = "client_id") -> Optional[str]:
    parent = _embedded(row, relation)
    if parent is None:
        return None
    return parent.get(owner_field)


def owned_by(
    rows: Iterable[Dict[str, Any]],
    relation: str,
    tenant_id: str,
    owner_field: str = "client_id",
) -> List[Dict[str, Any]]:
    """Keep only rows whose embedded ``relation`` belongs to ``tenant_id``.

    Rows with no embedded parent are dropped.
    """
    return [row for row in rows if parent_owner(row, relation, owner_field) == tenant_id]


def scoped_update(
    db: Any,
    table: str,
    values: Dict[str, Any],
    *,
    row_id: str,
    tenant_id: str,
    owner_field: str = "client_id",
    columns: str = "*",
    detail: str = "Not found or not authorized",
) -> Dict[str, Any]:
    """Update one row only if it belongs to ``tenant_id``.

    The ownership predicate is part of the update itself, so the check
    and the write are a single conditional statement in the store.
    Returns the updated row; raises a 404 when nothing matched.
    """
    response = (
        db.table(table)
        .update(values)
        .eq("id", row_id)
        .eq(owner_field, tenant_id)
        .execute()
    )
    rows = response.data or []
    if not rows:
        raise HTTPException(status_code=404, detail=detail)
    row = rows[0]
    if columns == "*":
        return row
    wanted = [c.strip() for c in columns.split(",")]
    return {key: row.get(key) for key in wanted}
