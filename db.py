"""Supabase access for route handlers.

The service talks to Supabase with the service-role key, which bypasses
row level security.  Tenant isolation is therefore enforced in this
codebase (see ``tenancy.py``), never delegated to the database policies.

Handlers receive the client through the :func:`get_db` dependency so
tests can swap in a fake with ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException
from supabase import Client, create_client

from settings import Settings, get_settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _create_client(url: str, key: str) -> Client:
    logger.info("supabase_client_created url=%s", url)
    return create_client(url, key)


def get_db(settings: Settings = Depends(get_settings)) -> Client:
    """FastAPI dependency returning the shared Supabase client.

    Raises a 503 when the data store has not been configured, so the
    rest of the API (health check, admin login) keeps working without it.
    """
    if not settings.supabase_configured:
        raise HTTPException(status_code=503, detail="Data store not configured")
    return _create_client(settings.supabase_url, settings.supabase_service_role_key)


def first_row(response: Any) -> Optional[Dict[str, Any]]:
    """Return the first row of a PostgREST response, or None when empty."""
    rows = getattr(response, "data", None) or []
    return rows[0] if rows else None


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
