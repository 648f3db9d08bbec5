"""Shared-password admin credential.

The agency dashboard has exactly one credential, ``ADMIN_PASSWORD``.  A
successful login hands back ``base64("admin:" + password)`` and every
admin request must carry it as ``Authorization: Bearer <token>``.  The
token never expires; rotating the password is the only way to revoke it.
Comparisons are constant time.
"""

from __future__ import annotations

import base64
import hmac
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request

from settings import Settings, get_settings

logger = logging.getLogger(__name__)


def admin_token(password: str) -> str:
    return base64.b64encode(f"admin:{password}".encode("utf-8")).decode("ascii")


def check_password(candidate: Optional[str], settings: Settings) -> bool:
    """True when ``candidate`` equals the configured admin password."""
    if not settings.admin_password or not candidate:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), settings.admin_password.encode("utf-8"))


def is_admin_request(request: Request, settings: Settings) -> bool:
    """Validate the bearer token on ``request``.

    Pure function of the ``Authorization`` header and the configured
    password; an unset password rejects everything.
    """
    if not settings.admin_password:
        return False
    header = request.headers.get("Authorization") or ""
    expected = f"Bearer {admin_token(settings.admin_password)}"
    return hmac.compare_digest(header.encode("utf-8"), expected.encode("utf-8"))


def require_admin(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """Dependency guarding admin-only routes with a 401."""
    if not is_admin_request(request, settings):
        logger.warning("admin_auth_rejected path=%s", request.url.path)
        raise HTTPException(status_code=401, detail="Unauthorized")
