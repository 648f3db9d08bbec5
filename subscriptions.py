"""Subscription terms acceptance."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException

from db import first_row, utcnow_iso

logger = logging.getLogger(__name__)


def accept_terms(db: Any, subscription_id: str) -> bool:
    """Stamp ``terms_accepted_at`` on a subscription, at most once.

    Nothing is written when the subscription has no terms text or has
    already been accepted; the update is also predicated on the column
    still being null, so two concurrent calls cannot both stamp it.
    Returns True when this call recorded the acceptance.
    """
    response = (
        db.table("subscriptions")
        .select("id, terms_text, terms_accepted_at")
        .eq("id", subscription_id)
        .limit(1)
        .execute()
    )
    sub = first_row(response)
    if sub is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    if not sub.get("terms_text") or sub.get("terms_accepted_at"):
        return False
    updated = (
        db.table("subscriptions")
        .update({"terms_accepted_at": utcnow_iso()})
        .eq("id", subscription_id)
        .is_("terms_accepted_at", "null")
        .execute()
    )
    accepted = bool(updated.data)
    logger.info("terms_accepted subscription_id=%s recorded=%s", subscription_id, accepted)
    return accepted
