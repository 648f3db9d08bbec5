"""Client PIN hashing, verification and the plaintext -> bcrypt migration."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Dict, Optional

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt cost factor used for every stored PIN hash
PIN_HASH_ROUNDS = 10
# bcrypt only looks at the first 72 bytes of its input
PIN_MAX_BYTES = 72


def _pin_bytes(pin: Any) -> bytes:
    return str(pin).encode("utf-8")[:PIN_MAX_BYTES]


def pin_too_long(pin: Any) -> bool:
    return len(str(pin).encode("utf-8")) > PIN_MAX_BYTES


def hash_pin(pin: Any) -> str:
    """Hash a PIN with bcrypt.

    Input past 72 bytes is cut off, as bcryptjs does, so legacy rows
    with longer PINs still migrate.  New PINs are length checked by the
    caller before they get here.
    """
    return bcrypt.hashpw(_pin_bytes(pin), bcrypt.gensalt(rounds=PIN_HASH_ROUNDS)).decode("utf-8")


def check_pin(candidate: str, client: Dict[str, Any]) -> bool:
    """Check ``candidate`` against a client row.

    Once ``pin_hash`` is set it is authoritative and the plaintext ``pin``
    column is ignored.  Rows not yet migrated fall back to a constant-time
    plaintext comparison.
    """
    pin_hash: Optional[str] = client.get("pin_hash")
    if pin_hash:
        try:
            return bcrypt.checkpw(_pin_bytes(candidate), pin_hash.encode("utf-8"))
        except ValueError:
            logger.error("pin_hash_malformed client_id=%s", client.get("id"))
            return False
    stored = client.get("pin")
    if stored is None:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), str(stored).encode("utf-8"))


def migrate_pins(db: Any) -> int:
    """Hash every plaintext PIN that has no ``pin_hash`` yet.

    Safe to run repeatedly: the selection only matches rows where
    ``pin_hash`` is null, and each write is predicated on that again, so
    a second run finds nothing to do.  Rows are updated one at a time
    with no surrounding transaction; if the run stops halfway the
    already-hashed rows stay hashed and the rest are picked up next time.

    Returns the number of rows migrated.
    """
    response = (
        db.table("clients")
        .select("id, pin")
        .is_("pin_hash", "null")
        .not_.is_("pin", "null")
        .execute()
    )
    migrated = 0
    for client in response.data or []:
        pin = client.get("pin")
        if pin is None or str(pin) == "":
            continue
        if pin_too_long(pin):
            logger.warning("pin_migration_truncated client_id=%s max_bytes=%s", client["id"], PIN_MAX_BYTES)
        updated = (
            db.table("clients")
            .update({"pin_hash": hash_pin(pin)})
            .eq("id", client["id"])
            .is_("pin_hash", "null")
            .execute()
        )
        if updated.data:
            migrated += 1
        else:
            logger.info("pin_migration_skipped client_id=%s reason=already_hashed", client["id"])
    logger.info("pin_migration_done migrated=%s", migrated)
    return migrated
