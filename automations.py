"""Automation listing, toggling and draft review.

Client-facing operations here take the tenant id from the caller and
apply it to every query; admin-only operations (run history) are guarded
at the route.  Automation runs are reached through their parent
automation, and the parent's ``client_id`` is re-checked after every
fetch with :func:`tenancy.owned_by`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from db import first_row, utcnow_iso
from notifications import EmailSender, NotificationSender
from tenancy import owned_by, parent_owner, scoped_update

logger = logging.getLogger(__name__)

PENDING_APPROVAL = "pending_approval"
APPROVED = "approved"
DISCARDED = "discarded"
# interim status while an approved draft is being sent
SENDING = "sending"

RUNS_DEFAULT_LIMIT = 20
RUNS_MAX_LIMIT = 50

DRAFT_NOT_FOUND = "Draft not found or already processed"


def list_automations(db: Any, client_id: str) -> List[Dict[str, Any]]:
    response = (
        db.table("automations")
        .select("*")
        .eq("client_id", client_id)
        .order("sort_order")
        .execute()
    )
    return response.data or []


def list_drafts(db: Any, client_id: str) -> List[Dict[str, Any]]:
    """Pending-approval runs for ``client_id``, newest first.

    The tenant filter is expressed on the embedded automation (the run
    row is not trusted to carry a tenant column), and the result is
    filtered again on the returned parent so a misconfigured join can
    never leak another tenant's drafts.
    """
    response = (
        db.table("automation_runs")
        .select(
            "id, automation_id, draft_content, payload, input_summary, ran_at, "
            "automations!inner(name, automation_key, config, client_id)"
        )
        .eq("automations.client_id", client_id)
        .eq("status", PENDING_APPROVAL)
        .order("ran_at", desc=True)
        .execute()
    )
    rows = response.data or []
    drafts = owned_by(rows, "automations", client_id)
    if len(drafts) != len(rows):
        logger.warning(
            "drafts_foreign_rows_dropped client_id=%s dropped=%s",
            client_id,
            len(rows) - len(drafts),
        )
    return drafts


def clamp_runs_limit(limit: Optional[int]) -> int:
    if limit is None:
        return RUNS_DEFAULT_LIMIT
    return max(1, min(limit, RUNS_MAX_LIMIT))


def list_runs(db: Any, automation_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    response = (
        db.table("automation_runs")
        .select("id, status, input_summary, output_summary, error, ran_at, process_after")
        .eq("automation_id", automation_id)
        .order("ran_at", desc=True)
        .limit(clamp_runs_limit(limit))
        .execute()
    )
    return response.data or []


def toggle_automation(db: Any, automation_id: str, client_id: str, is_enabled: bool) -> bool:
    """Set ``is_enabled`` on an automation owned by ``client_id``.

    Returns the stored state.  An automation that does not exist and one
    that belongs to another tenant both give the same 404.
    """
    row = scoped_update(
        db,
        "automations",
        {"is_enabled": is_enabled, "updated_at": utcnow_iso()},
        row_id=automation_id,
        tenant_id=client_id,
        columns="id, is_enabled",
        detail="Automation not found or not authorized",
    )
    logger.info("automation_toggled automation_id=%s is_enabled=%s", automation_id, row["is_enabled"])
    return row["is_enabled"]


# ---------------------------------------------------------------------------
# Draft review


def _load_pending_run(db: Any, run_id: str, client_id: str) -> Dict[str, Any]:
    response = (
        db.table("automation_runs")
        .select(
            "id, automation_id, status, draft_content, payload, "
            "automations(id, automation_key, config, client_id)"
        )
        .eq("id", run_id)
        .eq("status", PENDING_APPROVAL)
        .limit(1)
        .execute()
    )
    run = first_row(response)
    if run is None or parent_owner(run, "automations") != client_id:
        raise HTTPException(status_code=404, detail=DRAFT_NOT_FOUND)
    return run


def _set_run_status(db: Any, run_id: str, values: Dict[str, Any], current: str = PENDING_APPROVAL) -> None:
    # the write only lands while the run is still in ``current``
    response = (
        db.table("automation_runs")
        .update(values)
        .eq("id", run_id)
        .eq("status", current)
        .execute()
    )
    if not response.data:
        raise HTTPException(status_code=404, detail=DRAFT_NOT_FOUND)


def _outgoing_message(automation: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Optional[str]]:
    key = automation.get("automation_key")
    if key == "lead_reply":
        to = payload.get("from_email")
        subject = payload.get("subject")
        subject = f"Re: {subject}" if subject else "Thanks for reaching out"
    elif key == "review_collector":
        to = payload.get("customer_email")
        subject = f"A quick favour, {payload.get('customer_name') or 'Customer'}"
    else:
        raise HTTPException(
            status_code=422,
            detail=f"Approve not supported for automation key: {key}",
        )
    if not to:
        raise HTTPException(status_code=422, detail="Missing recipient in draft payload")
    config = automation.get("config") or {}
    return {
        "to": to,
        "subject": subject,
        "from_name": config.get("from_name") or config.get("owner_name"),
    }


def _mark_lead_replied(db: Any, lead_id: str) -> None:
    db.table("leads").update({"replied_at": utcnow_iso()}).eq("id", lead_id).execute()
    logger.info("lead_replied lead_id=%s", lead_id)


def discard_draft(db: Any, run_id: str, client_id: str) -> str:
    _load_pending_run(db, run_id, client_id)
    _set_run_status(db, run_id, {"status": DISCARDED})
    logger.info("draft_discarded run_id=%s", run_id)
    return DISCARDED


def approve_draft(
    db: Any,
    run_id: str,
    client_id: str,
    email: EmailSender,
    sms: NotificationSender,
    content: Optional[str] = None,
) -> str:
    """Send a pending draft and mark it approved.

    ``content`` overrides the stored draft when non-blank.  The run is
    claimed (``pending_approval`` -> ``sending``) before anything is
    sent, so of two concurrent approvals only one reaches the email
    provider; the other gets the same 404 as an already-resolved draft.
    If the email sender reports that nothing was delivered the claim is
    released, the run is pending again and a 502 is raised.  The owner
    SMS confirmation is best effort only.
    """
    run = _load_pending_run(db, run_id, client_id)
    automation = run["automations"]
    if isinstance(automation, list):
        automation = automation[0]

    final_content = (content or "").strip() or (run.get("draft_content") or "")
    if not final_content:
        raise HTTPException(status_code=400, detail="No content to send")

    payload = run.get("payload") or {}
    message = _outgoing_message(automation, payload)

    _set_run_status(db, run_id, {"status": SENDING})
    if not email.send(message["to"], message["subject"], final_content, from_name=message["from_name"]):
        _set_run_status(db, run_id, {"status": PENDING_APPROVAL}, current=SENDING)
        logger.warning("draft_send_failed run_id=%s", run_id)
        raise HTTPException(status_code=502, detail="Send failed")

    if automation.get("automation_key") == "lead_reply" and payload.get("lead_id"):
        _mark_lead_replied(db, payload["lead_id"])

    sent_at = datetime.now(timezone.utc).isoformat()
    _set_run_status(
        db,
        run_id,
        {"status": APPROVED, "output_summary": f"Approved and sent {sent_at}"},
        current=SENDING,
    )
    db.rpc(
        "increment_automation_counter",
        {"p_automation_id": automation["id"], "p_increment": 1},
    ).execute()

    owner_phone = (automation.get("config") or {}).get("owner_phone")
    if owner_phone:
        sms.send(owner_phone, "", f"Draft approved and sent to {message['to']}")
    logger.info("draft_approved run_id=%s automation_id=%s", run_id, automation["id"])
    return APPROVED
