"""Entry point for the agency reporting backend.

This file implements the FastAPI server behind the agency admin
dashboard and the client-facing report app.  Every tenant (an agency
client) is identified by an id and a public slug; the service keeps no
state of its own and issues scoped reads and writes against Supabase.
It supports:

* Admin login with a single shared password and bearer-token checks on
  every admin route.
* Client PIN verification and an idempotent plaintext -> bcrypt PIN
  migration.
* Validated uploads of logos, knowledge documents and client assets to
  Supabase Storage.
* Automation listing, toggling, run history and draft approval, each
  scoped to the owning client.
* Sales sync summaries and subscription terms acceptance.
* Best-effort email (Resend) and SMS (Twilio) notifications.

To run this service locally:

```sh
pip install -e .
uvicorn main:app --reload
```

Configuration is read from environment variables; see ``settings.py``.
Without ``SUPABASE_URL`` and ``SUPABASE_SERVICE_ROLE_KEY`` the data
routes answer 503, and without provider keys notifications are skipped.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError
from pydantic import BaseModel, Field, StrictBool
from supabase import Client

import automations
import sales
import subscriptions
from admin_auth import admin_token, check_password, is_admin_request, require_admin
from db import first_row, get_db, utcnow_iso
from notifications import EmailSender, NotificationSender, SmsSender
from pins import PIN_MAX_BYTES, check_pin, hash_pin, migrate_pins, pin_too_long
from settings import Settings, get_settings
from tenancy import require_tenant_id
from uploads import (
    ASSET_POLICY,
    ASSET_SECTIONS,
    IMAGE_EXTENSIONS,
    KNOWLEDGE_POLICY,
    LOGO_POLICY,
    UploadPolicy,
    file_extension,
    store_upload,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger("reports")


# ---------------------------------------------------------------------------
# Request models
#
# Bodies are validated by pydantic; a missing field or a wrong type is
# answered with a 400 by the validation handler below.


class AdminLoginRequest(BaseModel):
    """Request body for the admin login."""
    password: Optional[str] = None


class VerifyPinRequest(BaseModel):
    slug: str = Field(min_length=1)
    pin: str = Field(min_length=1)


class ToggleAutomationRequest(BaseModel):
    """Request body for a client toggling one of its own automations.

    ``client_id`` is the caller's tenant; the update only applies when
    the automation belongs to it.
    """
    automation_id: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    is_enabled: StrictBool


class ResolveDraftRequest(BaseModel):
    """Request body for approving or discarding a pending draft.

    ``content`` replaces the stored draft text when given and non-blank.
    """
    action: str = Field(pattern="^(approve|discard)$")
    client_id: str = Field(min_length=1)
    content: Optional[str] = None


class AcceptTermsRequest(BaseModel):
    subscriptionId: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# FastAPI app and shared dependencies

app = FastAPI(title="Agency Reports API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_email_sender(settings: Settings = Depends(get_settings)) -> EmailSender:
    return EmailSender.from_settings(settings)


def get_sms_sender(settings: Settings = Depends(get_settings)) -> NotificationSender:
    return SmsSender.from_settings(settings)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(APIError)
async def data_store_error_handler(request: Request, exc: APIError):
    """Upstream Supabase errors become a 500 carrying the store's message."""
    logger.error("data_store_error path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=500, content={"detail": exc.message or "Data store error"})


@app.get("/health", summary="Health check endpoint")
def health(settings: Settings = Depends(get_settings)):
    return {
        "status": "ok",
        "data_store": settings.supabase_configured,
        "email": settings.email_configured,
        "sms": settings.sms_configured,
    }


# ---------------------------------------------------------------------------
# Admin authentication


@app.post("/api/admin/auth", summary="Exchange the admin password for a token")
def admin_login(req: AdminLoginRequest, settings: Settings = Depends(get_settings)):
    if not check_password(req.password, settings):
        logger.warning("admin_login_failed")
        raise HTTPException(status_code=401, detail="Invalid password")
    return {"token": admin_token(settings.admin_password)}


@app.get("/api/admin/auth", summary="Check an admin bearer token")
def admin_check(request: Request, settings: Settings = Depends(get_settings)):
    if is_admin_request(request, settings):
        return {"authenticated": True}
    return JSONResponse(status_code=401, content={"authenticated": False})


# ---------------------------------------------------------------------------
# Admin: clients

# never written from a request body
CLIENT_PROTECTED_FIELDS = ("id", "pin_hash", "created_at", "updated_at")


def _client_values(body: Dict[str, Any]) -> Dict[str, Any]:
    """Strip protected columns and turn a plaintext ``pin`` into ``pin_hash``."""
    values = {k: v for k, v in body.items() if k not in CLIENT_PROTECTED_FIELDS}
    pin = values.get("pin")
    if pin:
        if pin_too_long(pin):
            raise HTTPException(status_code=400, detail=f"PIN too long (max {PIN_MAX_BYTES} bytes)")
        values["pin_hash"] = hash_pin(pin)
        values["pin"] = None
    return values


@app.get(
    "/api/admin/clients",
    summary="List every client",
    dependencies=[Depends(require_admin)],
)
def list_clients(db: Client = Depends(get_db)):
    response = db.table("clients").select("*").order("created_at").execute()
    return response.data or []


@app.post(
    "/api/admin/clients",
    summary="Create a client",
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def create_client_endpoint(body: Dict[str, Any] = Body(...), db: Client = Depends(get_db)):
    """
    Create a client row. As with updates, a ``pin`` is stored only as its
    bcrypt hash.
    """
    values = _client_values(body)
    if not values.get("slug"):
        raise HTTPException(status_code=400, detail="slug required")
    row = first_row(db.table("clients").insert(values).execute())
    logger.info("client_created client_id=%s", row["id"] if row else None)
    return row


@app.post(
    "/api/admin/clients/migrate-pins",
    summary="Hash every plaintext client PIN",
    dependencies=[Depends(require_admin)],
)
def migrate_pins_endpoint(db: Client = Depends(get_db)):
    """
    Hash all client PINs that do not have a ``pin_hash`` yet. Safe to
    call any number of times; a repeat call reports ``migrated: 0``.
    """
    return {"migrated": migrate_pins(db)}


@app.get(
    "/api/admin/clients/{client_id}/sync-info",
    summary="Sales entry sync summary for a client",
    dependencies=[Depends(require_admin)],
)
def sync_info_endpoint(client_id: str, db: Client = Depends(get_db)):
    return sales.sync_info(db, client_id)


@app.get(
    "/api/admin/clients/{client_id}",
    summary="Fetch one client",
    dependencies=[Depends(require_admin)],
)
def get_client(client_id: str, db: Client = Depends(get_db)):
    row = first_row(db.table("clients").select("*").eq("id", client_id).limit(1).execute())
    if row is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return row


@app.patch(
    "/api/admin/clients/{client_id}",
    summary="Update a client's fields",
    dependencies=[Depends(require_admin)],
)
def update_client(client_id: str, body: Dict[str, Any] = Body(...), db: Client = Depends(get_db)):
    """
    Update a client row. A ``pin`` in the body is stored only as a bcrypt
    hash; the plaintext column is cleared so the hash is the single
    source of truth from then on.
    """
    values = _client_values(body)
    if not values:
        raise HTTPException(status_code=400, detail="No fields to update")
    values["updated_at"] = utcnow_iso()
    response = db.table("clients").update(values).eq("id", client_id).execute()
    row = first_row(response)
    if row is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return row


@app.delete(
    "/api/admin/clients/{client_id}",
    summary="Delete a client",
    dependencies=[Depends(require_admin)],
)
def delete_client(client_id: str, db: Client = Depends(get_db)):
    response = db.table("clients").delete().eq("id", client_id).execute()
    if not response.data:
        raise HTTPException(status_code=404, detail="Client not found")
    logger.info("client_deleted client_id=%s", client_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Admin: uploads


def _validated_upload(
    policy: UploadPolicy,
    file: Optional[UploadFile],
    db: Client,
    settings: Settings,
    *parts: str,
) -> Dict[str, Any]:
    data = policy.read_validated(file)
    key = policy.key_for(file.filename, *parts)
    url = store_upload(db, settings.storage_bucket, key, data, file.content_type)
    return {"url": url, "size": len(data)}


@app.post(
    "/api/admin/upload",
    summary="Upload a client logo",
    dependencies=[Depends(require_admin)],
)
def upload_logo(
    file: Optional[UploadFile] = File(None),
    db: Client = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    stored = _validated_upload(LOGO_POLICY, file, db, settings)
    return {"url": stored["url"]}


@app.post(
    "/api/admin/knowledge/upload",
    summary="Upload a knowledge document",
    dependencies=[Depends(require_admin)],
)
def upload_knowledge(
    file: Optional[UploadFile] = File(None),
    db: Client = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    stored = _validated_upload(KNOWLEDGE_POLICY, file, db, settings)
    return {"url": stored["url"]}


@app.post(
    "/api/admin/assets/upload",
    summary="Upload a client asset",
    dependencies=[Depends(require_admin)],
)
def upload_asset(
    file: Optional[UploadFile] = File(None),
    clientId: Optional[str] = Form(None),
    section: Optional[str] = Form(None),
    db: Client = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Upload an asset into a client's ``brand_kit``, ``content`` or
    ``website`` section. Any file type is accepted up to 50MB. Image
    assets reuse their own URL as thumbnail.
    """
    if file is None or not clientId or not section:
        raise HTTPException(status_code=400, detail="Missing file, clientId, or section")
    if section not in ASSET_SECTIONS:
        raise HTTPException(status_code=400, detail=f"section must be one of: {', '.join(ASSET_SECTIONS)}")
    stored = _validated_upload(ASSET_POLICY, file, db, settings, clientId, section)
    ext = file_extension(file.filename)
    is_image = ext in IMAGE_EXTENSIONS
    return {
        "url": stored["url"],
        "file_type": ext,
        "file_size": stored["size"],
        "is_image": is_image,
        "thumbnail_url": stored["url"] if is_image else None,
    }


# ---------------------------------------------------------------------------
# Automations


@app.get("/api/automations", summary="List a client's automations")
def list_automations_endpoint(clientId: Optional[str] = None, db: Client = Depends(get_db)):
    client_id = require_tenant_id(clientId, "clientId")
    return {"automations": automations.list_automations(db, client_id)}


@app.get("/api/automations/drafts", summary="List a client's pending drafts")
def list_drafts_endpoint(clientId: Optional[str] = None, db: Client = Depends(get_db)):
    """
    Return every ``pending_approval`` run for the client, joined with its
    automation's name, key and config. No admin token is needed; results
    are strictly limited to automations owned by ``clientId``.
    """
    client_id = require_tenant_id(clientId, "clientId")
    return {"drafts": automations.list_drafts(db, client_id)}


@app.patch("/api/automations/drafts/{run_id}", summary="Approve or discard a pending draft")
def resolve_draft_endpoint(
    run_id: str,
    req: ResolveDraftRequest,
    db: Client = Depends(get_db),
    email: EmailSender = Depends(get_email_sender),
    sms: NotificationSender = Depends(get_sms_sender),
):
    if req.action == "discard":
        status = automations.discard_draft(db, run_id, req.client_id)
    else:
        status = automations.approve_draft(db, run_id, req.client_id, email, sms, content=req.content)
    return {"ok": True, "status": status}


@app.get(
    "/api/automations/runs",
    summary="Recent runs of an automation",
    dependencies=[Depends(require_admin)],
)
def list_runs_endpoint(
    automation_id: Optional[str] = None,
    limit: int = Query(automations.RUNS_DEFAULT_LIMIT),
    db: Client = Depends(get_db),
):
    """
    Newest-first run history. ``limit`` defaults to 20 and is capped at 50.
    """
    if not automation_id:
        raise HTTPException(status_code=400, detail="automation_id required")
    return {"runs": automations.list_runs(db, automation_id, limit)}


@app.post("/api/automations/toggle", summary="Turn a client's automation on or off")
def toggle_automation_endpoint(req: ToggleAutomationRequest, db: Client = Depends(get_db)):
    is_enabled = automations.toggle_automation(db, req.automation_id, req.client_id, req.is_enabled)
    return {"ok": True, "is_enabled": is_enabled}


# ---------------------------------------------------------------------------
# Client-facing: PIN gate and subscriptions


@app.post("/api/verify-pin", summary="Check a client's report PIN")
def verify_pin(req: VerifyPinRequest, db: Client = Depends(get_db)):
    response = (
        db.table("clients")
        .select("id, pin, pin_hash")
        .eq("slug", req.slug)
        .limit(1)
        .execute()
    )
    client = first_row(response)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    if not check_pin(req.pin, client):
        logger.info("pin_rejected slug=%s", req.slug)
        raise HTTPException(status_code=401, detail="Invalid PIN")
    return {"success": True}


@app.post("/api/subscribe/accept-terms", summary="Record acceptance of subscription terms")
def accept_terms_endpoint(req: AcceptTermsRequest, db: Client = Depends(get_db)):
    subscriptions.accept_terms(db, req.subscriptionId)
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
