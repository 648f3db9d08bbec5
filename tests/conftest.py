"""Shared fixtures for the reporting API tests.

Provides a deterministic settings object, an in-memory Supabase fake
seeded with two tenants, mock notification senders and a FastAPI
TestClient with all external dependencies overridden.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Quiet the logging configured when main is imported.
os.environ.setdefault("LOG_LEVEL", "WARNING")

from admin_auth import admin_token
from db import get_db
from main import app, get_email_sender, get_sms_sender
from settings import Settings, get_settings

from fake_supabase import FakeSupabase

ADMIN_PASSWORD = "correct-horse-battery"

TENANT_A = "client-alpha"
TENANT_B = "client-bravo"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        admin_password=ADMIN_PASSWORD,
        supabase_url="https://db.test",
        supabase_service_role_key="service-role-key",
        storage_bucket="uploads",
    )


@pytest.fixture()
def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {admin_token(ADMIN_PASSWORD)}"}


# ---------------------------------------------------------------------------
# Data store
# ---------------------------------------------------------------------------


def _seed() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "clients": [
            {"id": TENANT_A, "slug": "alpha", "pin": "1234", "pin_hash": None, "created_at": "2026-02-01T00:00:00+00:00"},
            {"id": TENANT_B, "slug": "bravo", "pin": "9876", "pin_hash": None, "created_at": "2026-01-01T00:00:00+00:00"},
            {"id": "client-charlie", "slug": "charlie", "pin": None, "pin_hash": None, "created_at": "2026-03-01T00:00:00+00:00"},
        ],
        "automations": [
            {
                "id": "auto-a1",
                "client_id": TENANT_A,
                "automation_key": "lead_reply",
                "name": "Lead reply",
                "config": {"owner_phone": "+4511111111"},
                "is_enabled": False,
                "sort_order": 2,
            },
            {
                "id": "auto-a2",
                "client_id": TENANT_A,
                "automation_key": "review_collector",
                "name": "Review collector",
                "config": {},
                "is_enabled": True,
                "sort_order": 1,
            },
            {
                "id": "auto-b1",
                "client_id": TENANT_B,
                "automation_key": "lead_reply",
                "name": "Lead reply",
                "config": {},
                "is_enabled": False,
                "sort_order": 1,
            },
        ],
        "automation_runs": [
            {
                "id": "run-a1",
                "automation_id": "auto-a1",
                "status": "pending_approval",
                "draft_content": "Hi Jane, thanks for your message.",
                "payload": {"from_email": "jane@example.com", "subject": "Quote"},
                "input_summary": "Lead from Jane",
                "output_summary": None,
                "error": None,
                "ran_at": "2026-10-01T10:00:00+00:00",
                "process_after": None,
            },
            {
                "id": "run-a2",
                "automation_id": "auto-a2",
                "status": "pending_approval",
                "draft_content": "Would you leave us a review?",
                "payload": {"customer_email": "bob@example.com"},
                "input_summary": "Order 17",
                "output_summary": None,
                "error": None,
                "ran_at": "2026-10-02T10:00:00+00:00",
                "process_after": None,
            },
            {
                "id": "run-a3",
                "automation_id": "auto-a1",
                "status": "approved",
                "draft_content": "Already sent",
                "payload": {},
                "input_summary": "Old lead",
                "output_summary": "sent",
                "error": None,
                "ran_at": "2026-09-01T10:00:00+00:00",
                "process_after": None,
            },
            {
                "id": "run-b1",
                "automation_id": "auto-b1",
                "status": "pending_approval",
                "draft_content": "Bravo's private draft",
                "payload": {"from_email": "lead@bravo.example"},
                "input_summary": "Lead for bravo",
                "output_summary": None,
                "error": None,
                "ran_at": "2026-10-03T10:00:00+00:00",
                "process_after": None,
            },
        ],
        "sales_entries": [
            {"id": "s1", "client_id": TENANT_A, "sold_at": "2026-10-01T09:00:00+00:00", "source": "a"},
            {"id": "s2", "client_id": TENANT_A, "sold_at": "2026-10-05T09:00:00+00:00", "source": "a"},
            {"id": "s3", "client_id": TENANT_A, "sold_at": "2026-10-03T09:00:00+00:00", "source": "b"},
            {"id": "s4", "client_id": TENANT_A, "sold_at": "2026-10-02T09:00:00+00:00", "source": None},
            {"id": "s5", "client_id": TENANT_B, "sold_at": "2026-10-09T09:00:00+00:00", "source": "c"},
        ],
        "subscriptions": [
            {"id": "sub-terms", "terms_text": "Pay monthly.", "terms_accepted_at": None},
            {"id": "sub-no-terms", "terms_text": None, "terms_accepted_at": None},
        ],
    }


@pytest.fixture()
def fake_db() -> FakeSupabase:
    return FakeSupabase(tables=_seed())


# ---------------------------------------------------------------------------
# Notification senders
# ---------------------------------------------------------------------------


@pytest.fixture()
def email_sender() -> MagicMock:
    sender = MagicMock()
    sender.send.return_value = True
    return sender


@pytest.fixture()
def sms_sender() -> MagicMock:
    sender = MagicMock()
    sender.send.return_value = True
    return sender


# ---------------------------------------------------------------------------
# TestClient
# ---------------------------------------------------------------------------


@pytest.fixture()
def client(test_settings, fake_db, email_sender, sms_sender):
    """TestClient with settings, data store and senders overridden."""
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_sms_sender] = lambda: sms_sender
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
