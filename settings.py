"""Runtime configuration for the reporting backend.

All settings come from environment variables and are read once, the
first time :func:`get_settings` is called.  Nothing here is required for
the process to start: a missing ``ADMIN_PASSWORD`` simply locks every
admin route, a missing Supabase URL/key makes data routes answer 503, and
missing email or SMS credentials turn notifications into logged no-ops.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field


def _env(name: str) -> Optional[str]:
    """Return a stripped environment value, treating blanks as unset."""
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _secret_env(name: str) -> Optional[str]:
    """Return an environment value exactly as set; only empty means unset."""
    return os.getenv(name) or None


def _log_level(name: Optional[str]) -> str:
    level = (name or "INFO").upper()
    # getLevelName maps known names to their number and anything else to a string
    if not isinstance(logging.getLevelName(level), int):
        return "INFO"
    return level


class Settings(BaseModel):
    """Process-wide configuration.

    ``admin_password`` is the single shared admin credential.  There is
    no per-admin identity and no token expiry; the bearer token handed
    out by ``POST /api/admin/auth`` stays valid for as long as the
    password is unchanged.
    """

    admin_password: Optional[str] = None

    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    storage_bucket: str = "uploads"

    resend_api_key: Optional[str] = None
    notify_from_email: Optional[str] = None

    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        origins = _env("CORS_ORIGINS")
        return cls(
            admin_password=_secret_env("ADMIN_PASSWORD"),
            supabase_url=_env("SUPABASE_URL"),
            supabase_service_role_key=_env("SUPABASE_SERVICE_ROLE_KEY"),
            storage_bucket=_env("STORAGE_BUCKET") or "uploads",
            resend_api_key=_env("RESEND_API_KEY"),
            notify_from_email=_env("NOTIFY_FROM_EMAIL"),
            twilio_account_sid=_env("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=_env("TWILIO_AUTH_TOKEN"),
            twilio_phone_number=_env("TWILIO_PHONE_NUMBER"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else ["*"],
            log_level=_log_level(_env("LOG_LEVEL")),
        )

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    @property
    def email_configured(self) -> bool:
        return bool(self.resend_api_key and self.notify_from_email)

    @property
    def sms_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
