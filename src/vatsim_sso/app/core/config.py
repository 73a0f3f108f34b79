# src/vatsim_sso/app/core/config.py
from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


def _flag(var: str, default: str = "") -> bool:
    return (os.getenv(var, default) or "").strip().lower() in ("1", "true", "yes", "on")


class SigningMethod(str, Enum):
    HMAC = "HMAC"
    RSA = "RSA"


class ProviderConfig(BaseModel):
    """
    Consumer credentials and endpoints for one VATSIM SSO handshake.

    The consumer secret and the RSA private key stay server-side; nothing in this
    model is ever sent to the browser.
    """
    model_config = ConfigDict(frozen=True)

    base_endpoint: str
    consumer_key: str
    consumer_secret: str = ""
    signing_method: SigningMethod = SigningMethod.HMAC
    certificate: Optional[str] = None
    # None => the web layer derives it from the login route URL
    return_url: Optional[str] = None
    allow_account_creation: bool = True
    allow_suspended: bool = False
    allow_inactive: bool = False

    @model_validator(mode="after")
    def _check_signing(self) -> "ProviderConfig":
        if self.signing_method is SigningMethod.RSA and not (self.certificate or "").strip():
            raise ValueError("RSA signing requires a certificate (private key)")
        if self.signing_method is SigningMethod.HMAC and not self.consumer_secret:
            raise ValueError("HMAC signing requires a consumer secret")
        return self

    def with_return_url(self, return_url: str) -> "ProviderConfig":
        return self.model_copy(update={"return_url": return_url})


class AppSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_url: str = "http://localhost:8000"
    session_secret: str = "dev-session-secret"
    session_cookie_name: str = "vatsim_sso_sid"
    access_cookie_name: str = "vatsim_sso_access"
    cookie_secure: bool = False
    host_id: int = 1


def _read_certificate() -> Optional[str]:
    cert = os.getenv("VATSIM_SSO_CERT")
    if cert:
        return cert
    path = os.getenv("VATSIM_SSO_CERT_FILE", "").strip()
    if path:
        return Path(path).read_text(encoding="utf-8")
    return None


def load_provider_config() -> ProviderConfig:
    """
    Build the provider config from environment:
      VATSIM_SSO_BASE, VATSIM_SSO_KEY, VATSIM_SSO_SECRET
      VATSIM_SSO_METHOD = HMAC | RSA  (RSA needs VATSIM_SSO_CERT or VATSIM_SSO_CERT_FILE)
      VATSIM_SSO_RETURN (optional), VATSIM_SSO_ALLOW_SUSPENDED, VATSIM_SSO_ALLOW_INACTIVE
      AUTH_PREVENT_ACCOUNT_CREATION=true forbids creating accounts on first login
    """
    base = (os.getenv("VATSIM_SSO_BASE", "") or "").strip()
    key = (os.getenv("VATSIM_SSO_KEY", "") or "").strip()
    if not base or not key:
        raise RuntimeError(
            "VATSIM SSO not configured. Set VATSIM_SSO_BASE and VATSIM_SSO_KEY in your environment."
        )
    return ProviderConfig(
        base_endpoint=base,
        consumer_key=key,
        consumer_secret=os.getenv("VATSIM_SSO_SECRET", ""),
        signing_method=SigningMethod((os.getenv("VATSIM_SSO_METHOD", "HMAC") or "HMAC").strip().upper()),
        certificate=_read_certificate(),
        return_url=(os.getenv("VATSIM_SSO_RETURN") or "").strip() or None,
        allow_account_creation=not _flag("AUTH_PREVENT_ACCOUNT_CREATION"),
        allow_suspended=_flag("VATSIM_SSO_ALLOW_SUSPENDED"),
        allow_inactive=_flag("VATSIM_SSO_ALLOW_INACTIVE"),
    )


def load_app_settings() -> AppSettings:
    return AppSettings(
        base_url=(os.getenv("BASE_URL", "http://localhost:8000") or "").rstrip("/"),
        session_secret=os.getenv("SESSION_SECRET", "dev-session-secret"),  # use a strong secret in real env
        session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "vatsim_sso_sid"),
        cookie_secure=_flag("COOKIE_SECURE"),
        host_id=int(os.getenv("MNET_HOST_ID", "1")),
    )


@lru_cache(maxsize=1)
def get_provider_config() -> ProviderConfig:
    return load_provider_config()


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    return load_app_settings()
