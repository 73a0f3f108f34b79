# app/auth/vatsim.py  (web adapter for the VATSIM SSO login hook)
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from vatsim_sso.app.auth.client import VatsimSSOClient
from vatsim_sso.app.auth.internal import SESSION_WANTSURL, issue_access_token, verify_access
from vatsim_sso.app.auth.plugin import VatsimAuthPlugin
from vatsim_sso.app.auth.session import SessionRegistry
from vatsim_sso.app.core.config import AppSettings, get_app_settings, get_provider_config
from vatsim_sso.app.core.trace import auth_trace
from vatsim_sso.app.services.audit import InMemoryAuditLog
from vatsim_sso.app.services.users import InMemoryUserStore

log = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

# ------------------------
# Singletons (override in tests via app.dependency_overrides)
# ------------------------
@lru_cache(maxsize=1)
def get_user_store() -> InMemoryUserStore:
    return InMemoryUserStore()

@lru_cache(maxsize=1)
def get_audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog()

@lru_cache(maxsize=1)
def get_session_registry() -> SessionRegistry:
    return SessionRegistry(get_app_settings().session_secret)

@lru_cache(maxsize=1)
def get_plugin() -> VatsimAuthPlugin:
    config = get_provider_config()
    settings = get_app_settings()
    return VatsimAuthPlugin(
        config,
        VatsimSSOClient(config),
        get_user_store(),
        get_audit_log(),
        host_id=settings.host_id,
        base_url=settings.base_url,
    )

# ------------------------
# /auth/vatsim/login (start + return)
# ------------------------
@router.get("/auth/vatsim/login", name="vatsim_login")
def vatsim_login(
    request: Request,
    wantsurl: str = Query("", alias="next"),
    plugin: VatsimAuthPlugin = Depends(get_plugin),
    sessions: SessionRegistry = Depends(get_session_registry),
    settings: AppSettings = Depends(get_app_settings),
):
    """
    Login page hook. A plain visit starts the handshake and redirects to VATSIM;
    VATSIM sends the browser back here with oauth_token/oauth_verifier (or oauth_cancel).
    """
    session = sessions.load(request.cookies.get(settings.session_cookie_name))
    if wantsurl:
        session.set(SESSION_WANTSURL, wantsurl)

    outcome = plugin.login_hook(
        session,
        dict(request.query_params),
        return_url=str(request.url_for("vatsim_login")),
    )
    auth_trace("vatsim.login.outcome", state=outcome.state.value,
               error=outcome.error.code if outcome.error else None)

    if outcome.error is not None:
        log.info("VATSIM login stopped: %s (%s)", outcome.error.code, outcome.error.detail)
        raise HTTPException(status_code=outcome.error.status_code, detail=outcome.error.message)

    if outcome.account is not None:
        # new id once logged in, so a pre-login cookie cannot ride the session
        session = sessions.rotate(session)

    resp = RedirectResponse(outcome.redirect_url, status_code=302)
    if sessions.save(session):
        resp.set_cookie(
            settings.session_cookie_name,
            sessions.sign(session),
            max_age=sessions.max_age,
            secure=settings.cookie_secure,
            httponly=True,
            samesite="lax",
            path="/",
        )
    if outcome.account is not None:
        resp.set_cookie(
            settings.access_cookie_name,
            issue_access_token(outcome.account),
            secure=settings.cookie_secure,
            httponly=True,
            samesite="lax",
            path="/",
        )
    return resp

# ------------------------
# /auth/me (who is logged in)
# ------------------------
def _access_token(request: Request, authorization: Optional[str], settings: AppSettings) -> str:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    tok = request.cookies.get(settings.access_cookie_name)
    if not tok:
        raise HTTPException(status_code=401, detail="Not logged in")
    return tok

@router.get("/auth/me")
def auth_me(
    request: Request,
    authorization: Optional[str] = Header(None),
    plugin: VatsimAuthPlugin = Depends(get_plugin),
    settings: AppSettings = Depends(get_app_settings),
) -> Dict[str, Any]:
    claims = verify_access(_access_token(request, authorization, settings))
    account = plugin.users.get_by_username(claims["sub"], plugin.host_id)
    if account is None:
        raise HTTPException(status_code=401, detail="account no longer exists")
    return {
        "username": account.username,
        "auth": account.auth,
        "email": account.email,
        "first_name": account.first_name,
        "last_name": account.last_name,
        "country": account.country,
    }
