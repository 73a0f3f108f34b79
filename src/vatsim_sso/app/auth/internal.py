# src/vatsim_sso/app/auth/internal.py
from __future__ import annotations

import os
import time
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException, status

from vatsim_sso.app.auth.errors import LoginRefusedError
from vatsim_sso.app.auth.session import SessionStore
from vatsim_sso.app.core.trace import auth_trace
from vatsim_sso.app.models import LocalAccount
from vatsim_sso.app.services.users import UserStore

# =========================
# Internal HS256 token config
# =========================
JWT_SECRET = os.getenv("JWT_SECRET", "dev_secret_do_not_use_in_prod")
JWT_ISS    = os.getenv("JWT_ISS", "vatsim-sso")
JWT_AUD    = os.getenv("JWT_AUD", "vatsim-sso-app")
ALGO       = "HS256"

ACCESS_TTL = int(os.getenv("JWT_ACCESS_TTL_SEC", "28800"))  # 8h, one working session

# Session keys written on login
SESSION_USER = "user"
SESSION_WANTSURL = "wantsurl"

def _now() -> int:
    return int(time.time())

# -------------------------
# Issuer / verifier
# -------------------------
def issue_access_token(account: LocalAccount, ttl: Optional[int] = None) -> str:
    now = _now()
    payload: Dict[str, Any] = {
        "iss": JWT_ISS,
        "aud": JWT_AUD,
        "sub": account.username,
        "auth": account.auth,
        "iat": now,
        "nbf": now,
        "exp": now + (ttl or ACCESS_TTL),
    }
    tok = jwt.encode(payload, JWT_SECRET, algorithm=ALGO)
    auth_trace(
        "internal.issue_access",
        sub=account.username,
        exp=payload["exp"],
        exp_human=time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime(payload["exp"])),
    )
    return tok

def verify_access(token: str) -> Dict[str, Any]:
    """
    Verify an internal access token minted at login.
    Raises FastAPI HTTPException(401) on failure.
    """
    try:
        claims = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[ALGO],
            audience=JWT_AUD,
            issuer=JWT_ISS,
            options={"require": ["exp", "iss", "aud", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid token: exp (expired)",
        )
    except jwt.PyJWTError as ex:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"invalid token: {ex}",
        )
    auth_trace("internal.verify_access_ok", sub=claims.get("sub"), exp=claims.get("exp"))
    return claims

# -------------------------
# Session establisher
# -------------------------
class SessionEstablisher:
    """Completes the local login for an already-resolved username and picks where to go next."""

    def __init__(self, users: UserStore, session: SessionStore, *, host_id: int, base_url: str):
        self.users = users
        self.session = session
        self.host_id = host_id
        self.base_url = base_url.rstrip("/")

    def complete_login(self, username: str) -> LocalAccount:
        account = self.users.get_by_username(username, self.host_id)
        if account is None:
            raise LoginRefusedError(f"no active account {username}")
        if account.suspended:
            raise LoginRefusedError(f"account {username} is suspended")

        self.session.set(SESSION_USER, account.username)
        auth_trace("internal.login_complete", sub=account.username)
        return account

    def redirect_target(self, account: LocalAccount) -> str:
        if not account.fully_set_up:
            # keep wantsurl so the user ends up there after completing the profile
            return f"{self.base_url}/user/edit"

        wants = self.session.get(SESSION_WANTSURL)
        self.session.delete(SESSION_WANTSURL)
        if wants and (wants == self.base_url or wants.startswith(self.base_url + "/")):
            return wants
        # No wantsurl stored or external: go to homepage
        return f"{self.base_url}/"
