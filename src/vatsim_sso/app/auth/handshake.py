# src/vatsim_sso/app/auth/handshake.py
"""
Three-step VATSIM SSO handshake: start -> redirect to VATSIM -> return.

Transitions return a HandshakeResult instead of raising; the web layer decides how
to render `result.error`.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Protocol

from vatsim_sso.app.auth.errors import HandshakeError, SSOError, UserCancelledError
from vatsim_sso.app.auth.session import (
    SessionStore,
    clear_sso_state,
    load_sso_state,
    save_sso_state,
)
from vatsim_sso.app.core.config import ProviderConfig
from vatsim_sso.app.core.logging import plugin_logger
from vatsim_sso.app.core.trace import auth_trace
from vatsim_sso.app.models import RemoteIdentity, RequestToken

log = plugin_logger(__name__)

# Query parameters VATSIM sends back to the return URL
PARAM_TOKEN = "oauth_token"
PARAM_VERIFIER = "oauth_verifier"
PARAM_CANCEL = "oauth_cancel"


class SignedRequestClient(Protocol):
    def request_token(self, return_url: str, allow_suspended: bool = False,
                      allow_inactive: bool = False) -> Optional[RequestToken]: ...
    def authorization_url(self, token: RequestToken) -> str: ...
    def exchange_verifier(self, token: RequestToken, verifier: str) -> Optional[RemoteIdentity]: ...


class HandshakeState(str, Enum):
    START = "start"
    AWAITING_RETURN = "awaiting_return"
    VERIFIED = "verified"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class HandshakeResult:
    state: HandshakeState
    redirect_url: Optional[str] = None
    identity: Optional[RemoteIdentity] = None
    error: Optional[SSOError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _failed(detail: str) -> HandshakeResult:
    log.warning("login failed: %s", detail)
    return HandshakeResult(HandshakeState.FAILED, error=HandshakeError(detail))


class HandshakeController:
    def __init__(self, config: ProviderConfig, client: SignedRequestClient, session: SessionStore):
        if not config.return_url:
            raise ValueError("ProviderConfig.return_url must be resolved before the handshake starts")
        self.config = config
        self.client = client
        self.session = session

    def start(self) -> HandshakeResult:
        """Get a request token, remember it server-side and point the browser at VATSIM."""
        auth_trace("handshake.start", return_url=self.config.return_url)
        token = self.client.request_token(
            self.config.return_url,
            self.config.allow_suspended,
            self.config.allow_inactive,
        )
        if token is None:
            return _failed("no request token returned by VATSIM")

        save_sso_state(self.session, token)
        return HandshakeResult(
            HandshakeState.AWAITING_RETURN,
            redirect_url=self.client.authorization_url(token),
        )

    def handle_return(self, query: Mapping[str, str]) -> HandshakeResult:
        """Process the browser coming back from VATSIM (or a plain visit to the login page)."""
        if PARAM_CANCEL in query:
            auth_trace("handshake.cancelled")
            return HandshakeResult(HandshakeState.CANCELLED, error=UserCancelledError())

        if PARAM_VERIFIER not in query:
            return self.start()

        stored = load_sso_state(self.session)
        if stored is None:
            # Nothing in flight for this browser (expired session, reused link): start over.
            auth_trace("handshake.no_stored_state")
            log.info("return without stored token, restarting handshake")
            return self.start()

        if query.get(PARAM_TOKEN) != stored.key:
            return _failed("token mismatch")

        verifier = query.get(PARAM_VERIFIER) or ""
        if not verifier:
            return _failed("missing verifier")

        try:
            identity = self.client.exchange_verifier(stored.as_token(), verifier)
        finally:
            # one-time use of tokens
            clear_sso_state(self.session)

        if identity is None:
            return _failed("verifier exchange failed")

        auth_trace("handshake.verified", cid=identity.external_id)
        return HandshakeResult(HandshakeState.VERIFIED, identity=identity)
