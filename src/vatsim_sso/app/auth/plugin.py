# src/vatsim_sso/app/auth/plugin.py
"""VATSIM SSO auth plugin: the login page hook plus the capabilities a host app asks an auth plugin for."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from vatsim_sso.app.auth.errors import SSOError
from vatsim_sso.app.auth.handshake import HandshakeController, HandshakeState, SignedRequestClient
from vatsim_sso.app.auth.internal import SessionEstablisher
from vatsim_sso.app.auth.session import SessionStore
from vatsim_sso.app.core.config import ProviderConfig
from vatsim_sso.app.core.logging import plugin_logger
from vatsim_sso.app.models import LocalAccount
from vatsim_sso.app.services.audit import AuditLog
from vatsim_sso.app.services.identity import AUTH_TYPE, IdentityReconciler, update_guard
from vatsim_sso.app.services.users import UserStore

log = plugin_logger(__name__)


@dataclass(frozen=True)
class LoginOutcome:
    """One of: redirect to VATSIM, logged in (account + redirect), or error."""
    state: HandshakeState
    redirect_url: Optional[str] = None
    account: Optional[LocalAccount] = None
    error: Optional[SSOError] = None


class VatsimAuthPlugin:
    name = "VATSIM SSO"
    auth_type = AUTH_TYPE
    error_log_tag = "[AUTH VATSIM]"

    def __init__(
        self,
        config: ProviderConfig,
        client: SignedRequestClient,
        users: UserStore,
        audit: AuditLog,
        *,
        host_id: int = 1,
        base_url: str = "http://localhost:8000",
    ):
        self.config = config
        self.client = client
        self.users = users
        self.audit = audit
        self.host_id = host_id
        self.base_url = base_url

    # ---- capabilities ----
    def prevent_local_passwords(self) -> bool:
        return True

    def can_change_password(self) -> bool:
        return False

    def is_internal(self) -> bool:
        return False

    def user_login(self, username: str, password: Optional[str] = None) -> bool:
        """True when the account exists locally; the password is never checked here."""
        return self.users.get_by_username(username, self.host_id, include_deleted=True) is not None

    def user_update(self, old: LocalAccount, new: LocalAccount) -> bool:
        return update_guard(old, new)

    # ---- login page hook ----
    def login_hook(
        self,
        session: SessionStore,
        query: Mapping[str, str],
        return_url: Optional[str] = None,
    ) -> LoginOutcome:
        config = self.config
        if return_url and not config.return_url:
            config = config.with_return_url(return_url)

        handshake = HandshakeController(config, self.client, session)
        result = handshake.handle_return(query)
        if result.state is not HandshakeState.VERIFIED:
            return LoginOutcome(result.state, redirect_url=result.redirect_url, error=result.error)

        establisher = SessionEstablisher(self.users, session, host_id=self.host_id, base_url=self.base_url)
        reconciler = IdentityReconciler(
            self.users,
            establisher,
            self.audit,
            host_id=self.host_id,
            allow_account_creation=config.allow_account_creation,
        )
        try:
            account = reconciler.reconcile(result.identity)
        except SSOError as ex:
            log.warning("login of %s refused: %s", result.identity.external_id, ex.detail)
            return LoginOutcome(HandshakeState.FAILED, error=ex)

        return LoginOutcome(
            HandshakeState.VERIFIED,
            redirect_url=establisher.redirect_target(account),
            account=account,
        )
