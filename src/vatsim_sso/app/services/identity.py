# Maps a verified VATSIM identity -> local account. Creates it on first login when allowed.
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from vatsim_sso.app.auth.errors import AccountCreationDisabledError, MissingEmailError
from vatsim_sso.app.auth.internal import SessionEstablisher
from vatsim_sso.app.core.logging import plugin_logger
from vatsim_sso.app.core.trace import auth_trace
from vatsim_sso.app.models import LocalAccount, RemoteIdentity, StagedProfile
from vatsim_sso.app.services.audit import AuditLog
from vatsim_sso.app.services.users import UserStore

log = plugin_logger(__name__)

AUTH_TYPE = "vatsim"
AUDIT_ACTION = "auth_vatsim"


@dataclass(frozen=True)
class Existing:
    account: LocalAccount


@dataclass(frozen=True)
class Created:
    account: LocalAccount
    staged: StagedProfile


Resolution = Union[Existing, Created]


def update_guard(old: LocalAccount, new: LocalAccount) -> bool:
    """Reject any profile update that changes the email of a VATSIM account."""
    return old.email == new.email


class IdentityReconciler:
    def __init__(
        self,
        users: UserStore,
        establisher: SessionEstablisher,
        audit: AuditLog,
        *,
        host_id: int,
        allow_account_creation: bool = True,
    ):
        self.users = users
        self.establisher = establisher
        self.audit = audit
        self.host_id = host_id
        self.allow_account_creation = allow_account_creation

    def resolve(self, identity: RemoteIdentity) -> Resolution:
        """
        Find the local account for `identity` by CID (never by email), or create a
        bare one. Raises MissingEmailError / AccountCreationDisabledError.
        """
        if not identity.email:
            raise MissingEmailError(f"VATSIM returned no email for {identity.external_id}")

        account = self.users.get_by_username(identity.external_id, self.host_id)
        if account is not None:
            return Existing(account)

        if not self.allow_account_creation:
            raise AccountCreationDisabledError(f"no account for {identity.external_id} and creation is disabled")

        staged = StagedProfile(
            email=identity.email,
            first_name=identity.first_name,
            last_name=identity.last_name,
            country=identity.country_code,
        )
        account = self.users.create(identity.external_id, AUTH_TYPE, self.host_id)
        log.info("created account %s", account.username)
        auth_trace("identity.created", username=account.username)
        return Created(account, staged)

    def reconcile(self, identity: RemoteIdentity) -> LocalAccount:
        resolution = self.resolve(identity)
        username = resolution.account.username

        self.audit.record(AUDIT_ACTION, f"{username}/{identity.email}")

        account = self.establisher.complete_login(username)

        # prefill profile on first login only
        if isinstance(resolution, Created):
            account = self.users.update(account.model_copy(update=resolution.staged.model_dump()))
        return account
