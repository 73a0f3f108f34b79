# tests/conftest.py
from __future__ import annotations

from typing import List, Optional, Tuple

import pytest

from vatsim_sso.app.auth.internal import SessionEstablisher
from vatsim_sso.app.auth.session import MemorySession
from vatsim_sso.app.core.config import ProviderConfig
from vatsim_sso.app.models import RemoteIdentity, RequestToken
from vatsim_sso.app.services.audit import InMemoryAuditLog
from vatsim_sso.app.services.identity import IdentityReconciler
from vatsim_sso.app.services.users import InMemoryUserStore

SSO_BASE = "https://sso.test/"
RETURN_URL = "http://testserver/auth/vatsim/login"
BASE_URL = "http://testserver"
HOST_ID = 1


class FakeSSOClient:
    """Stands in for VatsimSSOClient; records every call."""

    def __init__(
        self,
        token: Optional[RequestToken] = RequestToken(token="tok1", token_secret="sec1"),
        identity: Optional[RemoteIdentity] = None,
    ):
        self.token = token
        self.identity = identity
        self.token_calls: List[Tuple[str, bool, bool]] = []
        self.exchange_calls: List[Tuple[RequestToken, str]] = []

    def request_token(self, return_url, allow_suspended=False, allow_inactive=False):
        self.token_calls.append((return_url, allow_suspended, allow_inactive))
        return self.token

    def authorization_url(self, token):
        return f"{SSO_BASE}auth/pre_login/?oauth_token={token.token}"

    def exchange_verifier(self, token, verifier):
        self.exchange_calls.append((token, verifier))
        return self.identity


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        base_endpoint=SSO_BASE,
        consumer_key="key",
        consumer_secret="secret",
        return_url=RETURN_URL,
    )


@pytest.fixture
def identity() -> RemoteIdentity:
    return RemoteIdentity(
        external_id="800123",
        email="p@vatsim.example",
        first_name="Pat",
        last_name="Pilot",
        country_code="GB",
    )


@pytest.fixture
def fake_client(identity) -> FakeSSOClient:
    return FakeSSOClient(identity=identity)


@pytest.fixture
def session() -> MemorySession:
    return MemorySession("sid-test")


@pytest.fixture
def users() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def audit() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def establisher(users, session) -> SessionEstablisher:
    return SessionEstablisher(users, session, host_id=HOST_ID, base_url=BASE_URL)


@pytest.fixture
def reconciler(users, establisher, audit) -> IdentityReconciler:
    return IdentityReconciler(users, establisher, audit, host_id=HOST_ID)


@pytest.fixture
def make_client():
    return FakeSSOClient
