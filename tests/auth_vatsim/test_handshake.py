"""Handshake state machine: start, cancel, token binding and one-time use."""

import pytest

from vatsim_sso.app.auth.errors import HandshakeError, UserCancelledError
from vatsim_sso.app.auth.handshake import HandshakeController, HandshakeState
from vatsim_sso.app.auth.session import SSO_SESSION, load_sso_state
from vatsim_sso.app.core.config import ProviderConfig

RETURN_URL = "http://testserver/auth/vatsim/login"


def _seed(session, key="tok1", secret="sec1"):
    session.set(SSO_SESSION, {"key": key, "secret": secret})


def test_start_stores_token_and_redirects(provider_config, fake_client, session):
    result = HandshakeController(provider_config, fake_client, session).start()

    assert result.state is HandshakeState.AWAITING_RETURN
    assert result.ok
    assert result.redirect_url == "https://sso.test/auth/pre_login/?oauth_token=tok1"
    assert session.get(SSO_SESSION) == {"key": "tok1", "secret": "sec1"}
    assert fake_client.token_calls == [(RETURN_URL, False, False)]


def test_start_passes_account_status_flags(fake_client, session):
    config = ProviderConfig(
        base_endpoint="https://sso.test/", consumer_key="k", consumer_secret="s",
        return_url=RETURN_URL, allow_suspended=True, allow_inactive=True,
    )
    HandshakeController(config, fake_client, session).start()
    assert fake_client.token_calls == [(RETURN_URL, True, True)]


def test_start_without_token_fails(provider_config, session, make_client):
    client = make_client(token=None)
    result = HandshakeController(provider_config, client, session).start()

    assert result.state is HandshakeState.FAILED
    assert isinstance(result.error, HandshakeError)
    assert SSO_SESSION not in session


def test_plain_visit_starts_handshake(provider_config, fake_client, session):
    result = HandshakeController(provider_config, fake_client, session).handle_return({})
    assert result.state is HandshakeState.AWAITING_RETURN
    assert len(fake_client.token_calls) == 1


def test_cancel_leaves_session_untouched(provider_config, fake_client, session):
    _seed(session)
    result = HandshakeController(provider_config, fake_client, session).handle_return({"oauth_cancel": "1"})

    assert result.state is HandshakeState.CANCELLED
    assert isinstance(result.error, UserCancelledError)
    assert session.get(SSO_SESSION) == {"key": "tok1", "secret": "sec1"}
    assert fake_client.exchange_calls == []
    assert fake_client.token_calls == []


def test_cancel_wins_over_verifier(provider_config, fake_client, session):
    _seed(session)
    result = HandshakeController(provider_config, fake_client, session).handle_return(
        {"oauth_cancel": "1", "oauth_token": "tok1", "oauth_verifier": "v1"}
    )
    assert result.state is HandshakeState.CANCELLED
    assert fake_client.exchange_calls == []


def test_return_without_stored_state_restarts(provider_config, fake_client, session):
    result = HandshakeController(provider_config, fake_client, session).handle_return(
        {"oauth_token": "tok0", "oauth_verifier": "v1"}
    )
    assert result.state is HandshakeState.AWAITING_RETURN
    assert result.error is None
    assert fake_client.exchange_calls == []
    assert load_sso_state(session).key == "tok1"


def test_partial_stored_state_counts_as_missing(provider_config, fake_client, session):
    session.set(SSO_SESSION, {"key": "tok1"})
    result = HandshakeController(provider_config, fake_client, session).handle_return(
        {"oauth_token": "tok1", "oauth_verifier": "v1"}
    )
    assert result.state is HandshakeState.AWAITING_RETURN
    assert fake_client.exchange_calls == []


def test_token_mismatch_fails_without_exchange(provider_config, fake_client, session):
    _seed(session)
    result = HandshakeController(provider_config, fake_client, session).handle_return(
        {"oauth_token": "someone-elses", "oauth_verifier": "v1"}
    )
    assert result.state is HandshakeState.FAILED
    assert isinstance(result.error, HandshakeError)
    assert result.error.detail == "token mismatch"
    assert fake_client.exchange_calls == []
    # not consumed
    assert load_sso_state(session) is not None


def test_missing_token_param_is_a_mismatch(provider_config, fake_client, session):
    _seed(session)
    result = HandshakeController(provider_config, fake_client, session).handle_return({"oauth_verifier": "v1"})
    assert result.error.detail == "token mismatch"


def test_empty_verifier_fails(provider_config, fake_client, session):
    _seed(session)
    result = HandshakeController(provider_config, fake_client, session).handle_return(
        {"oauth_token": "tok1", "oauth_verifier": ""}
    )
    assert result.state is HandshakeState.FAILED
    assert isinstance(result.error, HandshakeError)
    assert fake_client.exchange_calls == []


def test_successful_exchange_consumes_token(provider_config, fake_client, session, identity):
    _seed(session)
    controller = HandshakeController(provider_config, fake_client, session)
    result = controller.handle_return({"oauth_token": "tok1", "oauth_verifier": "v1"})

    assert result.state is HandshakeState.VERIFIED
    assert result.identity == identity
    assert len(fake_client.exchange_calls) == 1
    token, verifier = fake_client.exchange_calls[0]
    assert (token.token, token.token_secret, verifier) == ("tok1", "sec1", "v1")
    assert SSO_SESSION not in session

    # replaying the same return cannot exchange again
    again = controller.handle_return({"oauth_token": "tok1", "oauth_verifier": "v1"})
    assert again.state is not HandshakeState.VERIFIED
    assert len(fake_client.exchange_calls) == 1


def test_failed_exchange_still_consumes_token(provider_config, session, make_client):
    _seed(session)
    client = make_client(identity=None)
    result = HandshakeController(provider_config, client, session).handle_return(
        {"oauth_token": "tok1", "oauth_verifier": "v1"}
    )
    assert result.state is HandshakeState.FAILED
    assert isinstance(result.error, HandshakeError)
    assert SSO_SESSION not in session


def test_exchange_crash_still_consumes_token(provider_config, fake_client, session):
    def boom(token, verifier):
        raise RuntimeError("transport exploded")

    fake_client.exchange_verifier = boom
    _seed(session)
    with pytest.raises(RuntimeError):
        HandshakeController(provider_config, fake_client, session).handle_return(
            {"oauth_token": "tok1", "oauth_verifier": "v1"}
        )
    assert SSO_SESSION not in session


def test_controller_needs_return_url(fake_client, session):
    config = ProviderConfig(base_endpoint="https://sso.test/", consumer_key="k", consumer_secret="s")
    with pytest.raises(ValueError):
        HandshakeController(config, fake_client, session)
