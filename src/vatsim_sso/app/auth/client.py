# src/vatsim_sso/app/auth/client.py
"""
Signed-request client for the VATSIM SSO (OAuth 1.0a) API.

Signing (HMAC-SHA1 / RSA-SHA1) and transport are delegated to authlib's OAuth1
client on top of httpx. Every public method returns None on failure; the reason is
logged here so callers only have to branch on the value.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import OAuth1Client
from authlib.oauth1 import SIGNATURE_HMAC_SHA1, SIGNATURE_RSA_SHA1, SIGNATURE_TYPE_BODY

from vatsim_sso.app.core.config import ProviderConfig, SigningMethod
from vatsim_sso.app.core.trace import auth_trace
from vatsim_sso.app.models import RemoteIdentity, RequestToken

log = logging.getLogger(__name__)

LOGIN_TOKEN_PATH = "api/login_token"
LOGIN_RETURN_PATH = "api/login_return"
PRE_LOGIN_PATH = "auth/pre_login/"

_SIGNATURES = {
    SigningMethod.HMAC: SIGNATURE_HMAC_SHA1,
    SigningMethod.RSA: SIGNATURE_RSA_SHA1,
}


class VatsimSSOClient:
    def __init__(self, config: ProviderConfig, timeout: float = 15.0):
        self.config = config
        self.timeout = timeout
        self.base = config.base_endpoint if config.base_endpoint.endswith("/") else config.base_endpoint + "/"

    def _session(self, **oauth: Any) -> OAuth1Client:
        cfg = self.config
        rsa = cfg.signing_method is SigningMethod.RSA
        return OAuth1Client(
            cfg.consumer_key,
            client_secret=None if rsa else cfg.consumer_secret,
            rsa_key=cfg.certificate if rsa else None,
            signature_method=_SIGNATURES[cfg.signing_method],
            # all oauth_* params (incl. oauth_allow_*) travel in the signed form body
            signature_type=SIGNATURE_TYPE_BODY,
            timeout=self.timeout,
            **oauth,
        )

    def _post(self, client: OAuth1Client, path: str, data: Dict[str, str]) -> Optional[Dict[str, Any]]:
        url = self.base + path
        try:
            r = client.post(url, data=data, headers={"Accept": "application/json"})
        except httpx.HTTPError as ex:
            log.warning("VATSIM SSO request to %s failed: %s", path, ex)
            return None
        except (AuthlibBaseError, ValueError) as ex:
            # signing failed before anything was sent (bad RSA key, rejected params)
            log.error("VATSIM SSO request to %s could not be signed: %s", path, ex)
            return None
        if r.status_code != 200:
            log.warning("VATSIM SSO %s returned HTTP %s: %s", path, r.status_code, r.text[:240])
            return None
        try:
            body = r.json()
        except ValueError:
            log.warning("VATSIM SSO %s returned a non-JSON body: %s", path, r.text[:240])
            return None
        if not isinstance(body, dict):
            log.warning("VATSIM SSO %s returned unexpected payload type %s", path, type(body).__name__)
            return None

        request = body.get("request") or {}
        if request.get("result") != "success":
            log.warning("VATSIM SSO %s refused: %s", path, request.get("message") or request)
            return None
        return body

    def request_token(
        self,
        return_url: str,
        allow_suspended: bool = False,
        allow_inactive: bool = False,
    ) -> Optional[RequestToken]:
        """Ask VATSIM for a request token bound to `return_url`."""
        auth_trace("sso.request_token.begin", return_url=return_url,
                   allow_suspended=allow_suspended, allow_inactive=allow_inactive)
        data = {
            "oauth_allow_suspended": "true" if allow_suspended else "false",
            "oauth_allow_inactive": "true" if allow_inactive else "false",
        }
        with self._session(redirect_uri=return_url) as client:
            body = self._post(client, LOGIN_TOKEN_PATH, data)
        if body is None:
            return None

        token = body.get("token") or {}
        key, secret = token.get("oauth_token"), token.get("oauth_token_secret")
        if not key or not secret:
            log.warning("VATSIM SSO token response missing oauth_token/oauth_token_secret")
            return None
        auth_trace("sso.request_token.ok")
        return RequestToken(token=str(key), token_secret=str(secret))

    def authorization_url(self, token: RequestToken) -> str:
        """Where the browser goes to log in at VATSIM."""
        return f"{self.base}{PRE_LOGIN_PATH}?{urlencode({'oauth_token': token.token})}"

    def exchange_verifier(self, token: RequestToken, verifier: str) -> Optional[RemoteIdentity]:
        """Trade the request token + verifier for the member's details."""
        auth_trace("sso.exchange.begin")
        with self._session(token=token.token, token_secret=token.token_secret, verifier=verifier) as client:
            body = self._post(client, LOGIN_RETURN_PATH, {})
        if body is None:
            return None

        user = body.get("user")
        if not isinstance(user, dict) or not user.get("id"):
            log.warning("VATSIM SSO login_return response has no user id")
            return None
        country = user.get("country") or {}
        identity = RemoteIdentity(
            external_id=str(user["id"]),
            email=(user.get("email") or "").strip(),
            first_name=user.get("name_first") or "",
            last_name=user.get("name_last") or "",
            country_code=(country.get("code") if isinstance(country, dict) else "") or "",
        )
        auth_trace("sso.exchange.ok", cid=identity.external_id)
        return identity
