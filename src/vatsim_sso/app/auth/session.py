# src/vatsim_sso/app/auth/session.py
"""
Per-browser session storage and the SSO token slot.

The browser only ever holds a signed session id; the session data (including the
request-token secret) lives server-side in `SessionRegistry`.
"""
from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

from itsdangerous import BadData, URLSafeTimedSerializer

from vatsim_sso.app.models import RequestToken

log = logging.getLogger(__name__)

# Well-known slot for the in-flight login attempt, e.g. session["oauth"]
SSO_SESSION = "oauth"

# seconds a session (and its signed cookie) survives without a request
SESSION_MAX_AGE = 3600


class SessionStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...
    def set(self, key: str, value: Any) -> None: ...
    def delete(self, key: str) -> None: ...


class MemorySession:
    """Dict-backed SessionStore. One instance per browser session."""

    def __init__(self, sid: str = "", data: Optional[Dict[str, Any]] = None):
        self.sid = sid
        self._data: Dict[str, Any] = dict(data or {})
        self.last_seen = 0.0

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    @property
    def empty(self) -> bool:
        return not self._data

    def copy_to(self, sid: str) -> "MemorySession":
        return MemorySession(sid, self._data)


class SessionRegistry:
    """
    Server-side session map keyed by a random id. The id travels in a cookie
    signed (and timestamped) with itsdangerous so it cannot be forged or replayed
    past `max_age`.

    A session is only registered by `save()`, and only while it holds data, so
    requests that never get a cookie back leave nothing behind. Sessions idle for
    longer than `max_age` are pruned on the next `load()`.
    """

    def __init__(
        self,
        secret: str,
        salt: str = "vatsim-sso-session",
        max_age: int = SESSION_MAX_AGE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._signer = URLSafeTimedSerializer(secret, salt=salt)
        self.max_age = max_age
        self._clock = clock
        self._sessions: Dict[str, MemorySession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def sign(self, session: MemorySession) -> str:
        return self._signer.dumps(session.sid)

    def _unsign(self, raw: str) -> Optional[str]:
        try:
            return self._signer.loads(raw, max_age=self.max_age)
        except BadData:
            # forged, tampered or expired
            return None

    def _prune(self, now: float) -> None:
        stale = [sid for sid, s in self._sessions.items() if now - s.last_seen > self.max_age]
        for sid in stale:
            del self._sessions[sid]
        if stale:
            log.debug("pruned %d idle sessions", len(stale))

    def load(self, raw_cookie: Optional[str]) -> MemorySession:
        """Return the session named by the cookie, or a fresh unregistered one if missing/invalid/expired."""
        sid = self._unsign(raw_cookie) if raw_cookie else None
        now = self._clock()
        with self._lock:
            self._prune(now)
            session = self._sessions.get(sid) if sid else None
            if session is not None:
                session.last_seen = now
                return session
        return MemorySession(secrets.token_urlsafe(24))

    def save(self, session: MemorySession) -> bool:
        """Register a session that holds data; forget an empty one. True if a cookie should be sent."""
        with self._lock:
            if session.empty:
                self._sessions.pop(session.sid, None)
                return False
            session.last_seen = self._clock()
            self._sessions[session.sid] = session
            return True

    def rotate(self, session: MemorySession) -> MemorySession:
        """Same data under a new id; the old id stops resolving. Call `save()` on the result."""
        fresh = session.copy_to(secrets.token_urlsafe(24))
        self.drop(session)
        return fresh

    def drop(self, session: MemorySession) -> None:
        with self._lock:
            self._sessions.pop(session.sid, None)


# ------------------------
# SSO slot helpers
# ------------------------
@dataclass(frozen=True)
class SSOSessionState:
    key: str
    secret: str

    def as_token(self) -> RequestToken:
        return RequestToken(token=self.key, token_secret=self.secret)


def save_sso_state(session: SessionStore, token: RequestToken) -> SSOSessionState:
    state = SSOSessionState(key=token.token, secret=token.token_secret)
    session.set(SSO_SESSION, {"key": state.key, "secret": state.secret})
    return state


def load_sso_state(session: SessionStore) -> Optional[SSOSessionState]:
    """Stored state, or None unless both key and secret are present."""
    raw = session.get(SSO_SESSION)
    if not isinstance(raw, dict):
        return None
    key, secret = raw.get("key"), raw.get("secret")
    if not key or not secret:
        return None
    return SSOSessionState(key=str(key), secret=str(secret))


def clear_sso_state(session: SessionStore) -> None:
    session.delete(SSO_SESSION)
