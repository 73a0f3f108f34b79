# src/vatsim_sso/app/services/users.py
# Local user storage. In-memory by default; a host app plugs in its own UserStore.
from __future__ import annotations

import itertools
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from vatsim_sso.app.auth.errors import ProfileUpdateRejectedError
from vatsim_sso.app.models import LocalAccount

UpdateGuard = Callable[[LocalAccount, LocalAccount], bool]

# identity columns; a profile update never rewrites these
PROTECTED_FIELDS = frozenset({"id", "username", "host_id"})


class UserStore(Protocol):
    def get_by_username(self, username: str, host_id: int, *, include_deleted: bool = False) -> Optional[LocalAccount]: ...
    def create(self, username: str, auth: str, host_id: int) -> LocalAccount: ...
    def update(self, account: LocalAccount) -> LocalAccount: ...
    def update_profile(self, username: str, host_id: int, changes: Mapping[str, Any],
                       guard: Optional[UpdateGuard] = None) -> LocalAccount: ...


class InMemoryUserStore:
    def __init__(self):
        self._rows: Dict[int, LocalAccount] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def all(self) -> List[LocalAccount]:
        with self._lock:
            return list(self._rows.values())

    def add(self, account: LocalAccount) -> LocalAccount:
        """Seed a row as-is (host-side provisioning, tests)."""
        with self._lock:
            row = account.model_copy(update={"id": next(self._ids)})
            self._rows[row.id] = row
            return row

    def get_by_username(self, username: str, host_id: int, *, include_deleted: bool = False) -> Optional[LocalAccount]:
        with self._lock:
            rows = list(self._rows.values())
        for row in rows:
            if row.username == username and row.host_id == host_id and (include_deleted or not row.deleted):
                return row
        return None

    def create(self, username: str, auth: str, host_id: int) -> LocalAccount:
        """Bare, passwordless account; profile fields are filled in later."""
        return self.add(LocalAccount(id=0, username=username, auth=auth, host_id=host_id))

    def update(self, account: LocalAccount) -> LocalAccount:
        with self._lock:
            if account.id not in self._rows:
                raise KeyError(f"no user with id {account.id}")
            self._rows[account.id] = account
            return account

    def update_profile(self, username: str, host_id: int, changes: Mapping[str, Any],
                       guard: Optional[UpdateGuard] = None) -> LocalAccount:
        old = self.get_by_username(username, host_id)
        if old is None:
            raise KeyError(f"no user {username!r} on host {host_id}")
        protected = PROTECTED_FIELDS.intersection(changes)
        if protected:
            raise ValueError(f"profile update may not change {', '.join(sorted(protected))}")
        new = old.model_copy(update=dict(changes))
        if guard is not None and not guard(old, new):
            raise ProfileUpdateRejectedError(f"update of {username} rejected by auth plugin")
        return self.update(new)
