# src/vatsim_sso/app/services/audit.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Protocol

log = logging.getLogger("vatsim_sso.audit")


@dataclass(frozen=True)
class AuditEntry:
    action: str
    info: str
    ts: int = field(default_factory=lambda: int(time.time()))


class AuditLog(Protocol):
    def record(self, action: str, info: str) -> None: ...


class InMemoryAuditLog:
    """Keeps entries in a list and mirrors them to the audit logger."""

    def __init__(self):
        self.entries: List[AuditEntry] = []

    def record(self, action: str, info: str) -> None:
        self.entries.append(AuditEntry(action, info))
        log.info("%s %s", action, info)
