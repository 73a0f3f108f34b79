# src/vatsim_sso/app/models.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class RequestToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    token_secret: str


class RemoteIdentity(BaseModel):
    """Identity returned by VATSIM after a verifier exchange. Untrusted until reconciled."""
    model_config = ConfigDict(frozen=True)

    external_id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    country_code: str = ""


class StagedProfile(BaseModel):
    """Profile fields applied once, right after a first-login account is created."""
    model_config = ConfigDict(frozen=True)

    email: str
    first_name: str = ""
    last_name: str = ""
    country: str = ""


class LocalAccount(BaseModel):
    id: int
    username: str
    auth: str = "vatsim"
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    country: str = ""
    deleted: bool = False
    suspended: bool = False
    host_id: int = 1
    # externally authenticated accounts never carry a local password
    password_hash: Optional[str] = None

    @property
    def fully_set_up(self) -> bool:
        return bool(self.email and self.first_name and self.last_name)
