from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ...ldap.models import ConnectionSettings

CURRENT_SCHEMA_VERSION = 2

# Domain-level keys that older configs carried outside of the "user" section.
LEGACY_USER_KEYS = ("search_attr", "search_filter")


class UserSettings(BaseModel):
    """How application users map onto directory entries."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_dn: str = Field(default="")
    base_rdn: str = Field(default="")

    name_attr: str = Field(default="uid")
    realname_attr: str = Field(default="cn")
    email_attr: str = Field(default="mail")

    search_filter: str = Field(default="")
    search_attr: str = Field(default="uid")
    bind_attr: str = Field(default="")

    settable_attrs: list[str] = Field(default_factory=list)
    settable_password: bool = Field(default=False)
    set_needs_auth: bool = Field(default=False)

    @field_validator(
        "base_dn", "base_rdn", "name_attr", "realname_attr", "email_attr",
        "search_filter", "search_attr", "bind_attr",
    )
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("settable_attrs")
    @classmethod
    def _strip_list(cls, v: list[str]) -> list[str]:
        out: list[str] = []
        for x in v or []:
            s = (x or "").strip()
            if s and s not in out:
                out.append(s)
        return out


def upgrade_payload(payload: dict) -> dict:
    """Best-effort upgrade of a domain config read from disk.

    v1 -> v2: search_attr/search_filter moved from the domain level into "user".
    """
    if not isinstance(payload, dict):
        return payload

    payload = dict(payload)
    v = int(payload.get("schema_version") or 0)

    if v < 2:
        user = dict(payload.get("user") or {})
        for key in LEGACY_USER_KEYS:
            if key in payload:
                user.setdefault(key, payload.pop(key))
        payload["user"] = user
        payload["schema_version"] = 2

    return payload


class DomainSettings(BaseModel):
    """Complete configuration of one directory domain."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION)
    description: str = Field(default="")

    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    user: UserSettings = Field(default_factory=UserSettings)
    # group mapping is not interpreted; kept so existing configs still load
    group: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _upgrade_before_validate(cls, data: Any):
        if isinstance(data, dict):
            return upgrade_payload(data)
        return data
