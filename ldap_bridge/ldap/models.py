from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Normalized directory entry: attribute name -> values (+ optional "dn").
Entry = Dict[str, List[str]]

PasswordMode = Literal["exop", "ad", "replace"]


class ConnectionSettings(BaseModel):
    """Connection options of one directory domain."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    uri: str = Field(default="")
    proto: Optional[str] = Field(default=None)
    host: str = Field(default="", max_length=255)
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    version: Literal[2, 3] = Field(default=3)
    referrals: bool = Field(default=True)

    tls: bool = Field(default=False)
    starttls: bool = Field(default=False)
    tls_ca_file: str = Field(default="")
    tls_ca_dir: str = Field(default="")
    tls_cert_file: str = Field(default="")
    tls_certkey_key: str = Field(default="")
    tls_validate: bool = Field(default=True)
    # seconds; None keeps the transport default
    timeout: Optional[float] = Field(default=None, gt=0)

    base_dn: str = Field(default="")
    bind_dn: str = Field(default="")
    bind_rdn: str = Field(default="")
    bind_pass: str = Field(default="", repr=False)  # plaintext; never logged

    password_mode: PasswordMode = Field(default="exop")
    password_attr: str = Field(default="userPassword")

    @field_validator(
        "uri", "host", "tls_ca_file", "tls_ca_dir", "tls_cert_file",
        "tls_certkey_key", "base_dn", "bind_dn", "bind_rdn", "password_attr",
    )
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("proto")
    @classmethod
    def _validate_proto(cls, v: Optional[str]) -> Optional[str]:
        s = (v or "").strip().lower()
        if not s:
            return None
        if s not in ("ldap", "ldaps", "ldapi"):
            raise ValueError(f"Unsupported protocol {s!r} (expected ldap, ldaps or ldapi).")
        return s

    @property
    def bind_principal(self) -> str:
        """Service bind DN: bind_dn, else bind_rdn below base_dn."""
        if self.bind_dn:
            return self.bind_dn
        if self.bind_rdn:
            return f"{self.bind_rdn},{self.base_dn}" if self.base_dn else self.bind_rdn
        return ""


class BindKind(str, Enum):
    UNBOUND = "unbound"
    ANONYMOUS = "anonymous"
    BOUND = "bound"


@dataclass(frozen=True)
class BindState:
    kind: BindKind = BindKind.UNBOUND
    dn: Optional[str] = None
    # established through DirectoryClient.bind() with the configured identity
    system: bool = False

    @classmethod
    def unbound(cls) -> "BindState":
        return cls()

    @classmethod
    def anonymous(cls, dn: Optional[str] = None, *, system: bool = False) -> "BindState":
        return cls(BindKind.ANONYMOUS, dn or None, system)

    @classmethod
    def bound_as(cls, dn: str, *, system: bool = False) -> "BindState":
        return cls(BindKind.BOUND, dn, system)

    @property
    def is_bound(self) -> bool:
        return self.kind is not BindKind.UNBOUND
