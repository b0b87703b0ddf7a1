from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .session import LDAPAuthSession


@dataclass
class AuthResult:
    """Outcome of a login attempt."""
    success: bool
    session: "LDAPAuthSession | None" = None
    user_data: dict | None = None
    error_message: str = ""
