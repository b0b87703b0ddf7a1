"""Directory-backed authentication: provider, sessions and login results."""

from .backend import AuthResult
from .provider import LDAPAuthProvider
from .session import (
    ATTR_NEW_PASSWORD,
    ATTR_NEW_PASSWORD_CONFIRM,
    LDAPAuthSession,
    PasswordChangeAttributes,
)

__all__ = [
    "AuthResult",
    "LDAPAuthProvider",
    "LDAPAuthSession",
    "PasswordChangeAttributes",
    "ATTR_NEW_PASSWORD",
    "ATTR_NEW_PASSWORD_CONFIRM",
]
