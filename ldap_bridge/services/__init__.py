"""Application service layer.

Stable import surface for routers:
    from ldap_bridge.services import ...
"""

from .auth import AuthResult, LDAPAuthProvider, LDAPAuthSession
from .settings import DomainSettings, UserSettings, load_domains

__all__ = [
    "AuthResult",
    "LDAPAuthProvider",
    "LDAPAuthSession",
    "DomainSettings",
    "UserSettings",
    "load_domains",
]
