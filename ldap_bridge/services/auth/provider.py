from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional, Sequence

from ldap3.utils.dn import escape_rdn

from ...ldap.client import DirectoryClient
from ...ldap.exceptions import DirectoryError
from ...ldap.models import Entry
from ...ldap.utils import entry_values
from ..settings.schema import DomainSettings, UserSettings
from .backend import AuthResult
from .session import (
    ATTR_NEW_PASSWORD,
    ATTR_NEW_PASSWORD_CONFIRM,
    LDAPAuthSession,
    PasswordChangeAttributes,
)

log = logging.getLogger(__name__)

USER_ROLES = ("name", "email", "realname")


class LDAPAuthProvider:
    """Maps application users onto entries of one directory domain.

    Resolves usernames to DNs (and back), verifies passwords by binding and
    hands out LDAPAuthSession objects for attribute access.
    """

    def __init__(self, domain: str, cfg: DomainSettings, client: Optional[DirectoryClient] = None) -> None:
        self.domain = domain
        self.cfg = cfg
        self.client = client if client is not None else DirectoryClient(cfg.connection)
        # one logical request at a time against self.client
        self.lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<LDAPAuthProvider domain={self.domain!r}>"

    @property
    def user_cfg(self) -> UserSettings:
        return self.cfg.user

    # ---- descriptive surface ----------------------------------------------

    def get_description(self) -> str:
        return self.cfg.description or f"LDAP ({self.domain})"

    def get_authentication_fields(self, provider_user_id: Optional[str] = None) -> dict[str, dict[str, Any]]:
        """Login form schema. A known user gets a hidden, pre-filled username."""
        username = self.reverse_lookup_ldap_user(provider_user_id) if provider_user_id else None
        if username is not None:
            username_field = {"type": "hidden", "label": "Username", "value": username}
        else:
            username_field = {"type": "string", "label": "Username", "required": True}
        return {
            "username": username_field,
            "password": {"type": "password", "label": "Password", "required": True, "sensitive": True},
        }

    def get_attribute_fields(self, provider_user_id: Optional[str] = None) -> dict[str, dict[str, Any]]:
        fields: dict[str, dict[str, Any]] = {}
        if self.user_cfg.settable_password:
            fields[ATTR_NEW_PASSWORD] = {"type": "password", "label": "New password", "required": False}
            fields[ATTR_NEW_PASSWORD_CONFIRM] = {
                "type": "password",
                "label": "Retype new password",
                "required": False,
            }
        for attr in self.user_cfg.settable_attrs:
            fields[attr] = {"type": "string", "label": attr, "required": False}
        return fields

    def is_settable(self, attr: str) -> bool:
        if attr in (ATTR_NEW_PASSWORD, ATTR_NEW_PASSWORD_CONFIRM):
            return self.user_cfg.settable_password
        wanted = attr.lower()
        return any(a.lower() == wanted for a in self.user_cfg.settable_attrs)

    def map_user_attribute(self, role: str) -> Optional[str]:
        if role == "name":
            return self.user_cfg.name_attr
        if role == "email":
            return self.user_cfg.email_attr
        if role == "realname":
            return self.user_cfg.realname_attr
        return None

    # ---- authentication ----------------------------------------------------

    def authenticate(self, username: str, password: str) -> Optional[LDAPAuthSession]:
        """Session for username when password binds; None otherwise.

        Directory failures while resolving the user propagate as DirectoryError.
        """
        if not username or not password:
            return None
        dn = self.lookup_ldap_user(username)
        if not dn:
            log.info("No unique directory entry for %r in domain %s", username, self.domain)
            return None
        if not self.client.bind_as(dn, password):
            return None
        return self.new_session(dn, dn, password)

    def authenticate_values(self, values: Mapping[str, Any]) -> AuthResult:
        """Form-level wrapper around authenticate()."""
        username = str(values.get("username") or "").strip()
        password = str(values.get("password") or "")
        if not username or not password:
            return AuthResult(success=False, error_message="Enter username and password.")

        try:
            session = self.authenticate(username, password)
        except DirectoryError as e:
            log.error("Directory error while authenticating %r in domain %s: %s", username, self.domain, e)
            return AuthResult(
                success=False,
                error_message=f"Could not look up user information in domain {self.domain}.",
            )

        if session is None:
            return AuthResult(success=False, error_message="Invalid username or password.")

        log.info("User %r authenticated in domain %s as %r", username, self.domain, session.dn)
        return AuthResult(
            success=True,
            session=session,
            user_data={"username": username, "dn": session.dn, "domain": self.domain},
        )

    def new_session(
        self,
        dn: str,
        bind_dn: Optional[str] = None,
        bind_password: Optional[str] = None,
    ) -> LDAPAuthSession:
        extra = PasswordChangeAttributes() if self.user_cfg.settable_password else None
        return LDAPAuthSession(self, dn, bind_dn, bind_password, extra_attributes=extra)

    def bind_for(self, dn: str, password: Optional[str] = None) -> bool:
        if self.client.is_bound_for(dn):
            return True
        if password:
            return self.client.bind_as(dn, password)
        return self.client.bind()

    def can_sudo(self, provider_user_id: str) -> bool:
        if self.user_cfg.set_needs_auth:
            return False
        return self.bind_for(provider_user_id)

    def sudo(self, provider_user_id: str) -> Optional[LDAPAuthSession]:
        """Credential-less session through the system bind."""
        if self.user_cfg.set_needs_auth:
            return None
        if not self.bind_for(provider_user_id):
            return None
        return self.new_session(provider_user_id)

    # ---- user lookup -------------------------------------------------------

    def get_user_base_dn(self) -> str:
        u = self.user_cfg
        if u.base_dn:
            return u.base_dn
        base = self.cfg.connection.base_dn
        if u.base_rdn and base:
            return f"{u.base_rdn},{base}"
        return u.base_rdn or base

    def lookup_ldap_user(self, username: str) -> Optional[str]:
        """DN for username, or None when there is no unique match."""
        bind_attr = self.user_cfg.bind_attr
        if bind_attr:
            rdn = f"{bind_attr}={escape_rdn(username)}"
            base = self.get_user_base_dn()
            return f"{rdn},{base}" if base else rdn

        entry = self.search_ldap_user({self.user_cfg.search_attr: username}, ["dn"])
        values = entry_values(entry, "dn")
        return values[0] if values else None

    def reverse_lookup_ldap_user(self, dn: str) -> Optional[str]:
        """Username for dn, or None."""
        bind_attr = self.user_cfg.bind_attr
        if bind_attr:
            values = entry_values(self.client.parse_dn(dn), bind_attr)
            if values:
                return values[0]
            attr = bind_attr
        else:
            attr = self.user_cfg.search_attr

        values = entry_values(self.get_ldap_user(dn, [attr]), attr)
        return values[0] if values else None

    def _user_filters(self, filters: Optional[Mapping[str, Any]] = None) -> list:
        out: list = []
        if filters:
            out.append(dict(filters))
        if self.user_cfg.search_filter:
            out.append(self.user_cfg.search_filter)
        return out

    def get_ldap_user(self, dn: str, attributes: Optional[Sequence[str]] = None) -> Optional[Entry]:
        return self.client.read(dn, attributes, self._user_filters())

    def search_ldap_user(
        self,
        filters: Mapping[str, Any],
        attributes: Optional[Sequence[str]] = None,
    ) -> Optional[Entry]:
        users = self.search_ldap_users(filters, attributes)
        if users is None:
            return None
        if len(users) > 1:
            log.warning(
                "Ambiguous user lookup in domain %s: %d entries match %r",
                self.domain, len(users), dict(filters),
            )
            return None
        return users[0] if users else None

    def search_ldap_users(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        attributes: Optional[Sequence[str]] = None,
    ) -> Optional[list[Entry]]:
        return self.client.search(attributes, self._user_filters(filters), self.get_user_base_dn() or None)

    # ---- writes ------------------------------------------------------------

    def modify_ldap_user(self, dn: str, attributes: Mapping[str, Optional[Sequence[str]]]) -> bool:
        return self.client.modify(dn, attributes)

    def modify_ldap_password(self, dn: str, password: str) -> bool:
        ok = self.client.modify_password(dn, password)
        if ok:
            log.info("Password changed for %r in domain %s", dn, self.domain)
        else:
            log.warning("Password change for %r in domain %s failed", dn, self.domain)
        return ok
