from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Sequence

from ...ldap.exceptions import BindError, PasswordConfirmationMismatch
from ...ldap.utils import entry_values

if TYPE_CHECKING:
    from .provider import LDAPAuthProvider

log = logging.getLogger(__name__)

ATTR_NEW_PASSWORD = "new_password"
ATTR_NEW_PASSWORD_CONFIRM = "new_password_confirm"


class PasswordChangeAttributes:
    """Pseudo-attributes for a two-step password change.

    Writing new_password stages the value in memory; writing
    new_password_confirm compares it with the stage and, on a match,
    commits the change through the provider. The stage is dropped either way.
    """

    names = (ATTR_NEW_PASSWORD, ATTR_NEW_PASSWORD_CONFIRM)

    def __init__(self) -> None:
        self._staged: Optional[str] = None

    def __repr__(self) -> str:
        return f"<PasswordChangeAttributes staged={self._staged is not None}>"

    @property
    def staged(self) -> bool:
        return self._staged is not None

    def handles(self, attr: str) -> bool:
        return attr in self.names

    def get(self, attr: str) -> list[str]:
        return []

    def set(self, session: "LDAPAuthSession", attr: str, values: Sequence[str]) -> bool:
        if attr == ATTR_NEW_PASSWORD:
            if values:
                self._staged = values[0]
            return True

        if not values:
            return True
        staged, self._staged = self._staged, None
        if staged is None or staged != values[0]:
            log.info("Password confirmation mismatch for %r", session.dn)
            raise PasswordConfirmationMismatch("New password and confirmation differ", dn=session.dn)
        return session.provider.modify_ldap_password(session.dn, staged)

    def clear(self) -> None:
        self._staged = None


class LDAPAuthSession:
    """Attribute access window for one resolved DN.

    With stored credentials every access rebinds as bind_dn; without them the
    provider falls back to the system bind (sudo sessions).
    """

    def __init__(
        self,
        provider: "LDAPAuthProvider",
        dn: str,
        bind_dn: Optional[str] = None,
        bind_password: Optional[str] = None,
        extra_attributes: Optional[PasswordChangeAttributes] = None,
    ) -> None:
        self.provider = provider
        self.dn = dn
        self.bind_dn = bind_dn
        self._bind_password = bind_password
        self.extra_attributes = extra_attributes

    def __repr__(self) -> str:
        return f"<LDAPAuthSession dn={self.dn!r} credentials={self.has_credentials}>"

    def __enter__(self) -> "LDAPAuthSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def has_credentials(self) -> bool:
        return bool(self.bind_dn and self._bind_password)

    def get_user_id(self) -> str:
        return self.dn

    def ensure_bound(self) -> bool:
        if self.bind_dn and self._bind_password:
            return self.provider.bind_for(self.bind_dn, self._bind_password)
        return self.provider.bind_for(self.dn)

    def _require_bind(self) -> None:
        if not self.ensure_bound():
            raise BindError("Could not rebind for session", dn=self.dn)

    def _extra(self, attr: str) -> Optional[PasswordChangeAttributes]:
        if self.extra_attributes is not None and self.extra_attributes.handles(attr):
            return self.extra_attributes
        return None

    def get_user_attributes(self, attr: str) -> Optional[list[str]]:
        self._require_bind()
        extra = self._extra(attr)
        if extra is not None:
            return extra.get(attr)
        entry = self.provider.get_ldap_user(self.dn, [attr])
        return entry_values(entry, attr)

    def set_user_attributes(self, attr: str, values: Optional[Sequence[str]] = None) -> bool:
        self._require_bind()
        extra = self._extra(attr)
        if extra is not None:
            return extra.set(self, attr, list(values or []))
        return self.provider.modify_ldap_user(self.dn, {attr: list(values or [])})

    def close(self) -> None:
        """Forget credentials and any staged password."""
        if self.extra_attributes is not None:
            self.extra_attributes.clear()
        self._bind_password = None
