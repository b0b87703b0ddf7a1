from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from .connection import DirectoryConnection
from .exceptions import BindError
from .models import BindKind, BindState, ConnectionSettings, Entry
from .utils import (
    FilterSpec,
    dn_equal,
    escape_ldap_filter_value,
    format_filter_string,
    parse_dn,
    split_dn,
    values_as_str,
)

log = logging.getLogger(__name__)

DN_PSEUDO_ATTR = "dn"
NO_ATTRIBUTES = "1.1"


class DirectoryClient:
    """Authenticated directory I/O for one configured domain.

    Owns the connection and its bind state. Not safe for concurrent use:
    callers serialize access (one logical request at a time).
    """

    def __init__(self, cfg: ConnectionSettings, connection: Optional[DirectoryConnection] = None) -> None:
        self.cfg = cfg
        self.connection = connection if connection is not None else DirectoryConnection(cfg)
        self.state = BindState.unbound()

    def __repr__(self) -> str:
        return f"<DirectoryClient {self.connection!r} state={self.state.kind.value}>"

    # DN and filter helpers
    escape = staticmethod(escape_ldap_filter_value)
    format_filter_string = staticmethod(format_filter_string)
    parse_dn = staticmethod(parse_dn)
    split_dn = staticmethod(split_dn)

    @property
    def base_dn(self) -> str:
        return self.cfg.base_dn

    # ---- bind state machine ----------------------------------------------

    def bind(self) -> bool:
        """Bind with the configured service identity (credentialed or anonymous)."""
        dn = self.cfg.bind_principal or None
        password = self.cfg.bind_pass
        if dn and password:
            ok = self.connection.simple_bind(dn, password)
            if ok:
                self.state = BindState.bound_as(dn, system=True)
        else:
            ok = self.connection.anonymous_bind(dn)
            if ok:
                self.state = BindState.anonymous(dn, system=True)
        if ok:
            log.debug("System bind as %r succeeded", dn)
        else:
            log.warning("System bind as %r failed", dn)
            self._check_binding()
        return ok

    def bind_as(self, dn: str, password: str) -> bool:
        if not dn or not password:
            # an empty password would turn into an unauthenticated bind
            return False
        ok = self.connection.simple_bind(dn, password)
        if ok:
            self.state = BindState.bound_as(dn)
        else:
            log.info("Bind as %r rejected", dn)
            self._check_binding()
        return ok

    def bind_anon(self, dn: Optional[str] = None) -> bool:
        ok = self.connection.anonymous_bind(dn)
        if ok:
            self.state = BindState.anonymous(dn)
        else:
            self._check_binding()
        return ok

    def _check_binding(self) -> None:
        """After a rejected bind: keep the previous state only if the transport still holds it."""
        if self.state.is_bound and not self.connection.bound:
            log.warning("Previous binding as %r was lost", self.state.dn)
            self.state = BindState.unbound()

    def unbind(self) -> bool:
        ok = self.connection.unbind()
        if ok:
            self.state = BindState.unbound()
        return ok

    def is_bound(self) -> bool:
        return self.state.is_bound

    def is_bound_for(self, dn: str) -> bool:
        """True when bound as exactly dn, or through the system bind.

        A plain anonymous bind (bind_anon) never counts as bound for a DN.
        """
        state = self.state
        if not state.is_bound:
            return False
        if state.system:
            return True
        return state.kind is BindKind.BOUND and dn_equal(state.dn, dn)

    def _ensure_bound(self, dn: Optional[str] = None, filterstr: Optional[str] = None) -> None:
        if self.is_bound():
            return
        if not self.bind():
            raise BindError("Could not bind to server", dn=dn, filterstr=filterstr)

    # ---- operations --------------------------------------------------------

    @staticmethod
    def _request_attrs(attributes: Optional[Sequence[str]]) -> Optional[list[str]]:
        if not attributes:
            return None
        attrs = [a for a in attributes if a.lower() != DN_PSEUDO_ATTR]
        return attrs or [NO_ATTRIBUTES]

    @staticmethod
    def _normalize(dn: str, raw: Mapping[str, Any], attributes: Optional[Sequence[str]]) -> Entry:
        entry: Entry = {str(name): values_as_str(value) for name, value in raw.items()}
        wants_dn = not attributes or any(a.lower() == DN_PSEUDO_ATTR for a in attributes)
        if wants_dn and DN_PSEUDO_ATTR not in entry and dn:
            entry[DN_PSEUDO_ATTR] = [dn]
        return entry

    def read(
        self,
        dn: str,
        attributes: Optional[Sequence[str]] = None,
        filters: FilterSpec = None,
    ) -> Optional[Entry]:
        """First entry at dn matching filters, or None."""
        filterstr = format_filter_string(filters)
        self._ensure_bound(dn, filterstr)
        res = self.connection.search(dn, filterstr, "base", self._request_attrs(attributes))
        if not res:
            return None
        entry_dn, raw = res[0]
        return self._normalize(entry_dn, raw, attributes)

    def search(
        self,
        attributes: Optional[Sequence[str]],
        filters: FilterSpec = None,
        dn: Optional[str] = None,
    ) -> Optional[list[Entry]]:
        """All matching entries below dn (default: base DN); None if the search failed."""
        filterstr = format_filter_string(filters)
        base = dn or self.cfg.base_dn
        self._ensure_bound(base, filterstr)
        res = self.connection.search(base, filterstr, "sub", self._request_attrs(attributes))
        if res is None:
            return None
        return [self._normalize(entry_dn, raw, attributes) for entry_dn, raw in res]

    def modify(self, dn: str, attributes: Mapping[str, Optional[Sequence[str]]]) -> bool:
        """Replace the given attributes; an empty sequence clears the attribute."""
        self._ensure_bound(dn)
        changes = {attr: [str(v) for v in (values or [])] for attr, values in attributes.items()}
        if not changes:
            return True
        return self.connection.modify_replace(dn, changes)

    def modify_password(self, dn: str, password: str) -> bool:
        self._ensure_bound(dn)
        return self.connection.modify_password(dn, password)
