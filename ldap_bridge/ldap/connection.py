from __future__ import annotations

import inspect
import logging
import ssl
from typing import Any, Optional

from ldap3 import (
    ALL_ATTRIBUTES,
    ANONYMOUS,
    BASE,
    MODIFY_REPLACE,
    NONE,
    SIMPLE,
    SUBTREE,
    Connection,
    Server,
    Tls,
)
from ldap3.core.exceptions import LDAPException
from ldap3.core.results import RESULT_NO_SUCH_OBJECT, RESULT_SUCCESS

from .exceptions import ConfigurationError, DirectoryConnectionError, DirectoryOperationError
from .models import ConnectionSettings

log = logging.getLogger(__name__)

# ConnectionSettings field -> ldap3.Tls keyword
TLS_FILE_OPTIONS = {
    "tls_ca_file": "ca_certs_file",
    "tls_ca_dir": "ca_certs_path",
    "tls_cert_file": "local_certificate_file",
    "tls_certkey_key": "local_private_key_file",
}

SCOPES = {
    "base": BASE,
    "sub": SUBTREE,
}


def resolve_uri(cfg: ConnectionSettings) -> str:
    """Connection target: explicit uri, else <proto>://<host>[:<port>]."""
    if cfg.uri:
        return cfg.uri
    host = (cfg.host or "").strip()
    if not host:
        raise ConfigurationError("Neither 'uri' nor 'host' is configured for the directory connection.")
    proto = cfg.proto or ("ldaps" if cfg.tls else "ldap")
    if cfg.port:
        host = f"{host}:{cfg.port}"
    return f"{proto}://{host}"


def _supported_tls_kwargs() -> set[str]:
    try:
        return set(inspect.signature(Tls).parameters)
    except (TypeError, ValueError):
        return set()


def build_tls(cfg: ConnectionSettings) -> Tls:
    """ldap3.Tls for the configured CA/client certificate files.

    File options the installed ldap3 does not know are skipped.
    """
    supported = _supported_tls_kwargs()
    tls_kwargs: dict[str, Any] = {}
    if "validate" in supported:
        tls_kwargs["validate"] = ssl.CERT_REQUIRED if cfg.tls_validate else ssl.CERT_NONE
    for option, kwarg in TLS_FILE_OPTIONS.items():
        value = getattr(cfg, option)
        if not value:
            continue
        if kwarg not in supported:
            log.debug("TLS option %s not supported by ldap3.Tls, skipped", option)
            continue
        tls_kwargs[kwarg] = value
    return Tls(**tls_kwargs)


class DirectoryConnection:
    """One transport to one LDAP server.

    Wraps a single ldap3 Connection. The socket is opened lazily by open();
    StartTLS (when configured) is negotiated right after connecting.
    """

    def __init__(self, cfg: ConnectionSettings) -> None:
        self.cfg = cfg
        self.uri = resolve_uri(cfg)
        self.server = Server(
            self.uri,
            get_info=NONE,
            tls=build_tls(cfg),
            connect_timeout=cfg.timeout,
        )
        self.conn = Connection(
            self.server,
            version=cfg.version,
            auto_referrals=cfg.referrals,
            auto_bind=False,
            auto_escape=False,
            raise_exceptions=False,
            receive_timeout=cfg.timeout,
        )
        self._tls_started = False

    def __repr__(self) -> str:
        return f"<DirectoryConnection {self.uri}>"

    @property
    def secure(self) -> bool:
        return self.uri.lower().startswith("ldaps://") or self._tls_started

    def _describe_result(self) -> str:
        res = dict(self.conn.result or {})
        return str(res.get("description") or res.get("message") or "unknown error")

    def open(self) -> None:
        """Connect (and StartTLS if requested). Raises DirectoryConnectionError."""
        if not self.conn.closed:
            return
        try:
            self.conn.open(read_server_info=False)
            if self.cfg.starttls:
                if not self.conn.start_tls(read_server_info=False):
                    raise DirectoryConnectionError(
                        f"StartTLS failed on {self.uri}: {self._describe_result()}"
                    )
                self._tls_started = True
        except LDAPException as e:
            raise DirectoryConnectionError(f"Cannot connect to {self.uri}: {e}") from e
        log.debug("Connected to %s (starttls=%s)", self.uri, self.cfg.starttls)

    @property
    def bound(self) -> bool:
        return bool(self.conn.bound)

    def _bind(self, authentication: str, dn: Optional[str], password: Optional[str]) -> bool:
        self.open()
        was_bound = self.bound
        old = (self.conn.authentication, self.conn.user, self.conn.password)
        self.conn.authentication = authentication
        self.conn.user = dn
        self.conn.password = password
        try:
            ok = bool(self.conn.bind(read_server_info=False))
        except LDAPException as e:
            self.conn.authentication, self.conn.user, self.conn.password = old
            raise DirectoryConnectionError(f"Bind failed on {self.uri}: {e}", dn=dn) from e
        if not ok:
            log.debug("Bind as %r rejected: %s", dn, self._describe_result())
            self.conn.authentication, self.conn.user, self.conn.password = old
            if was_bound:
                self._restore_binding()
        return ok

    def _restore_binding(self) -> None:
        # a rejected bind leaves the server session anonymous
        try:
            restored = bool(self.conn.bind(read_server_info=False))
        except LDAPException as e:
            log.warning("Could not restore binding as %r on %s: %s", self.conn.user, self.uri, e)
            return
        if not restored:
            log.warning(
                "Could not restore binding as %r on %s: %s",
                self.conn.user, self.uri, self._describe_result(),
            )

    def simple_bind(self, dn: str, password: str) -> bool:
        return self._bind(SIMPLE, dn, password)

    def anonymous_bind(self, dn: Optional[str] = None) -> bool:
        return self._bind(ANONYMOUS, dn or None, None)

    def unbind(self) -> bool:
        if self.conn.closed:
            return True
        try:
            ok = bool(self.conn.unbind())
        except LDAPException as e:
            raise DirectoryConnectionError(f"Unbind failed on {self.uri}: {e}") from e
        self._tls_started = False
        return ok

    def search(
        self,
        base: str,
        filterstr: str,
        scope: str = "sub",
        attributes: Optional[list[str]] = None,
    ) -> Optional[list[tuple[str, dict[str, Any]]]]:
        """Raw (dn, attributes) pairs; [] if nothing matched, None if the search failed."""
        try:
            self.conn.search(
                search_base=base,
                search_filter=filterstr,
                search_scope=SCOPES[scope],
                attributes=attributes or ALL_ATTRIBUTES,
            )
        except LDAPException as e:
            raise DirectoryOperationError(f"Search failed: {e}", dn=base, filterstr=filterstr) from e

        code = (self.conn.result or {}).get("result")
        if code == RESULT_NO_SUCH_OBJECT:
            return []
        if code != RESULT_SUCCESS:
            log.warning(
                "Search base=%r filter=%r failed: %s", base, filterstr, self._describe_result()
            )
            return None
        return [
            (item.get("dn", ""), dict(item.get("attributes") or {}))
            for item in (self.conn.response or [])
            if item.get("type") == "searchResEntry"
        ]

    def modify_replace(self, dn: str, changes: dict[str, list[str]]) -> bool:
        ldap_changes = {attr: [(MODIFY_REPLACE, list(values))] for attr, values in changes.items()}
        try:
            ok = bool(self.conn.modify(dn, ldap_changes))
        except LDAPException as e:
            raise DirectoryOperationError(f"Modify failed: {e}", dn=dn) from e
        if not ok:
            log.warning("Modify of %r failed: %s", dn, self._describe_result())
        return ok

    def modify_password(self, dn: str, password: str) -> bool:
        mode = self.cfg.password_mode
        try:
            if mode == "ad":
                ok = bool(self.conn.extend.microsoft.modify_password(dn, password))
            elif mode == "replace":
                ok = bool(self.conn.modify(dn, {self.cfg.password_attr: [(MODIFY_REPLACE, [password])]}))
            else:
                ok = bool(self.conn.extend.standard.modify_password(user=dn, new_password=password))
        except LDAPException as e:
            raise DirectoryOperationError(f"Password change failed: {e}", dn=dn) from e
        if not ok:
            log.warning("Password change (%s) for %r failed: %s", mode, dn, self._describe_result())
        return ok
