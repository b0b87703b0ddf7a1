from __future__ import annotations

import copy
import re
from typing import Any, Optional

import pytest

from ldap_bridge.env_settings import get_env
from ldap_bridge.ldap import ConnectionSettings, DirectoryClient
from ldap_bridge.ldap.utils import dn_equal, entry_values, normalize_dn
from ldap_bridge.services.auth import LDAPAuthProvider
from ldap_bridge.services.settings import DomainSettings

BASE_DN = "dc=example,dc=com"
ADMIN_DN = "cn=admin,dc=example,dc=com"
ADMIN_PW = "secret"
ALICE_DN = "uid=alice,ou=people,dc=example,dc=com"
ALICE_PW = "alice-pw"
BOB_DN = "uid=bob,ou=people,dc=example,dc=com"
BOB_PW = "bob-pw"


def _unescape_filter_value(value: str) -> str:
    return re.sub(r"\\([0-9a-fA-F]{2})", lambda m: chr(int(m.group(1), 16)), value)


def _parse_filter(s: str, i: int = 0):
    if s[i] != "(":
        raise ValueError(f"bad filter {s!r} at {i}")
    i += 1
    if s[i] in "&|":
        op = s[i]
        i += 1
        children = []
        while s[i] == "(":
            child, i = _parse_filter(s, i)
            children.append(child)
        return (op, children), i + 1
    if s[i] == "!":
        child, i = _parse_filter(s, i + 1)
        return ("!", child), i + 1
    j = s.index(")", i)
    attr, value = s[i:j].split("=", 1)
    return ("eq", attr, value), j + 1


def _eval_filter(node, attrs: dict) -> bool:
    kind = node[0]
    if kind == "&":
        return all(_eval_filter(c, attrs) for c in node[1])
    if kind == "|":
        return any(_eval_filter(c, attrs) for c in node[1])
    if kind == "!":
        return not _eval_filter(node[1], attrs)
    _, attr, value = node
    values = entry_values(attrs, attr) or []
    if value == "*":
        return bool(values)
    wanted = _unescape_filter_value(value).lower()
    return any(str(v).lower() == wanted for v in values)


def filter_matches(filterstr: str, attrs: dict) -> bool:
    node, _ = _parse_filter(filterstr)
    return _eval_filter(node, attrs)


class FakeConnection:
    """In-memory stand-in for DirectoryConnection.

    Understands equality, presence, &, | and ! filters; records every call.
    """

    def __init__(self, entries: dict[str, dict[str, list]], passwords: dict[str, str]) -> None:
        self.entries = copy.deepcopy(entries)
        self.passwords = dict(passwords)
        self.calls: list[tuple] = []
        self.bound_dn: Optional[str] = None
        self.bound = False
        # a rejected bind also loses the previous binding
        self.lose_binding_on_reject = False
        self.anonymous_ok = True
        self.fail_search = False
        self.search_error: Optional[Exception] = None
        self.reject_modify = False

    def _password_of(self, dn: str) -> Optional[str]:
        for known, pw in self.passwords.items():
            if dn_equal(known, dn):
                return pw
        return None

    def _entry_dn(self, dn: str) -> Optional[str]:
        for known in self.entries:
            if dn_equal(known, dn):
                return known
        return None

    def calls_of(self, kind: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == kind]

    def simple_bind(self, dn: str, password: str) -> bool:
        self.calls.append(("bind", dn))
        ok = password and self._password_of(dn) == password
        if ok:
            self.bound_dn = dn
            self.bound = True
        elif self.lose_binding_on_reject:
            self.bound_dn = None
            self.bound = False
        return bool(ok)

    def anonymous_bind(self, dn: Optional[str] = None) -> bool:
        self.calls.append(("anonymous_bind", dn))
        if self.anonymous_ok:
            self.bound_dn = None
            self.bound = True
        return self.anonymous_ok

    def unbind(self) -> bool:
        self.calls.append(("unbind",))
        self.bound_dn = None
        self.bound = False
        return True

    @staticmethod
    def _select(attrs: dict, attributes: Optional[list[str]]) -> dict[str, Any]:
        if not attributes or attributes == ["*"]:
            return copy.deepcopy(attrs)
        if attributes == ["1.1"]:
            return {}
        wanted = {a.lower() for a in attributes}
        return {k: list(v) for k, v in attrs.items() if k.lower() in wanted}

    def search(self, base: str, filterstr: str, scope: str = "sub", attributes=None):
        self.calls.append(("search", base, filterstr, scope, attributes))
        if self.search_error is not None:
            raise self.search_error
        if self.fail_search:
            return None
        norm_base = normalize_dn(base)
        out = []
        for dn, attrs in self.entries.items():
            norm = normalize_dn(dn)
            if scope == "base":
                if norm != norm_base:
                    continue
            elif norm_base and not (norm == norm_base or norm.endswith("," + norm_base)):
                continue
            if filter_matches(filterstr, attrs):
                out.append((dn, self._select(attrs, attributes)))
        return out

    def modify_replace(self, dn: str, changes: dict[str, list[str]]) -> bool:
        self.calls.append(("modify", dn, copy.deepcopy(changes)))
        if self.reject_modify:
            return False
        known = self._entry_dn(dn)
        if known is None:
            return False
        for attr, values in changes.items():
            if values:
                self.entries[known][attr] = list(values)
            else:
                self.entries[known].pop(attr, None)
        return True

    def modify_password(self, dn: str, password: str) -> bool:
        self.calls.append(("modify_password", dn))
        if self.reject_modify:
            return False
        self.passwords[dn] = password
        return True


def directory_entries() -> dict[str, dict[str, list]]:
    return {
        ADMIN_DN: {"objectClass": ["person"], "cn": ["admin"]},
        "ou=people,dc=example,dc=com": {"objectClass": ["organizationalUnit"], "ou": ["people"]},
        ALICE_DN: {
            "objectClass": ["inetOrgPerson"],
            "uid": ["alice"],
            "cn": ["Alice Example"],
            "mail": ["alice@example.com"],
        },
        BOB_DN: {
            "objectClass": ["inetOrgPerson"],
            "uid": ["bob"],
            "cn": ["Bob Example"],
            "mail": ["bob@example.com"],
        },
        "uid=dup,ou=people,dc=example,dc=com": {"objectClass": ["inetOrgPerson"], "uid": ["dup"]},
        "cn=dup two,ou=people,dc=example,dc=com": {"objectClass": ["account"], "uid": ["dup"]},
    }


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection(
        directory_entries(),
        {ADMIN_DN: ADMIN_PW, ALICE_DN: ALICE_PW, BOB_DN: BOB_PW},
    )


@pytest.fixture
def conn_settings() -> ConnectionSettings:
    return ConnectionSettings(host="ldap.example.com", base_dn=BASE_DN, bind_dn=ADMIN_DN, bind_pass=ADMIN_PW)


@pytest.fixture
def client(conn_settings, fake_conn) -> DirectoryClient:
    return DirectoryClient(conn_settings, connection=fake_conn)


def make_domain(**user: Any) -> DomainSettings:
    user_cfg = {
        "base_rdn": "ou=people",
        "settable_attrs": ["mail", "telephoneNumber"],
        "settable_password": True,
    }
    user_cfg.update(user)
    return DomainSettings.model_validate(
        {
            "description": "Example directory",
            "connection": {
                "host": "ldap.example.com",
                "base_dn": BASE_DN,
                "bind_dn": ADMIN_DN,
                "bind_pass": ADMIN_PW,
            },
            "user": user_cfg,
        }
    )


@pytest.fixture
def make_provider(fake_conn):
    def _make(**user: Any) -> LDAPAuthProvider:
        cfg = make_domain(**user)
        return LDAPAuthProvider("example", cfg, DirectoryClient(cfg.connection, connection=fake_conn))

    return _make


@pytest.fixture
def provider(make_provider) -> LDAPAuthProvider:
    return make_provider()


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("APP_SECRET_KEY", "test-secret")
    monkeypatch.delenv("APP_COOKIE_SECURE", raising=False)
    monkeypatch.delenv("SESSION_MAX_AGE", raising=False)
    get_env.cache_clear()
    yield get_env()
    get_env.cache_clear()
