from __future__ import annotations

import re
import string
from typing import Any, Iterable, Mapping, Optional, Union

from .exceptions import DNSyntaxError

ANY_ENTRY_FILTER = "(objectClass=*)"

# descr (RFC 4512 keystring) or numericoid
_ATTR_TYPE_RE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9-]*|[0-9]+(?:\.[0-9]+)*)$")

FilterSpec = Union[Mapping[str, Any], Iterable[Union[str, Mapping[str, Any]]], None]


def escape_ldap_filter_value(value: str) -> str:
    """RFC 2254 escaping for LDAP filter values."""
    out: list[str] = []
    for ch in value:
        if ch == "\\":
            out.append("\\5c")
        elif ch == "*":
            out.append("\\2a")
        elif ch == "(":
            out.append("\\28")
        elif ch == ")":
            out.append("\\29")
        elif ch == "\x00":
            out.append("\\00")
        else:
            out.append(ch)
    return "".join(out)


def _is_single_expression(s: str) -> bool:
    """True for one balanced "(...)" group, e.g. not for "(a=b)(c=d)"."""
    if not s.startswith("("):
        return False
    depth = 0
    escaped = False
    for i, ch in enumerate(s):
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i == len(s) - 1
    return False


def _clause(raw: str) -> str:
    s = (raw or "").strip()
    if _is_single_expression(s):
        return s
    if s.startswith("("):
        # a run of parenthesized clauses is AND-ed
        return f"(&{s})"
    return f"({s})"


def _mapping_clauses(filters: Mapping[str, Any]) -> list[str]:
    parts: list[str] = []
    for attr, value in filters.items():
        if value:
            parts.append(f"({attr}={escape_ldap_filter_value(str(value))})")
        else:
            parts.append(f"(!({attr}=*))")
    return parts


def format_filter_string(filters: FilterSpec = None) -> str:
    """Build a filter string from raw clauses and/or attribute -> value mappings.

    A falsy value means "attribute must be absent". Several clauses are
    AND-combined, a single clause is returned as is.
    """
    if not filters:
        return ANY_ENTRY_FILTER

    parts: list[str] = []
    if isinstance(filters, Mapping):
        parts.extend(_mapping_clauses(filters))
    else:
        for item in filters:
            if isinstance(item, Mapping):
                parts.extend(_mapping_clauses(item))
            elif item:
                parts.append(_clause(str(item)))

    if not parts:
        return ANY_ENTRY_FILTER
    if len(parts) == 1:
        return parts[0]
    return "(&" + "".join(parts) + ")"


def _split_unescaped(s: str, separators: str) -> list[str]:
    """Split on separators that are neither backslash-escaped nor quoted.

    Escape sequences are kept in the output; they are decoded later.
    """
    parts: list[str] = []
    buf: list[str] = []
    esc = False
    quoted = False
    for ch in s:
        if esc:
            buf.append(ch)
            esc = False
            continue
        if ch == "\\":
            buf.append(ch)
            esc = True
            continue
        if ch == '"':
            quoted = not quoted
        elif ch in separators and not quoted:
            parts.append("".join(buf))
            buf = []
            continue
        buf.append(ch)
    if esc:
        raise DNSyntaxError("Dangling escape character", dn=s)
    if quoted:
        raise DNSyntaxError("Unterminated quoted value", dn=s)
    parts.append("".join(buf))
    return parts


def _unescape_value(raw: str, dn: str) -> str:
    out = bytearray()
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == "\\":
            pair = raw[i + 1:i + 3]
            if len(pair) == 2 and all(c in string.hexdigits for c in pair):
                out += bytes.fromhex(pair)
                i += 3
                continue
            out += raw[i + 1].encode("utf-8")
            i += 2
            continue
        out += ch.encode("utf-8")
        i += 1
    try:
        return out.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DNSyntaxError("Invalid UTF-8 in escaped value", dn=dn) from e


def _strip_value(raw: str) -> str:
    value = raw.lstrip(" ")
    while value.endswith(" ") and not value.endswith("\\ "):
        value = value[:-1]
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value


def split_dn(dn: str) -> list[list[tuple[str, str]]]:
    """Split a DN into RDNs, each a list of (attribute type, value) pairs.

    Raises DNSyntaxError for malformed input. The empty DN has no RDNs.
    """
    s = (dn or "").strip()
    if not s:
        return []

    rdns: list[list[tuple[str, str]]] = []
    for rdn in _split_unescaped(s, ",;"):
        avas: list[tuple[str, str]] = []
        for ava in _split_unescaped(rdn, "+"):
            pieces = _split_unescaped(ava, "=")
            if len(pieces) < 2:
                raise DNSyntaxError("RDN component without '='", dn=dn)
            attr_type = pieces[0].strip()
            if not _ATTR_TYPE_RE.match(attr_type):
                raise DNSyntaxError(f"Invalid attribute type {attr_type!r}", dn=dn)
            raw_value = "=".join(pieces[1:])
            avas.append((attr_type, _unescape_value(_strip_value(raw_value), dn)))
        rdns.append(avas)
    return rdns


def parse_dn(dn: str) -> Optional[dict[str, list[str]]]:
    """Ordered mapping RDN attribute type -> values, or None if dn is invalid.

    uid=alice,ou=people,dc=example,dc=com
        -> {"uid": ["alice"], "ou": ["people"], "dc": ["example", "com"]}
    """
    try:
        rdns = split_dn(dn)
    except DNSyntaxError:
        return None
    attrs: dict[str, list[str]] = {}
    for rdn in rdns:
        for attr_type, value in rdn:
            attrs.setdefault(attr_type, []).append(value)
    return attrs


def normalize_dn(dn: str) -> str:
    """Case-folded canonical form used to compare DNs."""
    try:
        rdns = split_dn(dn)
    except DNSyntaxError:
        return (dn or "").strip().casefold()
    return ",".join(
        "+".join(f"{t.lower()}={v.casefold()}" for t, v in sorted(rdn, key=lambda p: p[0].lower()))
        for rdn in rdns
    )


def dn_equal(dn1: Optional[str], dn2: Optional[str]) -> bool:
    if dn1 is None or dn2 is None:
        return False
    return normalize_dn(dn1) == normalize_dn(dn2)


def values_as_str(value: Any) -> list[str]:
    """Coerce an attribute value (scalar, bytes or list) into a list of str."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        items = [value]
    out: list[str] = []
    for v in items:
        if isinstance(v, bytes):
            out.append(v.decode("utf-8", errors="replace"))
        else:
            out.append(str(v))
    return out


def entry_values(entry: Optional[Mapping[str, list[str]]], attr: str) -> Optional[list[str]]:
    """Values of attr in a normalized entry (attribute names are case-insensitive)."""
    if not entry:
        return None
    if attr in entry:
        return entry[attr]
    wanted = attr.lower()
    for name, values in entry.items():
        if name.lower() == wanted:
            return values
    return None
