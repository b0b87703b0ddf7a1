"""Directory configuration: typed schema and file loading."""

from .schema import CURRENT_SCHEMA_VERSION, DomainSettings, UserSettings
from .storage import load_domains, load_domains_json, parse_domains

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "DomainSettings",
    "UserSettings",
    "load_domains",
    "load_domains_json",
    "parse_domains",
]
