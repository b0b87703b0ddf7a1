from __future__ import annotations

import json
import os
from typing import Any

from pydantic import ValidationError

from ...ldap.exceptions import ConfigurationError
from .schema import DomainSettings


def parse_domains(raw: Any) -> dict[str, DomainSettings]:
    """Validate a decoded config document.

    Accepts {"domains": {name: {...}}} or a bare {name: {...}} mapping.
    """
    if isinstance(raw, dict) and isinstance(raw.get("domains"), dict):
        raw = raw["domains"]
    if not isinstance(raw, dict):
        raise ConfigurationError("Directory config must be a JSON object of domains.")

    domains: dict[str, DomainSettings] = {}
    for name, payload in raw.items():
        name = str(name).strip()
        if not name:
            raise ConfigurationError("Empty domain name in directory config.")
        try:
            domains[name] = DomainSettings.model_validate(payload)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid config for domain {name!r}: {e}") from e
    return domains


def load_domains_json(payload: str | bytes) -> dict[str, DomainSettings]:
    try:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        raw = json.loads(payload)
    except ValueError as e:
        raise ConfigurationError(f"Invalid JSON: {e}") from e
    return parse_domains(raw)


def load_domains(path: str) -> dict[str, DomainSettings]:
    """Read and validate the directory config file at path."""
    if not path or not os.path.isfile(path):
        raise ConfigurationError(f"Directory config file not found: {path!r}")
    with open(path, "rb") as f:
        return load_domains_json(f.read())
