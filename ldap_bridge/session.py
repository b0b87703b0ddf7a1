from __future__ import annotations

from typing import Dict, Any
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from .env_settings import get_env

SESSION_COOKIE = "ldap_bridge_session"


def _serializer() -> URLSafeTimedSerializer:
    s = get_env()
    return URLSafeTimedSerializer(s.secret_key, salt="ldap-bridge-session")


def create_session(data: Dict[str, Any]) -> str:
    return _serializer().dumps(data)


def read_session(token: str, max_age_seconds: int) -> Dict[str, Any] | None:
    try:
        data = _serializer().loads(token, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(data, dict) or not data.get("dn") or not data.get("domain"):
        return None
    return data
