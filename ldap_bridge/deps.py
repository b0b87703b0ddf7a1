from __future__ import annotations

from fastapi import HTTPException, Request, status

from .env_settings import get_env
from .services.auth import LDAPAuthProvider
from .session import SESSION_COOKIE, read_session


def get_current_user(request: Request) -> dict:
    """Session payload ({"domain", "dn", ...}) of the logged-in user, else 401."""
    token = request.cookies.get(SESSION_COOKIE, "")
    data = read_session(token, get_env().session_max_age) if token else None
    if not data:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return data


def get_providers(request: Request) -> dict[str, LDAPAuthProvider]:
    return request.app.state.providers


def get_provider(request: Request, domain: str) -> LDAPAuthProvider:
    provider = get_providers(request).get(domain)
    if provider is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown domain: {domain}")
    return provider
