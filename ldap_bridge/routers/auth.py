from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form
from fastapi.responses import JSONResponse

from ..deps import get_provider
from ..ldap import DirectoryError
from ..services.auth import LDAPAuthProvider, LDAPAuthSession
from ..services.auth.provider import USER_ROLES
from ..webui import clear_session_cookie, json_error, set_session_cookie, ui_result

log = logging.getLogger(__name__)

router = APIRouter()


def _profile(provider: LDAPAuthProvider, session: LDAPAuthSession) -> dict[str, Optional[str]]:
    """name/email/realname of the session's user, as far as the directory has them."""
    profile: dict[str, Optional[str]] = {}
    for role in USER_ROLES:
        attr = provider.map_user_attribute(role)
        values = session.get_user_attributes(attr) if attr else None
        profile[role] = values[0] if values else None
    return profile


@router.post("/login/{domain}")
def login(
    provider: LDAPAuthProvider = Depends(get_provider),
    username: str = Form(""),
    password: str = Form(""),
):
    values = {"username": username, "password": password}

    with provider.lock:
        result = provider.authenticate_values(values)
        if not result.success:
            return json_error(result.error_message, status_code=401)

        with result.session as session:
            try:
                profile = _profile(provider, session)
            except DirectoryError as e:
                log.warning("Could not read profile of %r in domain %s: %s", session.dn, provider.domain, e)
                profile = {role: None for role in USER_ROLES}

    user = dict(result.user_data or {})
    user.update(profile)
    resp = JSONResponse(ui_result(True, "Logged in.", user=user))
    set_session_cookie(resp, {"domain": provider.domain, "dn": user["dn"], "username": user["username"]})
    return resp


@router.get("/logout")
def logout():
    resp = JSONResponse(ui_result(True, "Logged out."))
    clear_session_cookie(resp)
    return resp


@router.get("/fields/{domain}")
def authentication_fields(
    provider: LDAPAuthProvider = Depends(get_provider),
    user_id: Optional[str] = None,
):
    with provider.lock:
        try:
            fields = provider.get_authentication_fields(user_id)
        except DirectoryError as e:
            log.error("Could not build login fields for domain %s: %s", provider.domain, e)
            return json_error("Directory unavailable.", status_code=502, details=str(e))
    return ui_result(True, "", description=provider.get_description(), fields=fields)
