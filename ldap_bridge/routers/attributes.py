from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, Request

from ..deps import get_current_user, get_provider
from ..ldap import DirectoryError, PasswordConfirmationMismatch
from ..services.auth import ATTR_NEW_PASSWORD, ATTR_NEW_PASSWORD_CONFIRM, LDAPAuthProvider
from ..webui import json_error, ui_result

log = logging.getLogger(__name__)

router = APIRouter(prefix="/me")

_PASSWORD_ATTRS = (ATTR_NEW_PASSWORD, ATTR_NEW_PASSWORD_CONFIRM)


def _user_provider(request: Request, user: dict = Depends(get_current_user)) -> tuple[dict, LDAPAuthProvider]:
    return user, get_provider(request, user["domain"])


@router.get("/attributes")
def read_attributes(ctx: tuple = Depends(_user_provider)):
    user, provider = ctx
    if provider.user_cfg.set_needs_auth:
        return json_error("Attribute changes need a fresh login in this domain.", status_code=403)

    with provider.lock:
        try:
            session = provider.sudo(user["dn"])
            if session is None:
                return json_error("Could not bind to the directory.", status_code=502)
            with session:
                values = {
                    attr: session.get_user_attributes(attr) or []
                    for attr in provider.user_cfg.settable_attrs
                }
        except DirectoryError as e:
            log.error("Reading attributes of %r failed: %s", user["dn"], e)
            return json_error("Directory error.", status_code=502, details=str(e))

    return ui_result(True, "", fields=provider.get_attribute_fields(user["dn"]), values=values)


@router.post("/attributes")
def update_attributes(
    changes: dict[str, list[str]] = Body(...),
    ctx: tuple = Depends(_user_provider),
):
    user, provider = ctx
    if provider.user_cfg.set_needs_auth:
        return json_error("Attribute changes need a fresh login in this domain.", status_code=403)

    refused = sorted(attr for attr in changes if not provider.is_settable(attr))
    if refused:
        return json_error("Attributes cannot be changed: " + ", ".join(refused), status_code=400)

    wants_password = [attr for attr in _PASSWORD_ATTRS if attr in changes]
    if wants_password and len(wants_password) != len(_PASSWORD_ATTRS):
        return json_error("New password and its confirmation must be sent together.", status_code=400)

    failed: list[str] = []
    with provider.lock:
        try:
            session = provider.sudo(user["dn"])
            if session is None:
                return json_error("Could not bind to the directory.", status_code=502)
            with session:
                # password first so a mismatch leaves the entry untouched
                for attr in wants_password:
                    if not session.set_user_attributes(attr, changes[attr]):
                        failed.append(attr)
                for attr, values in changes.items():
                    if attr in _PASSWORD_ATTRS:
                        continue
                    if not session.set_user_attributes(attr, values):
                        failed.append(attr)
        except PasswordConfirmationMismatch:
            return json_error("New password and confirmation differ.", status_code=400)
        except DirectoryError as e:
            log.error("Updating attributes of %r failed: %s", user["dn"], e)
            return json_error("Directory error.", status_code=502, details=str(e))

    if failed:
        return json_error("The directory rejected changes to: " + ", ".join(failed), status_code=502)
    log.info("Updated %s for %r in domain %s", ", ".join(sorted(changes)) or "nothing", user["dn"], provider.domain)
    return ui_result(True, "Saved.", changed=sorted(changes))
