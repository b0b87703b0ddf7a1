from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse, Response

from .env_settings import get_env
from .session import SESSION_COOKIE, create_session


def ui_result(ok: bool, message: str, details: str | None = None, **extra: Any) -> dict:
    """Unified response shape for the JSON endpoints.

    Format:
      {"ok": bool, "message": str, "details": str, ...extra}
    """

    out: dict[str, Any] = {
        "ok": bool(ok),
        "message": str(message or ""),
        "details": str(details or ""),
    }
    out.update(extra)
    return out


def json_error(message: str, status_code: int, details: str | None = None) -> JSONResponse:
    return JSONResponse(ui_result(False, message, details), status_code=status_code)


def set_session_cookie(resp: Response, payload: dict) -> None:
    """Set signed session cookie (kept in one place for all auth flows)."""
    env = get_env()
    token = create_session(payload)
    resp.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=env.cookie_secure,
        samesite="lax",
        max_age=env.session_max_age,
    )


def clear_session_cookie(resp: Response) -> None:
    resp.delete_cookie(SESSION_COOKIE)
