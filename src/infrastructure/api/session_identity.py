from __future__ import annotations

import os
import re
import secrets
from dataclasses import dataclass

from fastapi import Request, Response

from src.domain.errors import DesignNotFoundError

DEFAULT_COOKIE_NAME = "photo_editor_session"
COOKIE_MAX_AGE = 60 * 60 * 24 * 30

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_DESIGN_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


@dataclass(slots=True)
class SessionIdentity:
    id: str
    is_new: bool = False


def cookie_name() -> str:
    return os.getenv("EDITOR_SESSION_COOKIE", DEFAULT_COOKIE_NAME)


def sanitize_session_id(raw: str | None) -> str:
    """Strip everything but ASCII letters and digits from a client-supplied id."""
    return _NON_ALNUM.sub("", raw or "")[:64]


def new_session_id() -> str:
    return secrets.token_hex(8)


def get_cookie_session(request: Request, response: Response) -> SessionIdentity:
    """Resolve the editor session from its cookie, issuing one when absent."""
    name = cookie_name()
    sid = sanitize_session_id(request.cookies.get(name))
    if sid:
        return SessionIdentity(id=sid)
    sid = new_session_id()
    response.set_cookie(name, sid, max_age=COOKIE_MAX_AGE, path="/", httponly=True, samesite="lax")
    return SessionIdentity(id=sid, is_new=True)


def get_design_session(design_id: str) -> SessionIdentity:
    """A design's own id scopes its editing session."""
    if not _DESIGN_ID.match(design_id):
        raise DesignNotFoundError()
    return SessionIdentity(id=design_id)
