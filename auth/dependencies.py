"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

Two token sources are checked in priority order:
  1. Session cookie (Settings.cookie_name, default "token") -- browser clients.
  2. Authorization: Bearer <token> header -- non-cookie API clients.

Both converge on AuthService.check_session(), which raises Unauthenticated
for every failure. The API exception handler turns that into one 401 body,
so a client cannot tell a forged token from an expired one.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
Nothing else under auth/ does.
"""

from __future__ import annotations

from fastapi import Request

from auth.machine import AuthService
from auth.models import Account


def get_auth_service(request: Request) -> AuthService:
    """Return the process-wide AuthService built in the app lifespan."""
    return request.app.state.auth_service


def session_token_from_request(request: Request) -> str | None:
    """Extract the raw session token from cookie or Bearer header, if any."""
    token: str | None = request.cookies.get(request.app.state.settings.cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip() or None
    return token


def get_current_account(request: Request) -> Account:
    """Require a valid session. Raises Unauthenticated (-> 401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    service = get_auth_service(request)
    return service.check_session(session_token_from_request(request))
