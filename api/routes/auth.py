"""
api/routes/auth.py -- Account and session REST endpoints.

Routes (mounted under /api):
  POST /auth/signup                 -- create unverified account; 201
  POST /auth/verify-email           -- consume verification code; sets session cookie
  POST /auth/login                  -- password login; sets session cookie
  POST /auth/logout                 -- clears session cookie; 200
  POST /auth/forgot-password        -- issue reset token, email the link
  POST /auth/reset-password/{token} -- consume reset token, set new password
  GET  /auth/check-verification     -- ?email= -> {isVerified}
  GET  /auth/check-auth             -- current account (requires session)

Every handler calls one AuthService transition and maps its AuthOutcome onto
the AuthResponse envelope. Failures are AuthError subclasses raised by the
service and rendered by the handler in api/main.py -- handlers here never
build error bodies themselves.

Deferred emails from an outcome are queued on FastAPI BackgroundTasks, which
run after the response has been sent.

Security:
  Cache-Control: no-store on every response that carries a session token.
  Handlers are sync (def) -- bcrypt and the store block, so FastAPI runs them
  in its threadpool instead of on the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    AccountResponse,
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    VerifyEmailRequest,
)
from auth.dependencies import get_auth_service, get_current_account
from auth.machine import AuthService
from auth.models import Account, AuthOutcome
from auth.tokens import clear_session_cookie, set_session_cookie

# Auth policy:
# - every route except GET /auth/check-auth is public
# - GET /auth/check-auth requires a session (get_current_account)
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _respond(
    request: Request,
    outcome: AuthOutcome,
    background: BackgroundTasks,
    status_code: int = 200,
) -> JSONResponse:
    """Render an AuthOutcome: body, optional session cookie, deferred emails."""
    user = AccountResponse.from_account(outcome.account) if outcome.account is not None else None
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(success=True, message=outcome.message, user=user).to_body(),
    )
    if outcome.token is not None:
        settings = request.app.state.settings
        set_session_cookie(
            resp,
            outcome.token,
            name=settings.cookie_name,
            max_age=request.app.state.issuer.max_age_seconds,
            secure=settings.secure_cookies,
            samesite=settings.cookie_samesite,
        )
        resp.headers["Cache-Control"] = "no-store"
    notifier = request.app.state.notifier
    for job in outcome.deferred:
        background.add_task(notifier.deliver, job)
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", status_code=201)
def signup(
    request: Request,
    body: SignupRequest,
    background: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Create an unverified account and email it a verification code.

    If the verification email cannot be sent the account still exists; the
    response is a 201 whose message says the email failed.
    """
    outcome = service.signup(body.email, body.password, body.name)
    return _respond(request, outcome, background, status_code=201)


@router.post("/auth/verify-email")
def verify_email(
    request: Request,
    body: VerifyEmailRequest,
    background: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Consume a verification code; on success the caller is logged in."""
    outcome = service.verify_email(body.email, body.code)
    return _respond(request, outcome, background)


@router.post("/auth/login")
def login(
    request: Request,
    body: LoginRequest,
    background: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    Unknown email and wrong password produce the identical 400 body.
    """
    outcome = service.login(body.email, body.password)
    return _respond(request, outcome, background)


@router.post("/auth/logout")
def logout(
    request: Request,
    background: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Clear the session cookie. Bearer-token clients simply discard their token."""
    resp = _respond(request, service.logout(), background)
    settings = request.app.state.settings
    clear_session_cookie(
        resp,
        name=settings.cookie_name,
        secure=settings.secure_cookies,
        samesite=settings.cookie_samesite,
    )
    return resp


@router.post("/auth/forgot-password")
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    background: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Issue a one-hour reset token and email the reset link."""
    outcome = service.forgot_password(body.email)
    return _respond(request, outcome, background)


@router.post("/auth/reset-password/{token}")
def reset_password(
    request: Request,
    token: str,
    body: ResetPasswordRequest,
    background: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Consume a reset token and replace the password. The token works once."""
    outcome = service.reset_password(token, body.password)
    return _respond(request, outcome, background)


@router.get("/auth/check-verification")
def check_verification(
    email: str | None = None,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Report whether the account for ?email= has verified its address. 404 if unknown."""
    is_verified = service.check_verification_status(email)
    return JSONResponse(content=AuthResponse(success=True, is_verified=is_verified).to_body())


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/check-auth")
def check_auth(account: Account = Depends(get_current_account)) -> JSONResponse:
    """Return the credential-free projection of the session's account."""
    resp = JSONResponse(
        content=AuthResponse(success=True, user=AccountResponse.from_account(account)).to_body(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
