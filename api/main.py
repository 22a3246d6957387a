"""
api/main.py -- FastAPI application factory for the account service.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- lets the separately hosted frontend call the API
                              with credentials (the session cookie)

Lifespan builds every long-lived component once -- store, codec, token
issuer, mailer, notifier, state machine -- and parks them on app.state.
Shutdown disposes the store's connection pool.

create_app() takes optional overrides (settings, store, mailer, clock) so
tests inject a fixed clock, a recording mailer and an in-memory database
without touching the environment.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.models import AuthResponse, HealthResponse
from api.routes.auth import router as auth_router
from auth.codec import CredentialCodec
from auth.errors import AuthError, Internal, Unauthenticated, ValidationError
from auth.machine import AuthService
from auth.store import AccountStore, SqlAccountStore
from auth.tokens import SessionTokenIssuer
from core.clock import Clock, utc_now
from core.config import AuthPolicy, Settings, get_settings
from mail.notifier import Notifier
from mail.transport import Mailer, build_mailer

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("accounts.api")


def _error(exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=AuthResponse(success=False, message=exc.message).to_body(),
    )


def create_app(
    settings: Settings | None = None,
    *,
    store: AccountStore | None = None,
    mailer: Mailer | None = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """Build the FastAPI application.

    Overrides left as None are built from settings during lifespan startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build components on startup; release the store on shutdown.

        Order: policy first (everything reads it), then store and codec,
        then the issuer and notifier, and the state machine last since it
        depends on all of them.
        """
        logger.info("Account service starting up")
        policy = AuthPolicy.from_settings(settings)
        account_store = store or SqlAccountStore(
            settings.database_url, timeout=settings.store_timeout_seconds, clock=clock
        )
        issuer = SessionTokenIssuer(policy, clock=clock)
        notifier = Notifier(
            mailer or build_mailer(settings),
            verification_ttl=policy.verification_ttl,
            reset_ttl=policy.reset_ttl,
        )
        app.state.settings = settings
        app.state.store = account_store
        app.state.issuer = issuer
        app.state.notifier = notifier
        app.state.auth_service = AuthService(
            store=account_store,
            codec=CredentialCodec(policy),
            issuer=issuer,
            notifier=notifier,
            policy=policy,
            clock=clock,
        )
        logger.info("Auth initialized (mail_backend=%s)", settings.mail_backend)

        yield

        close = getattr(account_store, "close", None)
        if close is not None:
            close()
        logger.info("Account service shutdown complete")

    app = FastAPI(
        title="Accounts API",
        description="Email/password accounts with verification codes, password reset, and session tokens.",
        version=VERSION,
        lifespan=lifespan,
    )

    # -----------------------------------------------------------------------
    # Middleware stack
    # -----------------------------------------------------------------------

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    app.include_router(auth_router, prefix="/api", tags=["Auth"])

    # -----------------------------------------------------------------------
    # Exception handlers
    #
    # All handlers return the same {success: false, message} envelope.
    # Internal detail (stack traces, SQL errors, token reject reasons) is
    # logged, never returned.
    # -----------------------------------------------------------------------

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.__cause__)
        return _error(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed body or query -> 400 with the first field problem."""
        errors = exc.errors()
        message = "Invalid request."
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
            message = f"Invalid {field}: {first.get('msg', 'invalid value')}"
        return _error(ValidationError(message))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        if exc.status_code == 401:
            return _error(Unauthenticated())
        return JSONResponse(
            status_code=exc.status_code,
            content=AuthResponse(success=False, message=str(exc.detail)).to_body(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors (store outages and the like).

        The raw exception goes to the log only; the client gets a generic message.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error(Internal())

    # -----------------------------------------------------------------------
    # Health endpoint -- no auth, reports database reachability
    # -----------------------------------------------------------------------

    @app.get("/api/health", tags=["Health"])
    async def health(request: Request) -> HealthResponse:
        """Return liveness, version, and database status."""
        ping = getattr(request.app.state.store, "ping", None)
        database_ok = ping() if ping is not None else True
        return HealthResponse(
            status="healthy" if database_ok else "degraded",
            version=VERSION,
            components={"app": "ok", "database": "ok" if database_ok else "error"},
        )

    return app
