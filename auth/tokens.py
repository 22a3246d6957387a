"""
auth/tokens.py -- Stateless session tokens (JWT) and the session cookie helper.

Security design decisions:
  JWT: python-jose with HS256. A token carries only the account id (sub),
       issued-at and expiry. Nothing is stored server-side, so rotating
       SECRET_KEY is the only way to invalidate outstanding tokens.

  Rejections: verify() raises TokenRejected with a RejectReason so logs and
       tests can tell a malformed token from a forged or expired one. The
       route layer collapses every reason into one 401 body -- callers must
       never echo the reason back to the client.

  Expiry: checked against the injected clock rather than jose's wall-clock
       check, so tests can step past the 7 day window deterministically.

Layer rule: no imports from api/ or mail/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

from jose import JWTError, jwt

from auth.models import SessionClaims
from core.clock import Clock, utc_now
from core.config import AuthPolicy

logger = logging.getLogger("accounts.auth.tokens")

_ALGORITHM = "HS256"


class RejectReason(str, Enum):
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"


class TokenRejected(Exception):
    """A presented session token failed verification. reason is internal only."""

    def __init__(self, reason: RejectReason) -> None:
        self.reason = reason
        super().__init__(reason.value)


class SessionTokenIssuer:
    """Mints and verifies signed, expiring session tokens.

    Usage:
        issuer = SessionTokenIssuer(AuthPolicy(secret_key=key))
        token = issuer.issue(42)
        issuer.verify(token)  # -> 42
    """

    def __init__(self, policy: AuthPolicy, clock: Clock = utc_now) -> None:
        self._key = policy.secret_key
        self._ttl = policy.session_ttl
        self._clock = clock

    @property
    def max_age_seconds(self) -> int:
        return int(self._ttl.total_seconds())

    def issue(self, account_id: int) -> str:
        """Encode a signed token bound to account_id, valid for the policy's session TTL."""
        issued = self._clock()
        payload = {
            "sub": str(account_id),
            "iat": int(issued.timestamp()),
            "exp": int((issued + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._key, algorithm=_ALGORITHM)

    def claims(self, token: str) -> SessionClaims:
        """Verify the token and return its decoded claims.

        Order: structure first (MALFORMED), then signature (BAD_SIGNATURE),
        then expiry against the injected clock (EXPIRED).
        """
        try:
            unverified = jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise TokenRejected(RejectReason.MALFORMED) from exc

        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "verify_nbf": False},
            )
        except JWTError as exc:
            raise TokenRejected(RejectReason.BAD_SIGNATURE) from exc

        try:
            subject = int(payload["sub"])
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError) as exc:
            logger.debug("Session token missing required claims: %s", sorted(unverified))
            raise TokenRejected(RejectReason.MALFORMED) from exc

        if self._clock() >= expires_at:
            raise TokenRejected(RejectReason.EXPIRED)
        return SessionClaims(subject=subject, issued_at=issued_at, expires_at=expires_at)

    def verify(self, token: str) -> int:
        """Return the account id the token is bound to, or raise TokenRejected."""
        return self.claims(token).subject


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_session_cookie(
    response,
    token: str,
    *,
    name: str,
    max_age: int,
    secure: bool = True,
    samesite: str = "none",
) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="none" + secure=True: the cookie travels on cross-site requests
        from a separately hosted frontend. Browsers drop samesite=none cookies
        that are not also secure.
    max_age: matches the token expiry so both expire together.
    """
    response.set_cookie(
        name,
        value=token,
        httponly=True,
        samesite=samesite,
        secure=secure,
        max_age=max_age,
    )


def clear_session_cookie(response, *, name: str, secure: bool = True, samesite: str = "none") -> None:
    """Delete the session cookie. Attributes must match the ones it was set with."""
    response.delete_cookie(name, httponly=True, samesite=samesite, secure=secure)
