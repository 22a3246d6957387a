"""
auth/codec.py -- Password hashing, one-time secret generation, and
constant-time comparison.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). The cost factor comes from
       AuthPolicy.bcrypt_rounds so production runs at 12 while tests run at
       the bcrypt minimum of 4. A per-codec dummy hash lets the login path spend the
       same bcrypt work whether or not the email is registered.

  Verification codes: secrets.randbelow over the full 10**n range, zero
       padded. A six digit code is only ~20 bits -- acceptable because it is
       single-use and short-lived (AuthPolicy.verification_ttl).

  Reset tokens: secrets.token_hex(n) with n >= 20 bytes (160 bits).

  Comparisons: every caller-supplied secret is compared with
       hmac.compare_digest so the time taken does not depend on where the
       first differing byte is.

Layer rule: no imports from api/ or mail/. Import from core/ is allowed.
"""

from __future__ import annotations

import hmac
import logging
import secrets

import bcrypt

from auth.errors import EncodingError
from core.config import AuthPolicy

logger = logging.getLogger("accounts.auth.codec")

_MIN_ROUNDS = 4


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt only reads the first 72 bytes of input. AuthService rejects
    longer passwords before they get here, so nothing is silently truncated.
    """
    try:
        salt = bcrypt.gensalt(rounds=max(rounds, _MIN_ROUNDS))
    except (OSError, ValueError) as exc:
        logger.error("bcrypt salt generation failed: %s", exc)
        raise EncodingError("Could not hash password.") from exc
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares digests in constant time. A malformed stored
    hash is treated as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# One-time secrets
# ---------------------------------------------------------------------------


def generate_verification_code(length: int = 6) -> str:
    """Return a uniformly random numeric code of exactly `length` digits."""
    return str(secrets.randbelow(10**length)).zfill(length)


def generate_reset_token(nbytes: int = 20) -> str:
    """Return a hex-encoded random token of at least 20 bytes of entropy."""
    return secrets.token_hex(max(nbytes, 20))


def secrets_match(supplied: str | None, stored: str | None) -> bool:
    """Constant-time equality for a caller-supplied secret and a stored one.

    None on either side never matches. compare_digest still runs when the
    lengths differ, so the call does not return early on a length mismatch.
    """
    if supplied is None or stored is None:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), stored.encode("utf-8"))


# ---------------------------------------------------------------------------
# Policy-bound facade
# ---------------------------------------------------------------------------


class CredentialCodec:
    """The codec functions bound to one AuthPolicy.

    The state machine holds one of these so cost factor, code length and
    token size all come from the same immutable configuration.
    """

    def __init__(self, policy: AuthPolicy) -> None:
        self._policy = policy
        # Dummy hash at the production cost so the unknown-account path costs
        # the same as a real check.
        self._dummy_hash = hash_password("accounts_timing_dummy", rounds=policy.bcrypt_rounds)

    def hash_password(self, plain: str) -> str:
        return hash_password(plain, rounds=self._policy.bcrypt_rounds)

    def verify_password(self, plain: str, hashed: str) -> bool:
        return verify_password(plain, hashed)

    def burn_password_check(self, plain: str) -> None:
        verify_password(plain, self._dummy_hash)

    def generate_verification_code(self) -> str:
        return generate_verification_code(self._policy.verification_code_length)

    def generate_reset_token(self) -> str:
        return generate_reset_token(self._policy.reset_token_bytes)

    @staticmethod
    def secrets_match(supplied: str | None, stored: str | None) -> bool:
        return secrets_match(supplied, stored)
