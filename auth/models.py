"""
auth/models.py -- Domain dataclasses for account and credential entities.

Pattern: Data class. Account owns the shape of one registered identity plus
the small helpers that keep its paired optional fields consistent
(code + expiry, token + expiry). The state machine in auth/machine.py does
the work; the store in auth/store.py persists the result.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup: stripped and lower-cased."""
    return email.strip().lower()


@dataclass
class Account:
    """One registered identity.

    id is None until the store assigns it on create(). email is normalized and
    never changes after creation. password_hash never leaves the process --
    the API layer builds its response from explicit fields only.

    The verification pair and the reset pair are each either fully set or
    fully cleared; use the helpers below rather than assigning fields one at
    a time.
    """

    email: str
    password_hash: str
    name: str
    id: int | None = None
    is_verified: bool = False
    verification_code: str | None = None
    verification_expires_at: datetime | None = None
    reset_token: str | None = None
    reset_token_expires_at: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def issue_verification(self, code: str, expires_at: datetime) -> None:
        if self.is_verified:
            raise ValueError("verified accounts never receive a new verification code")
        self.verification_code = code
        self.verification_expires_at = expires_at

    def mark_verified(self) -> None:
        self.is_verified = True
        self.verification_code = None
        self.verification_expires_at = None

    def issue_reset(self, token: str, expires_at: datetime) -> None:
        self.reset_token = token
        self.reset_token_expires_at = expires_at

    def clear_reset(self) -> None:
        self.reset_token = None
        self.reset_token_expires_at = None

    @property
    def reset_pending(self) -> bool:
        return self.reset_token is not None


@dataclass(frozen=True)
class SessionClaims:
    """Decoded content of a session token. Never persisted."""

    subject: int
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class EmailJob:
    """A best-effort email send requested by a committed transition.

    kind names the Notifier method ("welcome", "reset_success", ...); params
    are its keyword arguments.
    """

    kind: str
    to: str
    params: dict = field(default_factory=dict)


@dataclass
class AuthOutcome:
    """Result of a state-machine transition.

    account   -- the account after the transition, when there is one.
    token     -- a freshly issued session token (verify_email, login).
    message   -- human-readable summary for the response body.
    deferred  -- emails to submit after the response is committed.
    email_sent -- False only when signup could not deliver the verification code.
    """

    message: str
    account: Account | None = None
    token: str | None = None
    deferred: list[EmailJob] = field(default_factory=list)
    email_sent: bool = True
