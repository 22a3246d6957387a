"""
auth/machine.py -- The credential state machine.

An account is Unverified or Verified; ResetPending (a live reset token) can
coexist with either. AuthService exposes one method per transition. Each
method reads the account once, checks its guards in a fixed order, mutates
the in-memory copy, and commits with a single store.save(). If anything
raises before that save, the stored account is untouched.

Guard order matters:
  verify_email  -- already-verified is checked before the code is compared,
                   so replaying a code against a verified account does no
                   comparison at all. The constant-time comparison runs
                   before the expiry check.
  login         -- an unknown email still costs one bcrypt verification and
                   yields the same InvalidCredentials as a wrong password.
  reset_password -- the store only returns unexpired tokens; the token is
                   then re-compared in constant time.

Side effects: welcome, reset-link and reset-confirmation emails are returned
as EmailJob entries in AuthOutcome.deferred. The API layer submits them after
the response is committed; their failure is logged by Notifier.deliver() and
never reaches the transition. The signup verification email is the one
exception -- it is sent inline and a failure is reported as email_sent=False.

Layer rule: no imports from api/. mail/ is reached only through Notifier.
"""

from __future__ import annotations

import logging

from auth.codec import CredentialCodec
from auth.errors import (
    COLLAPSED_CODE_MESSAGE,
    AccountConflictError,
    AlreadyVerified,
    CodeExpired,
    CodeMismatch,
    Conflict,
    InvalidCredentials,
    InvalidOrExpiredToken,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from auth.models import Account, AuthOutcome, EmailJob, normalize_email
from auth.store import AccountStore
from auth.tokens import SessionTokenIssuer, TokenRejected
from core.clock import Clock, utc_now
from core.config import AuthPolicy
from mail import templates
from mail.notifier import Notifier

logger = logging.getLogger("accounts.auth")

# bcrypt reads at most 72 bytes; longer input is rejected rather than truncated.
_MAX_PASSWORD_BYTES = 72


def _require(**fields: str | None) -> None:
    """Raise ValidationError if any named field is missing or blank."""
    if any(value is None or not str(value).strip() for value in fields.values()):
        raise ValidationError()


def _check_password_length(password: str) -> None:
    if len(password.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {_MAX_PASSWORD_BYTES} bytes.")


class AuthService:
    """Signup, verification, login, logout, and password reset.

    All collaborators are injected. The service holds no mutable state of its
    own, so one instance is shared by every request.
    """

    def __init__(
        self,
        store: AccountStore,
        codec: CredentialCodec,
        issuer: SessionTokenIssuer,
        notifier: Notifier,
        policy: AuthPolicy,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.codec = codec
        self.issuer = issuer
        self.notifier = notifier
        self.policy = policy
        self.clock = clock

    # ------------------------------------------------------------------
    # Signup -> Unverified
    # ------------------------------------------------------------------

    def signup(self, email: str | None, password: str | None, name: str | None) -> AuthOutcome:
        _require(email=email, password=password, name=name)
        _check_password_length(password)
        email = normalize_email(email)

        if self.store.find_by_email(email) is not None:
            raise Conflict()

        code = self.codec.generate_verification_code()
        account = Account(
            email=email,
            password_hash=self.codec.hash_password(password),
            name=name.strip(),
        )
        account.issue_verification(code, self.clock() + self.policy.verification_ttl)
        try:
            account = self.store.create(account)
        except AccountConflictError as exc:
            # Lost a race with a concurrent signup for the same email.
            raise Conflict() from exc
        logger.info("Account %s created (unverified)", account.id)

        try:
            sent = self.notifier.send_verification_email(account.email, code)
        except Exception:
            logger.exception("Verification email for account %s raised", account.id)
            sent = False
        if not sent:
            logger.warning("Verification email for account %s was not delivered", account.id)
            return AuthOutcome(
                message="Account created but verification email failed to send. Please contact support.",
                account=account,
                email_sent=False,
            )
        return AuthOutcome(
            message="User created successfully. Please check your email for verification code.",
            account=account,
        )

    # ------------------------------------------------------------------
    # VerifyEmail: Unverified -> Verified
    # ------------------------------------------------------------------

    def verify_email(self, email: str | None, code: str | None) -> AuthOutcome:
        _require(email=email, code=code)
        account = self.store.find_by_email(email)
        if account is None:
            raise NotFound()
        if account.is_verified:
            raise AlreadyVerified()

        matches = self.codec.secrets_match(code.strip(), account.verification_code)
        if not matches:
            raise self._code_error(CodeMismatch)
        expires_at = account.verification_expires_at
        if expires_at is None or self.clock() > expires_at:
            raise self._code_error(CodeExpired)

        account.mark_verified()
        self.store.save(account)
        logger.info("Account %s verified", account.id)

        return AuthOutcome(
            message="Email verified successfully",
            account=account,
            token=self.issuer.issue(account.id),
            deferred=[EmailJob(templates.WELCOME, account.email, {"name": account.name})],
        )

    def _code_error(self, error_cls: type[CodeMismatch] | type[CodeExpired]) -> CodeMismatch | CodeExpired:
        if self.policy.collapse_code_errors:
            return error_cls(COLLAPSED_CODE_MESSAGE)
        return error_cls()

    # ------------------------------------------------------------------
    # Login / Logout
    # ------------------------------------------------------------------

    def login(self, email: str | None, password: str | None) -> AuthOutcome:
        if not email or not password:
            raise InvalidCredentials()
        account = self.store.find_by_email(email)
        if account is None:
            self.codec.burn_password_check(password)
            raise InvalidCredentials()
        if not self.codec.verify_password(password, account.password_hash):
            raise InvalidCredentials()

        account.last_login_at = self.clock()
        self.store.save(account)
        logger.info("Account %s logged in", account.id)
        return AuthOutcome(
            message="Logged in successfully",
            account=account,
            token=self.issuer.issue(account.id),
        )

    def logout(self) -> AuthOutcome:
        """Sessions are stateless: logging out only tells the caller to drop its token."""
        return AuthOutcome(message="Logged out successfully")

    # ------------------------------------------------------------------
    # ForgotPassword / ResetPassword
    # ------------------------------------------------------------------

    def forgot_password(self, email: str | None) -> AuthOutcome:
        _require(email=email)
        account = self.store.find_by_email(email)
        if account is None:
            raise NotFound()

        token = self.codec.generate_reset_token()
        account.issue_reset(token, self.clock() + self.policy.reset_ttl)
        self.store.save(account)
        logger.info("Password reset requested for account %s", account.id)

        reset_link = f"{self.policy.client_url}/reset-password/{token}"
        return AuthOutcome(
            message="Password reset link sent to your email",
            deferred=[EmailJob(templates.PASSWORD_RESET, account.email, {"reset_link": reset_link})],
        )

    def reset_password(self, token: str | None, password: str | None) -> AuthOutcome:
        if not token or not token.strip():
            raise InvalidOrExpiredToken()
        _require(password=password)
        _check_password_length(password)

        account = self.store.find_by_reset_token(token, self.clock())
        if account is None or not self.codec.secrets_match(token, account.reset_token):
            raise InvalidOrExpiredToken()

        account.password_hash = self.codec.hash_password(password)
        account.clear_reset()
        self.store.save(account)
        logger.info("Password reset completed for account %s", account.id)

        return AuthOutcome(
            message="Password reset successful",
            deferred=[EmailJob(templates.RESET_SUCCESS, account.email)],
        )

    # ------------------------------------------------------------------
    # Read-only checks
    # ------------------------------------------------------------------

    def check_verification_status(self, email: str | None) -> bool:
        if not email or not email.strip():
            raise ValidationError("Email is required")
        account = self.store.find_by_email(email)
        if account is None:
            raise NotFound(status_code=404)
        return account.is_verified

    def check_session(self, token: str | None) -> Account:
        """Resolve a presented session token to its account.

        Every failure -- no token, bad structure, bad signature, expired,
        account gone -- raises the same Unauthenticated.
        """
        if not token:
            raise Unauthenticated()
        try:
            account_id = self.issuer.verify(token)
        except TokenRejected as exc:
            logger.debug("Session token rejected: %s", exc.reason.value)
            raise Unauthenticated() from exc
        account = self.store.find_by_id(account_id)
        if account is None:
            raise Unauthenticated()
        return account
