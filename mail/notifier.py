"""
mail/notifier.py -- The four account emails, on top of any Mailer.

The state machine calls send_verification_email() inline during signup (its
result is reported back to the caller). Every other email is requested as an
EmailJob after the transition commits and run later through deliver(), which
logs and swallows any failure: a lost welcome email must never undo a
verification that already happened.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from auth.models import EmailJob
from mail import templates
from mail.transport import Mailer

logger = logging.getLogger("accounts.mail.notifier")


def describe_duration(delta: timedelta) -> str:
    """Human wording for a credential lifetime, e.g. "24 hours" or "30 minutes"."""
    seconds = int(delta.total_seconds())
    if seconds % 3600 == 0:
        value, unit = seconds // 3600, "hour"
    else:
        value, unit = max(seconds // 60, 1), "minute"
    return f"{value} {unit}" + ("" if value == 1 else "s")


class Notifier:
    def __init__(
        self,
        mailer: Mailer,
        verification_ttl: timedelta = timedelta(hours=24),
        reset_ttl: timedelta = timedelta(hours=1),
    ) -> None:
        self.mailer = mailer
        self.verification_ttl = verification_ttl
        self.reset_ttl = reset_ttl

    def send_verification_email(self, email: str, code: str) -> bool:
        params = {"code": code, "expires_in": describe_duration(self.verification_ttl)}
        return self.mailer.send(email, templates.VERIFICATION, params)

    def send_welcome_email(self, email: str, name: str) -> bool:
        return self.mailer.send(email, templates.WELCOME, {"name": name})

    def send_password_reset_email(self, email: str, reset_link: str) -> bool:
        params = {"reset_link": reset_link, "expires_in": describe_duration(self.reset_ttl)}
        return self.mailer.send(email, templates.PASSWORD_RESET, params)

    def send_reset_success_email(self, email: str) -> bool:
        return self.mailer.send(email, templates.RESET_SUCCESS, {})

    def deliver(self, job: EmailJob) -> bool:
        """Run one deferred email job. Never raises."""
        handlers = {
            templates.WELCOME: self.send_welcome_email,
            templates.PASSWORD_RESET: self.send_password_reset_email,
            templates.RESET_SUCCESS: self.send_reset_success_email,
            templates.VERIFICATION: self.send_verification_email,
        }
        handler = handlers.get(job.kind)
        if handler is None:
            logger.error("Dropping email job with unknown kind %r", job.kind)
            return False
        try:
            sent = handler(job.to, **job.params)
        except Exception:
            logger.exception("Email job %r to %s raised; transition already committed", job.kind, job.to)
            return False
        if not sent:
            logger.warning("Email job %r to %s was not delivered", job.kind, job.to)
        return sent
