"""
mail/transport.py -- Delivery backends behind the Mailer protocol.

Mailer.send(to, template, params) -> bool is the whole contract: True when
the message was handed to the transport, False when it was not. Backends
never raise for delivery problems; they log and return False so callers can
decide whether the failure matters.

Backends:
  console -- writes the rendered message to the log, one-time codes
             included. Settings refuses it unless DEBUG=true.
  smtp    -- smtplib with STARTTLS (port 587) or implicit TLS (port 465),
             bounded by a socket timeout.

build_mailer(settings) picks one from MAIL_BACKEND.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, parseaddr
from typing import Protocol

from core.config import Settings
from mail.templates import RenderedEmail, render

logger = logging.getLogger("accounts.mail")


class Mailer(Protocol):
    def send(self, to: str, template: str, params: dict) -> bool: ...


class ConsoleMailer:
    """Log every message instead of delivering it."""

    def __init__(self, sender: str) -> None:
        self.sender = sender

    def send(self, to: str, template: str, params: dict) -> bool:
        message = render(to, template, params)
        logger.info(
            "\n--- MAIL (console) ---\nFrom: %s\nTo: %s\nSubject: %s\n\n%s\n--- END ---",
            self.sender,
            message.to,
            message.subject,
            message.text,
        )
        return True


class SmtpMailer:
    """Deliver messages through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        sender: str,
        use_tls: bool = True,
        timeout: float = 20.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def _build(self, message: RenderedEmail) -> EmailMessage:
        display_name, address = parseaddr(self.sender)
        msg = EmailMessage()
        msg["From"] = formataddr((display_name, address or self.user))
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.set_content(message.text)
        msg.add_alternative(message.html, subtype="html")
        return msg

    def send(self, to: str, template: str, params: dict) -> bool:
        msg = self._build(render(to, template, params))
        try:
            if self.use_tls:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                    smtp.starttls()
                    if self.user:
                        smtp.login(self.user, self.password)
                    smtp.send_message(msg)
            else:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as smtp:
                    if self.user:
                        smtp.login(self.user, self.password)
                    smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery of %r to %s failed: %r", template, to, exc)
            return False
        logger.info("Sent %r email to %s via SMTP", template, to)
        return True


def build_mailer(settings: Settings) -> Mailer:
    """Return the Mailer selected by MAIL_BACKEND."""
    backend = settings.mail_backend.strip().lower()
    if backend == "smtp":
        if not settings.smtp_host:
            raise ValueError("MAIL_BACKEND=smtp requires SMTP_HOST.")
        return SmtpMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.mail_from,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
        )
    if backend == "console":
        return ConsoleMailer(settings.mail_from)
    raise ValueError(f"Unknown MAIL_BACKEND {settings.mail_backend!r}")
