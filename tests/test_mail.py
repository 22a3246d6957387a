"""Unit tests for mail/ -- templates, transports, and the Notifier.

Covers:
- Every template renders through Jinja2; only HTML params are escaped
- Expiry wording follows the configured credential windows
- Notifier.deliver() runs deferred jobs and never raises
- ConsoleMailer logs; SmtpMailer reports transport errors as False
- build_mailer() picks the backend from settings; console is DEBUG only
"""

from __future__ import annotations

import logging
import smtplib
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from jinja2 import TemplateNotFound, UndefinedError

from auth.models import EmailJob
from core.config import Settings
from mail import templates
from mail.notifier import Notifier, describe_duration
from mail.transport import ConsoleMailer, SmtpMailer, build_mailer

_SECRET = "s" * 40


class TestTemplates:
    @pytest.mark.parametrize(
        "name,params",
        [
            (templates.VERIFICATION, {"code": "012345", "expires_in": "24 hours"}),
            (templates.WELCOME, {"name": "Ann"}),
            (
                templates.PASSWORD_RESET,
                {"reset_link": "http://frontend.test/reset-password/abc", "expires_in": "1 hour"},
            ),
            (templates.RESET_SUCCESS, {}),
        ],
    )
    def test_renders(self, name: str, params: dict) -> None:
        message = templates.render("a@x.com", name, params)
        assert message.to == "a@x.com"
        assert message.subject
        for value in params.values():
            assert value in message.text

    def test_html_is_escaped(self) -> None:
        message = templates.render("a@x.com", templates.WELCOME, {"name": "<script>x</script>"})
        assert "<script>" not in message.html
        assert "&lt;script&gt;" in message.html

    def test_text_body_is_not_escaped(self) -> None:
        link = "http://frontend.test/reset-password/abc?x=1&y=2"
        params = {"reset_link": link, "expires_in": "1 hour"}
        message = templates.render("a@x.com", templates.PASSWORD_RESET, params)
        assert link in message.text
        assert "x=1&amp;y=2" in message.html

    def test_unknown_template(self) -> None:
        with pytest.raises(TemplateNotFound):
            templates.render("a@x.com", "nope", {})

    def test_missing_param(self) -> None:
        with pytest.raises(UndefinedError):
            templates.render("a@x.com", templates.VERIFICATION, {"code": "012345"})


class TestNotifier:
    def test_deliver_runs_job(self, mailer) -> None:
        assert Notifier(mailer).deliver(EmailJob(templates.WELCOME, "a@x.com", {"name": "Ann"})) is True
        assert mailer.sent == [("a@x.com", templates.WELCOME, {"name": "Ann"})]

    def test_deliver_swallows_transport_exception(self, mailer, caplog) -> None:
        mailer.raising.add(templates.RESET_SUCCESS)
        with caplog.at_level(logging.ERROR, logger="accounts.mail.notifier"):
            assert Notifier(mailer).deliver(EmailJob(templates.RESET_SUCCESS, "a@x.com")) is False
        assert "transition already committed" in caplog.text

    def test_deliver_reports_undelivered(self, mailer) -> None:
        mailer.failing.add(templates.WELCOME)
        assert Notifier(mailer).deliver(EmailJob(templates.WELCOME, "a@x.com", {"name": "Ann"})) is False

    def test_unknown_kind_is_dropped(self, mailer) -> None:
        assert Notifier(mailer).deliver(EmailJob("bogus", "a@x.com")) is False
        assert mailer.sent == []

    def test_expiry_wording_follows_configured_windows(self, mailer) -> None:
        notifier = Notifier(mailer, verification_ttl=timedelta(minutes=30), reset_ttl=timedelta(hours=2))
        notifier.send_verification_email("a@x.com", "012345")
        notifier.send_password_reset_email("a@x.com", "http://frontend.test/reset-password/abc")
        assert mailer.last(templates.VERIFICATION)[2]["expires_in"] == "30 minutes"
        assert mailer.last(templates.PASSWORD_RESET)[2]["expires_in"] == "2 hours"


@pytest.mark.parametrize(
    "delta,wording",
    [
        (timedelta(hours=24), "24 hours"),
        (timedelta(hours=1), "1 hour"),
        (timedelta(minutes=90), "90 minutes"),
        (timedelta(seconds=30), "1 minute"),
    ],
)
def test_describe_duration(delta: timedelta, wording: str) -> None:
    assert describe_duration(delta) == wording


class TestTransports:
    def test_console_mailer_logs(self, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="accounts.mail"):
            assert ConsoleMailer("no-reply@test").send("a@x.com", templates.WELCOME, {"name": "Ann"}) is True
        assert "Welcome, Ann" in caplog.text

    def test_smtp_starttls_flow(self) -> None:
        mailer = SmtpMailer("smtp.test", 587, "user", "pw", "Accounts <no-reply@test>")
        with patch("mail.transport.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            assert mailer.send("a@x.com", templates.RESET_SUCCESS, {}) is True
        smtp_cls.assert_called_once_with("smtp.test", 587, timeout=20.0)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("user", "pw")
        sent = smtp.send_message.call_args.args[0]
        assert sent["To"] == "a@x.com"
        assert sent["From"] == "Accounts <no-reply@test>"

    def test_smtp_ssl_flow(self) -> None:
        mailer = SmtpMailer("smtp.test", 465, "user", "pw", "no-reply@test", use_tls=False, timeout=3)
        with patch("mail.transport.smtplib.SMTP_SSL") as ssl_cls:
            assert mailer.send("a@x.com", templates.RESET_SUCCESS, {}) is True
        ssl_cls.assert_called_once_with("smtp.test", 465, timeout=3)

    def test_smtp_failure_returns_false(self) -> None:
        mailer = SmtpMailer("smtp.test", 587, "user", "pw", "no-reply@test")
        with patch("mail.transport.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, b"busy")):
            assert mailer.send("a@x.com", templates.RESET_SUCCESS, {}) is False

    def test_smtp_timeout_returns_false(self) -> None:
        mailer = SmtpMailer("smtp.test", 587, "", "", "no-reply@test")
        smtp_cls = MagicMock()
        smtp_cls.return_value.__enter__.return_value.send_message.side_effect = TimeoutError()
        with patch("mail.transport.smtplib.SMTP", smtp_cls):
            assert mailer.send("a@x.com", templates.RESET_SUCCESS, {}) is False


class TestBuildMailer:
    def test_console_default(self) -> None:
        assert isinstance(build_mailer(Settings(secret_key=_SECRET)), ConsoleMailer)

    def test_smtp(self) -> None:
        mailer = build_mailer(Settings(secret_key=_SECRET, mail_backend="smtp", smtp_host="smtp.test"))
        assert isinstance(mailer, SmtpMailer)
        assert mailer.host == "smtp.test"

    def test_smtp_requires_host(self) -> None:
        with pytest.raises(ValueError, match="SMTP_HOST"):
            build_mailer(Settings(secret_key=_SECRET, mail_backend="smtp"))

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown MAIL_BACKEND"):
            build_mailer(Settings(secret_key=_SECRET, mail_backend="pigeon"))

    def test_console_refused_outside_debug(self) -> None:
        with pytest.raises(ValueError, match="MAIL_BACKEND=console"):
            build_mailer(Settings(debug=False, secret_key=_SECRET))

    def test_console_never_reaches_production_logs(self, caplog) -> None:
        settings = Settings(debug=False, secret_key=_SECRET, mail_backend="smtp", smtp_host="smtp.test")
        mailer = build_mailer(settings)
        with patch("mail.transport.smtplib.SMTP"), caplog.at_level(logging.DEBUG, logger="accounts.mail"):
            assert Notifier(mailer).send_verification_email("a@x.com", "493817") is True
        assert "493817" not in caplog.text
