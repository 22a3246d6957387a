"""
mail/templates.py -- Subjects and bodies for the four account emails.

Each template name owns three Jinja2 sources: <name>/subject.txt,
<name>/body.txt and <name>/body.html. Autoescaping is selected by extension,
so only the HTML body escapes its params. StrictUndefined makes a param
missing from a render call raise -- a programming error, not a delivery
failure. An unknown template name raises jinja2.TemplateNotFound.
"""

from __future__ import annotations

from dataclasses import dataclass

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

VERIFICATION = "verification"
WELCOME = "welcome"
PASSWORD_RESET = "password_reset"
RESET_SUCCESS = "reset_success"


@dataclass(frozen=True)
class RenderedEmail:
    to: str
    subject: str
    text: str
    html: str


_SOURCES: dict[str, str] = {
    f"{VERIFICATION}/subject.txt": "Verify your email",
    f"{VERIFICATION}/body.txt": (
        "Your verification code is {{ code }}.\n\nIt expires in {{ expires_in }}."
    ),
    f"{VERIFICATION}/body.html": (
        "<p>Your verification code is</p><p><strong>{{ code }}</strong></p>"
        "<p>It expires in {{ expires_in }}.</p>"
    ),
    f"{WELCOME}/subject.txt": "Welcome, {{ name }}",
    f"{WELCOME}/body.txt": "Hi {{ name }},\n\nYour email address is verified. Welcome aboard.",
    f"{WELCOME}/body.html": "<p>Hi {{ name }},</p><p>Your email address is verified. Welcome aboard.</p>",
    f"{PASSWORD_RESET}/subject.txt": "Reset your password",
    f"{PASSWORD_RESET}/body.txt": (
        "Use the link below to choose a new password. It expires in {{ expires_in }}.\n\n"
        "{{ reset_link }}\n\n"
        "If you did not request a reset, ignore this email."
    ),
    f"{PASSWORD_RESET}/body.html": (
        "<p>Use the link below to choose a new password. It expires in {{ expires_in }}.</p>"
        '<p><a href="{{ reset_link }}">Reset password</a></p>'
        "<p>If you did not request a reset, ignore this email.</p>"
    ),
    f"{RESET_SUCCESS}/subject.txt": "Your password was changed",
    f"{RESET_SUCCESS}/body.txt": (
        "Your password was reset successfully. If this was not you, contact support immediately."
    ),
    f"{RESET_SUCCESS}/body.html": (
        "<p>Your password was reset successfully.</p><p>If this was not you, contact support immediately.</p>"
    ),
}

_env = Environment(
    loader=DictLoader(_SOURCES),
    autoescape=select_autoescape(["html"], default_for_string=False),
    undefined=StrictUndefined,
)


def render(to: str, template: str, params: dict) -> RenderedEmail:
    """Render one template for one recipient."""
    return RenderedEmail(
        to=to,
        subject=_env.get_template(f"{template}/subject.txt").render(params).strip(),
        text=_env.get_template(f"{template}/body.txt").render(params),
        html=_env.get_template(f"{template}/body.html").render(params),
    )
