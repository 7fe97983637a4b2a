# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Delivery of one-time codes.

- LogMailer: development backend, writes the code to the log.
- SmtpMailer: sends a plain-text mail rendered from `mail_templates/`.

A failed delivery is logged and reported as False; it never aborts the
operation that issued the code.
"""

from __future__ import annotations

import logging
import smtplib
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from pathlib import Path
from typing import Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from shopauth.errors import ConfigError
from shopauth.models import Purpose
from shopauth.settings import Settings

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "mail_templates"

SUBJECTS = {
    Purpose.VERIFICATION: "Verify your email address",
    Purpose.RESET: "Your password reset code",
}

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
    keep_trailing_newline=True,
)


def render_code_mail(*, email: str, code: str, purpose: Purpose, ttl: int, name: str = "") -> Tuple[str, str]:
    """Return (subject, body) for a code mail."""
    purpose = Purpose(purpose)
    tpl = _env.get_template(f"{purpose.value}.txt.j2")
    body = tpl.render(email=email, code=code, name=name, minutes=max(1, int(ttl) // 60))
    return SUBJECTS[purpose], body


class CodeMailer(ABC):
    @abstractmethod
    def send_code(self, email: str, code: str, purpose: Purpose, ttl: int, name: str = "") -> bool:
        """Deliver a code. Returns False when delivery failed."""


class LogMailer(CodeMailer):
    def send_code(self, email: str, code: str, purpose: Purpose, ttl: int, name: str = "") -> bool:
        logger.info("%s code for %s: %s", Purpose(purpose).value.capitalize(), email, code)
        return True


class SmtpMailer(CodeMailer):
    def __init__(self, server: str, port: int, sender: Optional[str], password: Optional[str]):
        self.server = server
        self.port = int(port)
        self.sender = sender
        self.password = password

    def send_code(self, email: str, code: str, purpose: Purpose, ttl: int, name: str = "") -> bool:
        if not self.sender or not self.password:
            logger.error("Email credentials not configured. Set SENDER_EMAIL and SENDER_PASSWORD.")
            return False

        subject, body = render_code_mail(email=email, code=code, purpose=purpose, ttl=ttl, name=name)
        message = MIMEText(body, "plain", "utf-8")
        message["From"] = self.sender
        message["To"] = email
        message["Subject"] = subject

        try:
            with smtplib.SMTP(self.server, self.port) as server:
                server.starttls()
                server.login(self.sender, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Error sending %s code to %s: %s", Purpose(purpose).value, email, e)
            return False

        logger.info("%s code sent to %s", Purpose(purpose).value.capitalize(), email)
        return True


def build_mailer(settings: Settings) -> CodeMailer:
    if settings.mail_backend == "log":
        return LogMailer()
    if settings.mail_backend == "smtp":
        return SmtpMailer(
            settings.smtp_server,
            settings.smtp_port,
            settings.sender_email,
            settings.sender_password,
        )
    raise ConfigError(f"Unknown mail backend: {settings.mail_backend!r}")
