from __future__ import annotations

import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from forum_auth.logging import get_logger, redact_email

logger = get_logger("mail")


@dataclass(frozen=True)
class EmailResult:
    success: bool
    dev: bool = False
    error: str | None = None


class EmailSender(Protocol):
    def send(self, to: str, subject: str, html_body: str, text_body: str | None = None) -> EmailResult:
        ...


class SmtpEmailSender:
    """Sends mail over SMTP.

    Without an SMTP host the sender runs as a development fallback: nothing
    leaves the process, a redacted notice is logged and the result reports
    ``success=True, dev=True``.
    """

    def __init__(
        self,
        smtp_host: str | None = None,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        use_tls: bool = True,
        from_email: str = "noreply@gameforum.com",
        timeout: int = 30,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.use_tls = use_tls
        self.from_email = from_email
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send(self, to: str, subject: str, html_body: str, text_body: str | None = None) -> EmailResult:
        if not self.is_configured:
            logger.warning("Email transport not configured, dropping message to=%s subject=%s", redact_email(to), subject)
            return EmailResult(success=True, dev=True)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        try:
            if self.use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._login(server)
                    server.sendmail(self.from_email, [to], msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=self.timeout) as server:
                    self._login(server)
                    server.sendmail(self.from_email, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email send failed to=%s error=%s", redact_email(to), exc.__class__.__name__)
            return EmailResult(success=False, error=exc.__class__.__name__)

        logger.info("Email sent to=%s subject=%s", redact_email(to), subject)
        return EmailResult(success=True)

    def _login(self, server: smtplib.SMTP) -> None:
        if self.smtp_user and self.smtp_password:
            server.login(self.smtp_user, self.smtp_password)
