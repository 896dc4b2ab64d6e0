"""
Outbound mail for the Weather Subscriptions service.

Provides:
- SMTPMailer: STARTTLS SMTP transport with a bounded timeout
- ConsoleMailer: logs messages instead of sending them (no SMTP configured)
- Email templates for the confirmation link and the forecast update
"""

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from .errors import TransportError
from .fetcher import CurrentConditions

logger = logging.getLogger(__name__)

DEFAULT_SMTP_TIMEOUT = 15  # seconds


class MailError(TransportError):
    """Mail transport failed to accept a message."""
    pass


@dataclass
class OutgoingEmail:
    subject: str
    text: str
    html: Optional[str] = None


class Mailer:
    """Interface shared by the mail transports."""

    def send(self, to: str, subject: str, text: str, html: Optional[str] = None) -> None:
        raise NotImplementedError

    def send_email(self, to: str, email: OutgoingEmail) -> None:
        self.send(to, email.subject, email.text, email.html)

    def close(self) -> None:
        pass


class SMTPMailer(Mailer):
    """SMTP transport. Opens one connection per message."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        use_tls: bool = True,
        timeout: int = DEFAULT_SMTP_TIMEOUT
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, text: str, html: Optional[str]) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender or ""
        message["To"] = to
        message.set_content(text)
        if html:
            message.add_alternative(html, subtype="html")
        return message

    def send(self, to: str, subject: str, text: str, html: Optional[str] = None) -> None:
        try:
            message = self._build_message(to, subject, text, html)
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.ehlo()
                if self.use_tls:
                    smtp.starttls()
                    smtp.ehlo()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            raise MailError(f"Failed to send email to {to}: {e}") from e

        logger.info(f"Email sent to {to}: {subject}")


class ConsoleMailer(Mailer):
    """Logs outgoing mail. Used when no SMTP host is configured."""

    def send(self, to: str, subject: str, text: str, html: Optional[str] = None) -> None:
        logger.info(f"[mail disabled] to={to} subject={subject!r}\n{text}")


# =============================================================================
# Email Templates
# =============================================================================

def build_confirmation_email(confirm_link: str) -> OutgoingEmail:
    """Double opt-in email carrying the confirmation link."""
    return OutgoingEmail(
        subject="Confirm your weather subscription",
        text=f"Open this link to confirm your subscription:\n{confirm_link}\n",
        html=f'<p>Click <a href="{confirm_link}">here</a> to confirm your subscription.</p>'
    )


def build_forecast_email(conditions: CurrentConditions) -> OutgoingEmail:
    """Weather update for one city."""
    text = (
        f"Weather in {conditions.city}:\n"
        f"🌡️ Temp: {conditions.temperature_celsius}°C\n"
        f"💧 Humidity: {conditions.humidity_percent}%\n"
        f"☁️ Condition: {conditions.condition_text}\n"
    )
    return OutgoingEmail(
        subject=f"⛅ Weather Update for {conditions.city}",
        text=text
    )
