"""
Email Sender - alert delivery over SendGrid or SMTP

Uses requests directly against the SendGrid v3 API when an API key is
configured, otherwise falls back to SMTP over SSL. Implements the
``NotificationSink`` interface expected by the failure log.
"""

import os
import smtplib
import logging
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from throttleguard.utils.circuit_breaker import sendgrid_circuit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailSettings:
    """Mail transport configuration"""
    sendgrid_api_key: Optional[str] = None
    from_email: str = "noreply@example.com"
    from_name: str = "Login Throttle"
    smtp_host: Optional[str] = None
    smtp_port: int = 465
    smtp_username: str = ""
    smtp_password: str = ""
    timeout: int = 30

    @classmethod
    def from_env(cls) -> "EmailSettings":
        """Read transport settings from environment variables"""
        try:
            smtp_port = int(os.getenv("SMTP_PORT", "465"))
        except ValueError:
            smtp_port = 465
        return cls(
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY") or None,
            from_email=os.getenv("ALERT_FROM_EMAIL", cls.from_email),
            from_name=os.getenv("ALERT_FROM_NAME", cls.from_name),
            smtp_host=os.getenv("SMTP_HOST") or None,
            smtp_port=smtp_port,
            smtp_username=os.getenv("SMTP_USERNAME", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.sendgrid_api_key or self.smtp_host)


class EmailSender:
    """Send plain-text alert emails using SendGrid or SMTP"""

    SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, settings: Optional[EmailSettings] = None, session: Optional[requests.Session] = None):
        """
        Initialize email sender

        Args:
            settings: EmailSettings instance (defaults to environment)
            session: Optional requests session for SendGrid calls
        """
        self.settings = settings or EmailSettings.from_env()
        self.use_sendgrid = bool(self.settings.sendgrid_api_key)
        self.session = session or requests.Session()

        logger.info(f"Alert email sender initialized (SendGrid: {self.use_sendgrid})")

    def send(self, to_address: str, subject: str, body: str) -> bool:
        """
        Send one email

        Args:
            to_address: Recipient email address
            subject: Email subject
            body: Plain text body

        Returns:
            True if sent successfully, False otherwise
        """
        if self.use_sendgrid:
            return self._send_via_sendgrid(to_address, subject, body)
        return self._send_via_smtp(to_address, subject, body)

    def _send_via_sendgrid(self, to_address: str, subject: str, body: str) -> bool:
        """Send email via SendGrid API using requests"""
        if not sendgrid_circuit.can_execute():
            logger.warning(f"SendGrid circuit breaker OPEN - skipping alert to {to_address}")
            return False

        payload = {
            "personalizations": [{"to": [{"email": to_address}]}],
            "from": {
                "email": self.settings.from_email,
                "name": self.settings.from_name
            },
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}]
        }

        try:
            response = self._post_with_retry(payload)
        except requests.exceptions.RequestException as e:
            logger.error(f"SendGrid send failed to {to_address}: {e}")
            sendgrid_circuit.record_failure()
            return False

        if response.status_code in (200, 201, 202):
            sendgrid_circuit.record_success()
            logger.info(f"Alert email sent via SendGrid to {to_address}: {subject}")
            return True

        logger.error(f"SendGrid error: {response.status_code} - {response.text[:200]}")
        if response.status_code >= 500:
            sendgrid_circuit.record_failure()
        return False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((
            requests.exceptions.ConnectionError,
            requests.exceptions.Timeout,
        )),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _post_with_retry(self, payload: dict) -> requests.Response:
        """POST with retry on transient network errors."""
        headers = {
            "Authorization": f"Bearer {self.settings.sendgrid_api_key}",
            "Content-Type": "application/json"
        }
        return self.session.post(
            self.SENDGRID_API_URL,
            headers=headers,
            json=payload,
            timeout=self.settings.timeout
        )

    def _send_via_smtp(self, to_address: str, subject: str, body: str) -> bool:
        """Send email via SMTP (fallback)"""
        if not self.settings.smtp_host:
            logger.error(f"No mail transport configured, dropping alert to {to_address}")
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.settings.from_name} <{self.settings.from_email}>"
            msg['To'] = to_address
            msg.attach(MIMEText(body, 'plain'))

            with smtplib.SMTP_SSL(self.settings.smtp_host, self.settings.smtp_port,
                                  timeout=self.settings.timeout) as server:
                if self.settings.smtp_username and self.settings.smtp_password:
                    server.login(self.settings.smtp_username, self.settings.smtp_password)
                server.sendmail(self.settings.from_email, [to_address], msg.as_string())

            logger.info(f"Alert email sent via SMTP to {to_address}: {subject}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send failed to {to_address}: {e}")
            return False
