"""Best-effort transactional email for subscription changes."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import parseaddr
from typing import Any, Dict, Optional

from azure.communication.email import EmailClient

from billing.reconciler import CANCELLATION, WELCOME, NotificationRequest
from settings import EmailSettings

from .messages import EmailContent, cancellation_message, welcome_message

logger = logging.getLogger(__name__)

ACS_SUCCESS_STATUSES = {"queued", "accepted", "succeeded"}


class EmailNotifier:
    """Sends via Azure Communication Services, falling back to SMTP."""

    def __init__(self, settings: EmailSettings, frontend_url: str):
        self.settings = settings
        self.frontend_url = frontend_url.rstrip("/")

    def build_content(self, request: NotificationRequest) -> Optional[EmailContent]:
        if request.kind == WELCOME:
            return welcome_message(request.plan, self.frontend_url, request.language)
        if request.kind == CANCELLATION:
            return cancellation_message(self.frontend_url, request.language)
        return None

    def dispatch(self, request: NotificationRequest) -> bool:
        """Background-task entry point; never raises."""

        try:
            content = self.build_content(request)
            if content is None:
                logger.warning("Unknown notification kind %r; nothing sent", request.kind)
                return False
            return self.send(request.email, content)
        except Exception:  # noqa: BLE001 - email failures must not escape the background task
            logger.exception("Failed to send %s email to %s", request.kind, request.email)
            return False

    def send(self, recipient: str, content: EmailContent) -> bool:
        if not recipient:
            logger.warning("Email skipped; recipient missing")
            return False

        if self.settings.acs_connection_string:
            if self._send_via_acs(recipient, content):
                return True

        if not self.settings.smtp_host:
            logger.warning("No working email transport configured; %r to %s not sent", content.subject, recipient)
            return False

        return self._send_via_smtp(recipient, content)

    def _send_via_acs(self, recipient: str, content: EmailContent) -> bool:
        sender_address = parseaddr(self.settings.sender)[1] or self.settings.sender
        try:
            client = EmailClient.from_connection_string(self.settings.acs_connection_string)
            email_message: Dict[str, Any] = {
                "senderAddress": sender_address,
                "recipients": {"to": [{"address": recipient}]},
                "content": {
                    "subject": content.subject,
                    "plainText": content.text,
                    "html": content.html,
                },
            }

            poller = client.begin_send(email_message)
            result = poller.result(timeout=self.settings.timeout_seconds)
            status = result.get("status") if isinstance(result, dict) else getattr(result, "status", None)
            if status and str(status).lower() not in ACS_SUCCESS_STATUSES:
                logger.warning("ACS email send completed with status %s for %s", status, recipient)
                return False
        except Exception:  # noqa: BLE001 - fall through to SMTP
            logger.exception("Failed to send email via ACS to %s", recipient)
            return False

        logger.info("Email %r queued via ACS for %s", content.subject, recipient)
        return True

    def _send_via_smtp(self, recipient: str, content: EmailContent) -> bool:
        msg = EmailMessage()
        msg["Subject"] = content.subject
        msg["To"] = recipient
        msg["From"] = self.settings.sender
        msg.set_content(content.text)
        msg.add_alternative(content.html, subtype="html")

        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=self.settings.timeout_seconds) as smtp:
                if self.settings.smtp_use_tls:
                    smtp.starttls()
                if self.settings.smtp_username and self.settings.smtp_password:
                    smtp.login(self.settings.smtp_username, self.settings.smtp_password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send email via SMTP to %s", recipient)
            return False

        logger.info("Email %r sent via SMTP to %s", content.subject, recipient)
        return True
