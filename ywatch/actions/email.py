# ywatch/actions/email.py

"""
Email notification action
"""
import smtplib
import logging
from email.mime.text import MIMEText
from typing import List

from ..exceptions import ActionExecutionError, ConfigurationError
from .base import Action

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = 'ywatch alert: %event% on %file%'

DEFAULT_BODY = """A filesystem event has been detected:

Event:     %event%
File:      %file%
Path:      %path%
Full Path: %fullpath%
Time:      %timestamp%
Watchlist: %watchlist%

--
This is an automated message from ywatch.
"""

FALLBACK_SENDER = 'ywatch@localhost'


class EmailAction(Action):
    """
    Send a plain-text email per event

    Recipients are the action's ``to`` plus the watchlist contacts; the
    guard address is used only when neither yields anyone.
    """

    type_name = 'email'

    def __init__(self, config, settings, watchlist=None):
        super().__init__(config, settings, watchlist)

        self.recipients = self._build_recipients()
        self.sender = self._build_sender()
        self.subject = str(self.option('subject', DEFAULT_SUBJECT))
        self.body = str(self.option('body', DEFAULT_BODY))
        self.smtp_host = settings.email.smtp_host
        self.smtp_port = settings.email.smtp_port

    def _build_recipients(self) -> List[str]:
        recipients = []

        to = self.option('to')
        if isinstance(to, (list, tuple)):
            recipients.extend(str(addr) for addr in to if addr)
        elif to:
            recipients.append(str(to))

        recipients.extend(self.get_contacts())

        if not recipients and self.settings.guard.email:
            recipients.append(self.settings.guard.email)

        if not recipients:
            raise ConfigurationError("No email recipients configured")

        # Keep order, drop repeats
        return list(dict.fromkeys(recipients))

    def _build_sender(self) -> str:
        return (
            self.option('from')
            or self.settings.email.from_address
            or self.settings.guard.email
            or FALLBACK_SENDER
        )

    def build_message(self, recipient: str, subject: str, body: str) -> MIMEText:
        msg = MIMEText(body, 'plain', 'utf-8')
        msg['From'] = self.sender
        msg['To'] = recipient
        msg['Subject'] = subject
        return msg

    def run(self, context):
        subject = self.expand(self.subject, context)
        body = self.expand(self.body, context)

        failures = []
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                for recipient in self.recipients:
                    try:
                        server.send_message(self.build_message(recipient, subject, body))
                        logger.debug(f"Email sent to {recipient}")
                    except smtplib.SMTPException as e:
                        logger.error(f"Failed to send email to {recipient}: {e}")
                        failures.append(recipient)
        except (OSError, smtplib.SMTPException) as e:
            raise ActionExecutionError(
                self.type_name, f"cannot reach SMTP server {self.smtp_host}:{self.smtp_port}: {e}", cause=e
            ) from e

        if failures:
            raise ActionExecutionError(self.type_name, f"delivery failed for: {', '.join(failures)}")
