# email_handler.py

import os
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional
import logging

from config_manager import ConfigManager

logger = logging.getLogger(__name__)


class EmailHandler:
    """Sends report emails via SMTP to the recipients configured in [Email]."""

    def __init__(self, config: ConfigManager):
        self.config = config

    @property
    def recipients(self) -> List[str]:
        return [str(recipient) for recipient in self.config.email_settings.recipients]

    def build_message(self, subject: str, html_body: str, attachment_path: Optional[str] = None) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg['Subject'] = subject
        msg['From'] = self.config.sender_email
        msg['To'] = ", ".join(self.recipients)
        msg.attach(MIMEText(html_body, "html"))

        if attachment_path:
            with open(attachment_path, "rb") as handle:
                attachment = MIMEApplication(handle.read(), Name=os.path.basename(attachment_path))
            attachment['Content-Disposition'] = f'attachment; filename="{os.path.basename(attachment_path)}"'
            msg.attach(attachment)
        return msg

    def send_report(self, subject: str, html_body: str, attachment_path: Optional[str] = None) -> bool:
        """Sends one report email. Returns True on success; failures are logged, not raised."""
        if not all([self.config.smtp_server, self.config.sender_email,
                    self.config.smtp_username, self.config.smtp_password]):
            logger.warning("SMTP server, sender email, or credentials not fully configured. Skipping report email.")
            return False

        recipients = self.recipients
        if not recipients:
            logger.warning(f"No recipients configured for report '{subject}'. Skipping.")
            return False

        msg = self.build_message(subject, html_body, attachment_path)
        try:
            logger.info(f"Sending report '{subject}' to {len(recipients)} recipient(s) via "
                        f"{self.config.smtp_server}:{self.config.smtp_port}")
            with smtplib.SMTP(self.config.smtp_server, self.config.smtp_port) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(self.config.smtp_username, self.config.smtp_password)
                server.sendmail(self.config.sender_email, recipients, msg.as_string())
            logger.info(f"Report email sent to {', '.join(recipients)}.")
            return True
        except smtplib.SMTPException as e:
            logger.error(f"SMTP Error sending report '{subject}': {e}", exc_info=True)
            return False
