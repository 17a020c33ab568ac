"""
E-mail Service - SMTP delivery of documents, reminders and account mails.

Every customer-facing mail is recorded in the email_logs table.
"""

import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Optional, Tuple

from database.models import EmailLog
from services.errors import ExternalServiceError, ServiceError

logger = logging.getLogger(__name__)

# (filename, bytes, mime subtype)
Attachment = Tuple[str, bytes, str]


class EmailService:
    """Thin SMTP client configured from the Flask config."""

    def __init__(self, config):
        self.smtp_host = config.get('SMTP_HOST', '')
        self.smtp_port = int(config.get('SMTP_PORT', 587))
        self.smtp_user = config.get('SMTP_USER', '')
        self.smtp_password = config.get('SMTP_PASSWORD', '')
        self.use_tls = config.get('SMTP_USE_TLS', True)
        self.from_email = config.get('FROM_EMAIL', 'noreply@zoguone.app')

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host)

    def build_message(self, to: str, subject: str, body: str, html: str = None,
                      attachments: List[Attachment] = None, reply_to: str = None,
                      from_name: str = None) -> MIMEMultipart:
        msg = MIMEMultipart('mixed')
        msg['Subject'] = subject
        msg['From'] = f"{from_name} <{self.from_email}>" if from_name else self.from_email
        msg['To'] = to
        if reply_to:
            msg['Reply-To'] = reply_to

        alternative = MIMEMultipart('alternative')
        alternative.attach(MIMEText(body, 'plain', 'utf-8'))
        if html:
            alternative.attach(MIMEText(html, 'html', 'utf-8'))
        msg.attach(alternative)

        for filename, content, subtype in attachments or []:
            part = MIMEApplication(content, _subtype=subtype)
            part.add_header('Content-Disposition', 'attachment', filename=filename)
            msg.attach(part)

        return msg

    def send_email(self, to: str, subject: str, body: str, html: str = None,
                   attachments: List[Attachment] = None, reply_to: str = None,
                   from_name: str = None) -> bool:
        """
        Send one message.

        Raises:
            ServiceError: If SMTP is not configured
            ExternalServiceError: If the SMTP server rejects the message
        """
        if not self.is_configured:
            raise ServiceError("E-mail sending is not configured")

        msg = self.build_message(to, subject, body, html, attachments, reply_to, from_name)
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                if self.use_tls:
                    server.starttls()
                if self.smtp_user:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send e-mail to {to}: {e}")
            raise ExternalServiceError(f"Could not send e-mail: {e}")

        logger.info(f"Sent e-mail '{subject}' to {to}")
        return True

    # =========================================================================
    # ACCOUNT MAILS
    # =========================================================================

    def send_invitation(self, to: str, org_name: str, role: str, invited_by: str = None,
                        app_url: str = '') -> bool:
        inviter = f" by {invited_by}" if invited_by else ''
        body = (
            f"Hello,\n\nyou have been invited{inviter} to join {org_name} on ZoguOne as {role}.\n"
            f"Sign in or create an account with this e-mail address to accept the invitation:\n"
            f"{app_url}/auth\n"
        )
        return self.send_email(to, f"Invitation to {org_name}", body)

    def send_password_reset_link(self, to: str, reset_url: str) -> bool:
        body = (
            "Hello,\n\nsomebody asked to reset the password of your ZoguOne account.\n"
            f"Choose a new password here within the next hour:\n{reset_url}\n\n"
            "If you did not ask for this, ignore this mail; your password stays unchanged.\n"
        )
        return self.send_email(to, "Reset your ZoguOne password", body)

    def send_password_reset(self, to: str, temporary_password: str) -> bool:
        body = (
            "Hello,\n\nan administrator has reset your ZoguOne password.\n"
            f"Your temporary password is: {temporary_password}\n\n"
            "Please change it after signing in.\n"
        )
        return self.send_email(to, "Your password has been reset", body)


def log_email(session, org_id: str, document_type: str, related_document_id, recipient: str,
              subject: str, customer_id: int = None, sent_by_user_id: str = None) -> Dict:
    """Record a sent customer mail."""
    entry = EmailLog(
        org_id=org_id,
        customer_id=customer_id,
        sent_by_user_id=sent_by_user_id,
        document_type=document_type,
        related_document_id=str(related_document_id) if related_document_id is not None else None,
        subject=subject,
        recipient=recipient,
    )
    session.add(entry)
    session.flush()
    return entry.to_dict()


def email_history(session, document_type: str, document_id) -> List[Dict]:
    rows = session.query(EmailLog).filter(
        EmailLog.document_type == document_type,
        EmailLog.related_document_id == str(document_id)
    ).order_by(EmailLog.sent_at.desc()).all()
    return [row.to_dict() for row in rows]


def ensure_customer_mail_allowed(organization, customer) -> Optional[str]:
    """Return the recipient address or raise when the organization or customer cannot receive mail."""
    if not organization or not organization.is_email_sending_enabled:
        raise ServiceError("E-mail sending is not enabled for this organization")
    if not customer or not customer.email:
        raise ServiceError("Customer has no e-mail address")
    return customer.email
