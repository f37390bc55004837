"""
Best-effort email fan-out of new approval requests to every approver.
notify_approvers never raises: each failed delivery is logged with its reason and dropped,
with no retry.
"""

import html
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from .config import (
    SENDER_EMAIL,
    SMTP_HOST,
    SMTP_PORT,
    SMTP_TIMEOUT_SEC,
    SMTP_USER,
    get_smtp_password,
)
from .users import list_approver_emails
from ..util.logging import logger


class NotificationError(Exception):
    """The mail transport refused or could not be reached."""


def render_approval_email(
requester: str, command_text: str, request_id: str):
    """Subject and HTML body of the approver notification."""
    subject = f"New Approval Request: {command_text[:80]}"
    body = f"""
    <html>
      <body>
        <h2>New Approval Request</h2>
        <p>A new command approval request has been submitted.</p>
        <p><strong>Requester:</strong> {html.escape(requester)}</p>
        <p><strong>Command:</strong> <code>{html.escape(command_text)}</code></p>
        <p><strong>Request ID:</strong> {html.escape(request_id)}</p>
        <p>Please review and approve or reject this request in the approver dashboard.</p>
      </body>
    </html>
    """
    return subject, body


def send_email(to: str, subject: str, html_body: str) -> bool:
    """Send one HTML email.

    Returns False when SMTP is not configured; raises NotificationError when the
    transport fails.
    """
    password: Optional[str] = get_smtp_password()
    if password is None:
        logger.info(f"Email not sent - SMTP not configured. Would send to: {to} ({subject})")
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = SENDER_EMAIL
    msg["To"] = to
    msg.attach(MIMEText(html_body, "html"))

    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=SMTP_TIMEOUT_SEC) as server:
            server.starttls()
            server.login(SMTP_USER, password)
            server.sendmail(SENDER_EMAIL, [to], msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        raise NotificationError(f"{type(e).__name__}: {e}") from e
    return True


def notify_approvers(request, requester: str) -> int:
    """Email every approver about a new request; returns how many sends succeeded."""
    sent = 0
    try:
        recipients = list_approver_emails()
        subject, body = render_approval_email(requester, request.command_text, request.id)
        for recipient in recipients:
            try:
                delivered = send_email(recipient, subject, body)
            except NotificationError as e:
                logger.log_notification(request.id, recipient, "failed", error=str(e))
                continue
            if delivered:
                sent += 1
                logger.log_notification(request.id, recipient, "sent")
            else:
                logger.log_notification(request.id, recipient, "skipped")
    except Exception as e:
        logger.error(f"Failed to send approval request notifications for {request.id}: {e}")
    return sent
