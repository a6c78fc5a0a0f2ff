import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

from backoffice.core.config import settings

logger = logging.getLogger(__name__)

ROLE_LABELS = {
    "site_admin": "Site Administrator",
    "company_admin": "Company Administrator",
    "trainee": "Trainee",
}


def invitation_url(token: str) -> str:
    return f"{settings.app_url.rstrip('/')}/accept-invitation?token={token}"


def send_email(to_emails: List[str], subject: str, html_content: str, text_content: Optional[str] = None) -> bool:
    """Send one message over SMTP; returns False when delivery failed."""
    if not settings.send_emails:
        logger.info("Email sending disabled. Would send %r to %s", subject, to_emails)
        return True

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = f"{settings.from_name} <{settings.from_email}>"
    message["To"] = ", ".join(to_emails)
    if text_content:
        message.attach(MIMEText(text_content, "plain"))
    message.attach(MIMEText(html_content, "html"))

    try:
        context = ssl.create_default_context()
        with smtplib.SMTP(settings.smtp_server, settings.smtp_port) as server:
            server.starttls(context=context)
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password or "")
            server.sendmail(settings.from_email, to_emails, message.as_string())
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send %r to %s", subject, to_emails)
        return False

    logger.info("Email sent to %s", to_emails)
    return True


def send_invitation_email(
    email: str,
    role: str,
    token: str,
    company_name: Optional[str] = None,
    inviter_name: Optional[str] = None,
    resend: bool = False,
) -> bool:
    url = invitation_url(token)
    role_label = ROLE_LABELS.get(role, role)
    where = f" at {company_name}" if company_name else ""
    by = f"{inviter_name} has invited you" if inviter_name else "You have been invited"
    subject = f"{'Reminder: ' if resend else ''}Invitation to join {settings.app_name}"
    text = (
        f"{by} to join {settings.app_name} as {role_label}{where}.\n\n"
        f"Accept the invitation: {url}\n\n"
        f"This link expires in {settings.invitation_ttl_days} days."
    )
    html = (
        f"<p>{by} to join <strong>{settings.app_name}</strong> as {role_label}{where}.</p>"
        f'<p><a href="{url}">Accept the invitation</a></p>'
        f"<p>This link expires in {settings.invitation_ttl_days} days.</p>"
    )
    return send_email([email], subject, html, text)
