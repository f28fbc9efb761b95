import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

from bsg_helpdesk.core.config import settings

logger = logging.getLogger(__name__)


def _build_message(to: str, subject: str, text: str, html: Optional[str]) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = formataddr((settings.EMAIL_FROM_NAME, settings.EMAIL_FROM))
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(text)
    if html:
        msg.add_alternative(html, subtype="html")
    return msg


def send_email(to: Optional[str], subject: str, text: str, html: Optional[str] = None) -> bool:
    """Send one message over SMTP.

    Returns False instead of raising when delivery is not configured or fails;
    a notification must never abort the request that triggered it.
    """
    if not to:
        logger.debug("Skipping email '%s': no recipient", subject)
        return False
    if not settings.EMAIL_HOST:
        logger.info("Email disabled (EMAIL_HOST unset); would send '%s' to %s", subject, to)
        return False

    msg = _build_message(to, subject, text, html)
    try:
        if settings.EMAIL_PORT == 465:
            with smtplib.SMTP_SSL(settings.EMAIL_HOST, settings.EMAIL_PORT, timeout=30) as smtp:
                if settings.EMAIL_USER:
                    smtp.login(settings.EMAIL_USER, settings.EMAIL_PASS or "")
                smtp.send_message(msg)
        else:
            with smtplib.SMTP(settings.EMAIL_HOST, settings.EMAIL_PORT, timeout=30) as smtp:
                if settings.EMAIL_USER:
                    smtp.starttls()
                    smtp.login(settings.EMAIL_USER, settings.EMAIL_PASS or "")
                smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send email '%s' to %s: %s", subject, to, e)
        return False

    logger.info("Email sent to %s: %s", to, subject)
    return True
