"""Email sending service using SMTP"""

import logging
import os
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.config import Settings
from app.schemas import ContactForm
from jinja2 import Environment, FileSystemLoader, select_autoescape

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

templates = Environment(
    loader=FileSystemLoader(os.path.join(BASE_DIR, "templates", "email")),
    autoescape=select_autoescape(enabled_extensions=("html",), default=False),
    keep_trailing_newline=False,
)


def send_email(
    config: Settings,
    to_email: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> None:
    """Send an email via SMTP.

    Args:
        config: SMTP settings
        to_email: Recipient email address
        subject: Email subject line
        html_body: HTML email body
        text_body: Optional plain text alternative
        reply_to: Optional Reply-To address

    Raises:
        smtplib.SMTPException: If email sending fails
        ValueError: If SMTP configuration is incomplete
    """
    if not config.smtp_host:
        raise ValueError("SMTP_HOST not configured")

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = config.smtp_from_email
    msg["To"] = to_email
    if reply_to:
        msg["Reply-To"] = reply_to

    # Clients display the last alternative they support
    if text_body:
        msg.attach(MIMEText(text_body, "plain"))
    msg.attach(MIMEText(html_body, "html"))

    try:
        with smtplib.SMTP(config.smtp_host, config.smtp_port) as server:
            if config.smtp_use_tls:
                server.starttls()

            if config.smtp_user and config.smtp_password:
                server.login(config.smtp_user, config.smtp_password)

            server.send_message(msg)
    except Exception as e:
        logger.error("Failed to send email to %s: %s", to_email, e)
        raise smtplib.SMTPException(f"Failed to send email: {str(e)}") from e


def render_contact_email(
    form: ContactForm, config: Settings, submitted_at: Optional[datetime] = None
) -> tuple[str, str]:
    """Render the (text, html) bodies for a contact form submission."""
    context = {
        "name": form.name,
        "email": form.email,
        "message": form.message,
        "submitted_at": (submitted_at or datetime.now(timezone.utc)).isoformat(),
        "domain": config.site_domain,
    }
    text_body = templates.get_template("contact.txt").render(context)
    html_body = templates.get_template("contact.html").render(context)
    return text_body, html_body


def send_contact_email(
    form: ContactForm, config: Settings, submitted_at: Optional[datetime] = None
) -> None:
    """Forward a contact form submission to the site owner.

    Raises:
        smtplib.SMTPException: If email sending fails
    """
    text_body, html_body = render_contact_email(form, config, submitted_at)
    send_email(
        config,
        to_email=config.contact_email,
        subject=f"New Contact Form Submission from {form.name}",
        html_body=html_body,
        text_body=text_body,
        reply_to=form.email,
    )
    logger.info("Contact form submission forwarded to %s", config.contact_email)
