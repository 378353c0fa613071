"""
Email service for Saleflow.

Sends transactional emails over SMTP using Jinja2 HTML templates.
Callers get an (ok, error) tuple back; nothing here raises, because an
email problem must never undo a published sale.

Usage:
    from saleflow.services.email_service import send_sale_created_email

    ok, error = send_sale_created_email(sale, owner, is_featured=True,
                                        dedupe_key="sale_created_promotion:pi_123")
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template

logger = logging.getLogger(__name__)


def redact_email(address):
    """joe@example.com -> jo***@example.com (for logs)."""
    if not address or "@" not in address:
        return "***"
    local, _, domain = address.partition("@")
    return f"{local[:2]}***@{domain}"


def _send_smtp(app, msg):
    """Send an email via SMTP. Returns (ok, error)."""
    host = app.config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    port = app.config.get("MAIL_SMTP_PORT", 587)
    username = app.config.get("MAIL_USERNAME")
    password = app.config.get("MAIL_PASSWORD")

    if not username or not password:
        logger.warning("Email not sent — MAIL_USERNAME or MAIL_PASSWORD not configured.")
        return False, "mail_not_configured"

    try:
        with smtplib.SMTP(host, port, timeout=30) as server:
            server.ehlo()
            server.starttls()
            server.ehlo()
            server.login(username, password)
            server.send_message(msg)
        logger.info(f"Email sent to {redact_email(msg['To'])} — {msg['Subject']}")
        return True, None
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {redact_email(msg['To'])}: {e}")
        return False, str(e)


def send_email_sync(to, subject, template, context=None, reply_to=None):
    """
    Render and send a templated HTML email, blocking until SMTP answers.

    Returns (ok, error).
    """
    app = current_app._get_current_object()
    context = context or {}

    from_name = app.config.get("MAIL_FROM_NAME", "Saleflow")
    from_email = app.config.get("MAIL_FROM_ADDRESS") or app.config.get("MAIL_USERNAME") or ""

    html_body = render_template(template, **context)

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to if isinstance(to, str) else ", ".join(to)

    if reply_to:
        msg["Reply-To"] = reply_to

    msg.attach(MIMEText(html_body, "html"))

    return _send_smtp(app, msg)


def build_sale_created_subject(title):
    return f"Your sale is live: {title}"[:200]


def send_sale_created_email(sale, owner, is_featured, dedupe_key):
    """Send the "your sale is live" confirmation to the sale owner.

    Only published sales with an owner email are mailed.
    Returns (ok, error).
    """
    if sale.status != "published":
        return False, "sale_not_published"
    if not owner or not (owner.email or "").strip():
        logger.error(f"Cannot send sale-created email for sale {sale.id}: no owner email")
        return False, "invalid_owner_email"

    app_base_url = current_app.config["APP_BASE_URL"]
    try:
        return send_email_sync(
            to=owner.email.strip(),
            subject=build_sale_created_subject(sale.title),
            template="emails/sale_created.html",
            context={
                "recipient_name": owner.full_name or "",
                "sale_title": sale.title,
                "sale_address": ", ".join(
                    p for p in (sale.address, sale.city, sale.state) if p
                ),
                "date_start": sale.date_start,
                "time_start": sale.time_start,
                "is_featured": is_featured,
                "sale_url": f"{app_base_url}/sales/{sale.id}",
                "manage_url": f"{app_base_url}/dashboard",
                "dedupe_key": dedupe_key,
            },
        )
    except Exception as e:
        # Template or header errors; email must not break finalization
        logger.error(f"Failed to build sale-created email for sale {sale.id}: {e}")
        return False, str(e)
