"""
Outbound email over SMTP.

send_email never raises: callers treat email as best effort and get a
(success, message) tuple back for logging.
"""
from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app

logger = logging.getLogger(__name__)


def send_email(to: str, subject: str, body: str, *, html: str | None = None) -> tuple[bool, str]:
    cfg = current_app.config
    smtp_server = (cfg.get("SMTP_SERVER") or "").strip()
    email_from = (cfg.get("EMAIL_FROM") or "").strip()

    if not smtp_server:
        logger.warning("Email not sent to %s: SMTP_SERVER not configured", to)
        return False, "SMTP server not configured"
    if not email_from:
        logger.warning("Email not sent to %s: EMAIL_FROM not configured", to)
        return False, "Email from address not configured"

    if html:
        msg = MIMEMultipart("alternative")
        msg.attach(MIMEText(body, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
    else:
        msg = MIMEText(body, "plain", "utf-8")
    msg["Subject"] = subject
    msg["From"] = f"{cfg.get('APP_NAME') or 'Notaris Office'} <{email_from}>"
    msg["To"] = to

    try:
        port = int(cfg.get("SMTP_PORT") or 587)
        with smtplib.SMTP(smtp_server, port, timeout=30) as server:
            if cfg.get("SMTP_USE_TLS", True):
                server.starttls()
            username = (cfg.get("SMTP_USERNAME") or "").strip()
            password = (cfg.get("SMTP_PASSWORD") or "").strip()
            if username and password:
                server.login(username, password)
            server.sendmail(email_from, [to], msg.as_string())
    except (smtplib.SMTPException, OSError, ValueError) as e:
        logger.error("Email to %s failed: %s", to, e)
        return False, str(e)

    logger.info("Email sent to %s (%s)", to, subject)
    return True, "sent"


def send_password_reset_email(to: str, name: str, reset_url: str) -> tuple[bool, str]:
    app_name = current_app.config.get("APP_NAME") or "Notaris Office"
    body = (
        f"Halo {name},\n\n"
        f"Kami menerima permintaan untuk mengatur ulang password akun {app_name} Anda.\n"
        f"Buka tautan berikut dalam 1 jam:\n\n{reset_url}\n\n"
        "Jika Anda tidak meminta reset password, abaikan email ini."
    )
    html = (
        f"<p>Halo {name},</p>"
        f"<p>Kami menerima permintaan untuk mengatur ulang password akun {app_name} Anda.</p>"
        f'<p><a href="{reset_url}">Reset password</a> (berlaku 1 jam)</p>'
        "<p>Jika Anda tidak meminta reset password, abaikan email ini.</p>"
    )
    return send_email(to, f"Reset Password - {app_name}", body, html=html)


def send_document_status_email(to: str, name: str, document_title: str, document_number: str, status: str) -> tuple[bool, str]:
    app_name = current_app.config.get("APP_NAME") or "Notaris Office"
    label = status.replace("_", " ").title()
    body = (
        f"Halo {name},\n\n"
        f"Status dokumen {document_title} ({document_number}) sekarang: {label}.\n\n"
        f"Salam,\n{app_name}"
    )
    return send_email(to, f"Update Status Dokumen {document_number}", body)
