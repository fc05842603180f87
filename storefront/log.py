# storefront/log.py
import logging
import smtplib
from email.mime.text import MIMEText

import requests

log = logging.getLogger("storefront")


def setup_logging(log_file="app.log", level=logging.INFO):
    log.setLevel(level)
    if log.handlers:
        return log
    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        log.addHandler(fh)
    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    log.addHandler(ch)
    return log


def notify(settings, msg: str):
    """Operator alert over Slack and/or email. Never raises."""
    try:
        if settings.SLACK_WEBHOOK_URL:
            requests.post(settings.SLACK_WEBHOOK_URL, json={"text": msg}, timeout=5)
    except Exception as e:
        log.warning(f"Slack notify failed: {e}")
    try:
        if settings.SMTP_HOST and settings.ALERT_EMAIL_TO:
            m = MIMEText(msg)
            m["Subject"] = f"[{settings.SITE_NAME}] Notification"
            m["From"] = settings.mail_sender
            m["To"] = settings.ALERT_EMAIL_TO
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=5) as s:
                s.starttls()
                if settings.SMTP_USER and settings.SMTP_PASS:
                    s.login(settings.SMTP_USER, settings.SMTP_PASS)
                s.send_message(m)
    except Exception as e:
        log.warning(f"Email notify failed: {e}")
