# storefront/email_service.py
import smtplib
from datetime import date
from email.mime.text import MIMEText
from email.utils import formataddr

from flask import current_app
from jinja2 import Environment, PackageLoader, select_autoescape

from .errors import EmailError
from .log import log

templates = Environment(
    loader=PackageLoader("storefront", "templates"),
    autoescape=select_autoescape(["html"]),
)


def currency_label(currency: str) -> str:
    currency = (currency or "").strip()
    return "KES" if currency.lower() == "kes" else currency.upper()


def render_verification(site: str, code: str, ttl_minutes: int) -> str:
    return templates.get_template("email/verification.html").render(
        site=site, year=date.today().year, code=code, ttl_minutes=ttl_minutes)


def render_order_confirmation(site, client_url, email, order_id, total_amount, currency, items) -> str:
    rows = [{"name": it.get("productName") or "Product",
             "quantity": int(it["quantity"]),
             "line_total": float(it["price"]) * int(it["quantity"])}
            for it in items]
    return templates.get_template("email/order_confirmation.html").render(
        site=site, year=date.today().year, email=email, order_id=order_id,
        label=currency_label(currency), rows=rows, total=float(total_amount),
        shop_url=f"{client_url.rstrip('/')}/shop")


class Mailer:
    """SMTP sender configured from Settings."""

    def __init__(self, settings):
        self.settings = settings

    @property
    def configured(self) -> bool:
        return bool(self.settings.SMTP_HOST)

    def send_html(self, to: str, subject: str, html: str) -> str:
        s = self.settings
        if not self.configured:
            raise EmailError("Email is not configured")
        m = MIMEText(html, "html", "utf-8")
        m["Subject"] = subject
        m["From"] = formataddr((s.SITE_NAME, s.mail_sender))
        m["To"] = to
        try:
            with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=10) as conn:
                conn.starttls()
                if s.SMTP_USER and s.SMTP_PASS:
                    conn.login(s.SMTP_USER, s.SMTP_PASS)
                conn.send_message(m)
        except (smtplib.SMTPException, OSError) as e:
            log.error(f"Sending '{subject}' to {to} failed: {e}")
            raise EmailError(f"Failed to send email: {e}") from e
        log.info(f"Email '{subject}' sent to {to}")
        return m["Message-ID"] or ""

    def send_verification_email(self, email: str, code: str):
        s = self.settings
        html = render_verification(s.SITE_NAME, code, s.VERIFICATION_TTL_MINUTES)
        return self.send_html(email, f"Email Verification - {s.SITE_NAME}", html)

    def send_order_confirmation(self, email, order_id, total_amount, currency, items):
        s = self.settings
        html = render_order_confirmation(s.SITE_NAME, s.CLIENT_URL, email, order_id,
                                         total_amount, currency, items)
        return self.send_html(email, f"Order Confirmation #{order_id} - {s.SITE_NAME}", html)


def get_mailer() -> Mailer:
    return current_app.extensions["storefront.mailer"]
