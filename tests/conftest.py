from decimal import Decimal

import pytest
from sqlalchemy import update

from storefront import create_app
from storefront.db import main_session
from storefront.errors import EmailError
from storefront.models import Product, User


class FakeMailer:
    """Records outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.verifications = []
        self.confirmations = []
        self.fail = False

    def send_verification_email(self, email, code):
        if self.fail:
            raise EmailError("smtp down")
        self.verifications.append((email, code))

    def send_order_confirmation(self, email, order_id, total_amount, currency, items):
        if self.fail:
            raise EmailError("smtp down")
        self.confirmations.append(dict(email=email, order_id=order_id, total=total_amount,
                                       currency=currency, items=items))


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "DATABASE_URL": "sqlite:///:memory:",
        "JWT_SECRET": "test-secret",
        "LOG_FILE": "",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
        "PAYSTACK_SECRET_KEY": "sk_paystack_test",
        "CLIENT_URL": "http://shop.test",
        "SMTP_HOST": "",
        "SLACK_WEBHOOK_URL": "",
        "DEBUG_ROUTES": True,
    })
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mailer(app):
    fake = FakeMailer()
    app.extensions["storefront.mailer"] = fake
    return fake


@pytest.fixture
def make_product(app):
    def _make(**kw):
        fields = dict(name="Tote", brand="Nuthu", category="Bags", price=Decimal("1500.00"), in_stock=True)
        fields.update(kw)
        with app.app_context():
            with main_session() as db:
                p = Product(**fields)
                db.add(p)
                db.commit()
                return p.id
    return _make


def verify_user(app, email):
    with app.app_context():
        with main_session() as db:
            db.execute(update(User).where(User.email == email).values(email_verified=True))
            db.commit()


@pytest.fixture
def login(app, client):
    """Register, verify and log in; the client keeps the auth cookie."""
    def _login(email="shopper@example.com", password="s3cret!", name="Shopper"):
        r = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
        assert r.status_code == 201, r.get_json()
        verify_user(app, email)
        r = client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.get_json()
        return r.get_json()
    return _login
