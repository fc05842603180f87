import hashlib
import hmac
import json

import pytest
import requests

from storefront.db import main_session
from storefront.errors import PaymentError
from storefront.models import Order
from storefront.paystack import PaystackClient, order_id_from

SECRET = "sk_paystack_test"


class RecordingClient(PaystackClient):
    def __init__(self):
        super().__init__(SECRET)
        self.calls = []
        self.responses = {}

    def _call(self, method, path, **kw):
        self.calls.append((method, path, kw))
        for prefix, resp in self.responses.items():
            if path.startswith(prefix):
                if isinstance(resp, Exception):
                    raise resp
                return resp
        return {}


@pytest.fixture
def paystack(app):
    client = RecordingClient()
    app.extensions["storefront.paystack"] = client
    return client


def _sign(body: bytes) -> str:
    return hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()


def _initialize(client, pid, **kw):
    body = {"email": "Buyer@Example.com",
            "items": [{"productId": pid, "name": "Tote", "price": 1500, "quantity": 2}]}
    body.update(kw)
    return client.post("/api/checkout/paystack/initialize", json=body)


def test_signature_check():
    c = PaystackClient(SECRET)
    body = b'{"event":"charge.success"}'
    assert c.valid_signature(body, _sign(body))
    assert not c.valid_signature(body, _sign(b"other"))
    assert not c.valid_signature(body, "")


def test_order_id_from_metadata():
    assert order_id_from({"metadata": {"order_id": "5"}}) == "5"
    assert order_id_from({"metadata": '{"order_id": "6"}'}) == "6"
    assert order_id_from({"metadata": "garbage"}) is None
    assert order_id_from({}) is None


def test_not_configured(app, client):
    app.extensions["storefront.settings"].PAYSTACK_SECRET_KEY = ""
    r = client.post("/api/checkout/paystack/initialize", json={})
    assert r.status_code == 500
    assert r.get_json()["error"].startswith("Checkout is not configured")


def test_initialize_creates_pending_order(app, client, paystack, make_product):
    paystack.responses["/transaction/initialize"] = {
        "authorization_url": "https://checkout.paystack.test/abc", "access_code": "abc"}
    pid = make_product(price=1500)

    r = _initialize(client, pid)
    assert r.status_code == 200
    body = r.get_json()
    assert body["authorizationUrl"] == "https://checkout.paystack.test/abc"
    assert body["reference"].startswith(f"order-{body['orderId']}-")

    method, path, kw = paystack.calls[0]
    assert (method, path) == ("POST", "/transaction/initialize")
    assert kw["json"]["amount"] == 300000
    assert kw["json"]["currency"] == "KES"
    assert kw["json"]["email"] == "buyer@example.com"
    assert kw["json"]["callback_url"] == "http://shop.test/checkout/success"

    with app.app_context():
        with main_session() as db:
            o = db.get(Order, body["orderId"])
            assert o.payment_status == "pending"
            assert o.payment_provider == "paystack"
            assert o.payment_reference == body["reference"]


def test_initialize_validation(client, paystack, make_product):
    pid = make_product()
    assert _initialize(client, pid, email="nope").status_code == 400
    assert _initialize(client, pid, items=[]).status_code == 400
    r = _initialize(client, pid, items=[{"name": "Loose", "price": 1}])
    assert r.status_code == 400


def test_initialize_failure_marks_order_failed(app, client, paystack, make_product):
    paystack.responses["/transaction/initialize"] = PaymentError("Invalid key")
    r = _initialize(client, make_product())
    assert r.status_code == 500
    with app.app_context():
        with main_session() as db:
            assert db.query(Order).one().payment_status == "failed"


def test_verify_marks_paid(app, client, paystack, mailer, make_product):
    paystack.responses["/transaction/initialize"] = {"authorization_url": "u"}
    body = _initialize(client, make_product(name="Tote")).get_json()
    ref = body["reference"]
    paystack.responses["/transaction/verify/"] = {
        "status": "success", "reference": ref,
        "metadata": {"order_id": str(body["orderId"])},
        "customer": {"email": "buyer@example.com"},
    }

    r = client.get(f"/api/checkout/paystack/verify/{ref}")
    assert r.status_code == 200
    assert r.get_json() == {"reference": ref, "status": "success",
                            "orderId": body["orderId"], "paymentStatus": "paid"}
    assert mailer.confirmations[0]["email"] == "buyer@example.com"


def test_webhook(app, client, paystack, mailer, make_product):
    paystack.responses["/transaction/initialize"] = {"authorization_url": "u"}
    body = _initialize(client, make_product()).get_json()
    event = json.dumps({"event": "charge.success",
                        "data": {"reference": body["reference"], "status": "success",
                                 "customer": {"email": "buyer@example.com"}}}).encode()

    r = client.post("/api/checkout/paystack/webhook", data=event,
                    headers={"x-paystack-signature": "forged"})
    assert r.status_code == 400

    r = client.post("/api/checkout/paystack/webhook", data=event,
                    headers={"x-paystack-signature": _sign(event)})
    assert r.status_code == 200
    with app.app_context():
        with main_session() as db:
            assert db.get(Order, body["orderId"]).payment_status == "paid"
    assert len(mailer.confirmations) == 1


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self.ok = status_code < 400
        self._body = body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


def test_client_unwraps_and_raises(monkeypatch):
    c = PaystackClient(SECRET, base_url="https://paystack.test/")
    seen = {}

    def fake_request(method, url, **kw):
        seen["url"] = url
        return FakeResponse(200, {"status": True, "data": {"status": "success"}})

    monkeypatch.setattr(c.http, "request", fake_request)
    assert c.verify("ref-1") == {"status": "success"}
    assert seen["url"] == "https://paystack.test/transaction/verify/ref-1"
    assert c.http.headers["Authorization"] == f"Bearer {SECRET}"

    monkeypatch.setattr(c.http, "request",
                        lambda *a, **kw: FakeResponse(401, {"status": False, "message": "Invalid key"}))
    with pytest.raises(PaymentError, match="Invalid key"):
        c.verify("ref-1")

    def down(*a, **kw):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(c.http, "request", down)
    with pytest.raises(PaymentError):
        c.initialize("a@b.c", 100, "ref", "kes")
