# storefront/paystack.py
import hashlib
import hmac
import json
import secrets

import requests
from flask import Blueprint, current_app, jsonify, request

from .auth import normalize_email, optional_user_id
from .checkout import checkout_items, minor_units, pending_order
from .config import get_settings
from .db import main_session
from .email_service import get_mailer
from .errors import NotFound, PaymentError, PaymentNotConfigured, ValidationError
from .log import log, notify
from .models import Order
from .order_service import find_order, mark_order_failed, mark_order_paid

bp = Blueprint("paystack", __name__)


class PaystackClient:
    """Thin wrapper over the Paystack transaction API."""

    def __init__(self, secret_key: str, base_url="https://api.paystack.co", timeout=15):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = requests.Session()
        self.http.headers.update({"Authorization": f"Bearer {secret_key}",
                                  "Content-Type": "application/json"})

    def _call(self, method, path, **kw):
        try:
            r = self.http.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kw)
            body = r.json()
        except (requests.RequestException, ValueError) as e:
            raise PaymentError(f"Paystack request failed: {e}") from e
        if not r.ok or not body.get("status"):
            raise PaymentError(body.get("message") or f"Paystack error ({r.status_code})")
        return body.get("data") or {}

    def initialize(self, email, amount, reference, currency, callback_url=None, metadata=None):
        payload = {"email": email, "amount": amount, "reference": reference,
                   "currency": currency.upper()}
        if callback_url:
            payload["callback_url"] = callback_url
        if metadata:
            payload["metadata"] = metadata
        return self._call("POST", "/transaction/initialize", json=payload)

    def verify(self, reference):
        return self._call("GET", f"/transaction/verify/{reference}")

    def valid_signature(self, raw_body: bytes, signature: str) -> bool:
        digest = hmac.new(self.secret_key.encode(), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(digest, signature or "")


def get_client() -> PaystackClient:
    settings = get_settings()
    if not settings.PAYSTACK_SECRET_KEY:
        raise PaymentNotConfigured()
    client = current_app.extensions.get("storefront.paystack")
    if client is None:
        client = PaystackClient(settings.PAYSTACK_SECRET_KEY, settings.PAYSTACK_BASE_URL)
        current_app.extensions["storefront.paystack"] = client
    return client


def new_reference(order_id) -> str:
    return f"order-{order_id}-{secrets.token_hex(6)}"


def order_id_from(data: dict):
    meta = data.get("metadata") or {}
    if isinstance(meta, str):
        try:
            meta = json.loads(meta)
        except ValueError:
            meta = {}
    return meta.get("order_id")


@bp.post("/initialize")
def initialize():
    settings = get_settings()
    client = get_client()
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    if not email or "@" not in email:
        raise ValidationError("Valid email is required")
    items = checkout_items(data.get("items"))
    if not all(it.get("productId") for it in items):
        raise ValidationError("Each item needs a productId")
    currency = (data.get("currency") or settings.DEFAULT_CURRENCY).lower()
    amount = sum(minor_units(it["price"]) * it["quantity"] for it in items)

    order_id = pending_order(items, currency, email, "paystack", optional_user_id())
    reference = new_reference(order_id)
    with main_session() as db:
        db.get(Order, order_id).payment_reference = reference
        db.commit()

    try:
        tx = client.initialize(
            email, amount, reference, currency,
            callback_url=f"{settings.CLIENT_URL.rstrip('/')}/checkout/success",
            metadata={"order_id": str(order_id)},
        )
    except PaymentError as e:
        log.error(f"Paystack initialize failed for order #{order_id}: {e.message}")
        notify(settings, f"Paystack checkout failed for order #{order_id}: {e.message}")
        mark_order_failed(main_session, order_id=order_id)
        return jsonify({"error": "Failed to start checkout"}), 500

    return jsonify({
        "authorizationUrl": tx.get("authorization_url"),
        "accessCode": tx.get("access_code"),
        "reference": reference,
        "orderId": order_id,
    })


@bp.get("/verify/<reference>")
def verify(reference):
    client = get_client()
    try:
        tx = client.verify(reference)
    except PaymentError as e:
        log.warning(f"Paystack verify failed for {reference}: {e.message}")
        return jsonify({"error": "Failed to verify transaction"}), 502

    status = tx.get("status")
    order_id = order_id_from(tx)
    if status == "success":
        mark_order_paid(main_session, order_id=order_id, reference=reference,
                        email=normalize_email((tx.get("customer") or {}).get("email")) or None,
                        mailer=get_mailer())
    elif status in ("failed", "abandoned", "reversed"):
        mark_order_failed(main_session, order_id=order_id, reference=reference)

    with main_session() as db:
        o = find_order(db, order_id, reference)
        if not o:
            raise NotFound("Order not found")
        return jsonify({"reference": reference, "status": status,
                        "orderId": o.id, "paymentStatus": o.payment_status})


@bp.post("/webhook")
def webhook():
    settings = get_settings()
    client = get_client()
    raw = request.get_data()
    if not client.valid_signature(raw, request.headers.get("x-paystack-signature", "")):
        log.warning("Paystack webhook signature failure")
        return jsonify({"error": "Invalid signature"}), 400

    try:
        event = json.loads(raw)
    except ValueError:
        return jsonify({"error": "Invalid payload"}), 400

    data = event.get("data") or {}
    reference = data.get("reference")
    try:
        if event.get("event") == "charge.success":
            mark_order_paid(main_session, order_id=order_id_from(data), reference=reference,
                            email=normalize_email((data.get("customer") or {}).get("email")) or None,
                            mailer=get_mailer())
        else:
            log.info(f"Paystack webhook ignored: {event.get('event')}")
    except NotFound:
        log.warning(f"Paystack webhook for unknown reference {reference}")
    except Exception as e:
        log.exception("Paystack webhook error")
        notify(settings, f"Paystack webhook error: {e}")
        return jsonify({"error": "Webhook processing failed"}), 500
    return jsonify({"received": True})
