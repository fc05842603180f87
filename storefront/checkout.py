# storefront/checkout.py
import json
import math
from decimal import ROUND_HALF_UP, Decimal

import stripe
from flask import Blueprint, jsonify, request

from .auth import optional_user_id
from .config import get_settings
from .db import main_session
from .email_service import get_mailer
from .errors import NotFound, PaymentNotConfigured, ValidationError
from .log import log, notify
from .models import Order
from .order_service import create_order, items_total, mark_order_failed, mark_order_paid, to_decimal

bp = Blueprint("checkout", __name__)

STRIPE_API_VERSION = "2024-06-20"

# ISO 3166-1 alpha-2; Stripe wants an explicit shipping list
ALL_COUNTRIES = """
AD AE AF AG AI AL AM AO AQ AR AS AT AU AW AX AZ BA BB BD BE BF BG BH BI BJ BL BM BN BO BQ BR BS BT BV
BW BY BZ CA CC CD CF CG CH CI CK CL CM CN CO CR CU CV CW CX CY CZ DE DJ DK DM DO DZ EC EE EG EH ER ES
ET FI FJ FK FM FO FR GA GB GD GE GF GG GH GI GL GM GN GP GQ GR GS GT GU GW GY HK HM HN HR HT HU ID IE
IL IM IN IO IQ IR IS IT JE JM JO JP KE KG KH KI KM KN KP KR KW KY KZ LA LB LC LI LK LR LS LT LU LV LY
MA MC MD ME MF MG MH MK ML MM MN MO MP MQ MR MS MT MU MV MW MX MY MZ NA NC NE NF NG NI NL NO NP NR NU
NZ OM PA PE PF PG PH PK PL PM PN PR PS PT PW PY QA RE RO RS RU RW SA SB SC SD SE SG SH SI SJ SK SL SM
SN SO SR SS ST SV SX SY SZ TC TD TF TG TH TJ TK TL TM TN TO TR TT TV TW TZ UA UG UM US UY UZ VA VC VE
VG VI VN VU WF WS YE YT ZA ZM ZW
""".split()

PLACEHOLDER_KEYS = ("sk_test_your_key_here", "sk_live_your_key_here")


def is_placeholder_key(key) -> bool:
    v = str(key or "").strip()
    return not v or "your_key_here" in v or v in PLACEHOLDER_KEYS


def stripe_key(settings=None) -> str:
    settings = settings or get_settings()
    if is_placeholder_key(settings.STRIPE_SECRET_KEY):
        raise PaymentNotConfigured()
    return settings.STRIPE_SECRET_KEY


def allowed_countries(raw) -> list:
    value = str(raw or "").strip().upper() or "ALL"
    if value in ("ALL", "*"):
        return list(ALL_COUNTRIES)
    return [c.strip() for c in value.split(",") if c.strip()]


def minor_units(price) -> int:
    return int((to_decimal(price, "price") * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _get(obj, key, default=None):
    try:
        v = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if v is None else v


def checkout_items(items):
    if not isinstance(items, list) or not items:
        raise ValidationError("No items to checkout")
    out = []
    for item in items:
        if not isinstance(item, dict) or not item.get("name") or item.get("price") is None:
            raise ValidationError("Each item needs a name and a price")
        qty = item.get("quantity")
        if qty is None:
            qty = 1
        if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
            raise ValidationError("Invalid item quantity")
        out.append({**item, "quantity": qty})
    return out


def shipping_from_session(session: dict) -> dict:
    """Shipping fields for an order, from a completed Checkout Session."""
    details = (_get(_get(session, "collected_information", {}), "shipping_details")
               or _get(session, "shipping_details") or {})
    customer = _get(session, "customer_details", {})
    addr = _get(details, "address") or _get(customer, "address", {})
    line = ", ".join(x for x in (_get(addr, "line1"), _get(addr, "line2")) if x)
    return {
        "shipping_address": line or None,
        "shipping_city": _get(addr, "city"),
        "shipping_state": _get(addr, "state"),
        "shipping_zip": _get(addr, "postal_code"),
        "shipping_country": _get(addr, "country"),
        "phone_number": _get(customer, "phone"),
    }


def pending_order(items, currency, email, provider, user_id=None):
    """Persist a pending order when every item names its product."""
    if not all(it.get("productId") for it in items):
        return None
    return create_order(
        main_session,
        total_amount=items_total([{"price": to_decimal(it["price"]), "quantity": it["quantity"]}
                                  for it in items]),
        currency=currency, email=email, items=items, payment_status="pending",
        user_id=user_id, provider=provider, send_confirmation=False,
    )


def _set_reference(order_id, reference):
    with main_session() as db:
        o = db.get(Order, order_id)
        if o:
            o.payment_reference = reference
            db.commit()


# --------------------------- STRIPE CHECKOUT ---------------------------
@bp.post("/create-session")
def create_session():
    settings = get_settings()
    api_key = stripe_key(settings)
    data = request.get_json(silent=True) or {}
    items = checkout_items(data.get("items"))
    currency = (data.get("currency") or settings.DEFAULT_CURRENCY).lower()
    email = data.get("customerEmail")
    email = email.strip().lower() if isinstance(email, str) and email.strip() else None

    line_items = [{
        "price_data": {
            "currency": currency,
            "product_data": {"name": it["name"]},
            "unit_amount": minor_units(it["price"]),
        },
        "quantity": it["quantity"],
    } for it in items]

    order_id = pending_order(items, currency, email, "stripe", optional_user_id())
    client = settings.CLIENT_URL.rstrip("/")
    params = dict(
        mode="payment",
        line_items=line_items,
        success_url=f"{client}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{client}/checkout",
        billing_address_collection="required",
        phone_number_collection={"enabled": True},
        shipping_address_collection={"allowed_countries": allowed_countries(settings.STRIPE_ALLOWED_COUNTRIES)},
        api_key=api_key,
        stripe_version=STRIPE_API_VERSION,
    )
    if email:
        params["customer_email"] = email
    if order_id:
        params["metadata"] = {"order_id": str(order_id)}

    try:
        cs = stripe.checkout.Session.create(**params)
    except stripe.StripeError as e:
        log.exception("Error creating checkout session")
        notify(settings, f"Stripe checkout failed: {e}")
        if order_id:
            mark_order_failed(main_session, order_id=order_id)
        return jsonify({"error": "Failed to start checkout"}), 500

    body = {"url": _get(cs, "url"), "id": _get(cs, "id")}
    if order_id:
        _set_reference(order_id, body["id"])
        body["orderId"] = order_id
    return jsonify(body)


@bp.get("/session/<session_id>")
def get_session(session_id):
    api_key = stripe_key()
    if not session_id.strip():
        raise ValidationError("Missing session id")
    try:
        cs = stripe.checkout.Session.retrieve(session_id, api_key=api_key,
                                              stripe_version=STRIPE_API_VERSION)
    except stripe.InvalidRequestError:
        raise NotFound("Checkout session not found")
    except stripe.StripeError:
        log.exception("Error retrieving checkout session")
        return jsonify({"error": "Failed to retrieve checkout session"}), 500

    return jsonify({
        "id": _get(cs, "id"),
        "status": _get(cs, "status"),
        "paymentStatus": _get(cs, "payment_status"),
        "amountTotal": _get(cs, "amount_total"),
        "currency": _get(cs, "currency"),
        "customerEmail": _get(_get(cs, "customer_details", {}), "email") or _get(cs, "customer_email"),
        "orderId": _get(_get(cs, "metadata", {}), "order_id"),
    })


@bp.post("/create-payment-intent")
def create_payment_intent():
    settings = get_settings()
    api_key = stripe_key(settings)
    data = request.get_json(silent=True) or {}
    amount = data.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) \
            or not math.isfinite(amount) or amount <= 0:
        raise ValidationError("Invalid amount for payment intent")

    try:
        pi = stripe.PaymentIntent.create(
            amount=int(amount),
            currency=(data.get("currency") or settings.DEFAULT_CURRENCY).lower(),
            automatic_payment_methods={"enabled": True},
            api_key=api_key,
            stripe_version=STRIPE_API_VERSION,
        )
    except stripe.StripeError:
        log.exception("Error creating payment intent")
        return jsonify({"error": "Failed to start payment"}), 500
    return jsonify({"clientSecret": _get(pi, "client_secret")})


# --------------------------- STRIPE WEBHOOK ---------------------------
@bp.post("/webhook")
def stripe_webhook():
    settings = get_settings()
    stripe_key(settings)
    payload = request.get_data(as_text=True)
    sig = request.headers.get("Stripe-Signature", "")
    try:
        stripe.Webhook.construct_event(payload, sig, settings.STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        log.warning(f"Stripe webhook signature failure: {e}")
        return jsonify({"error": "Invalid signature"}), 400

    event = json.loads(payload)
    kind = event.get("type")
    session = (event.get("data") or {}).get("object") or {}
    order_id = (session.get("metadata") or {}).get("order_id")
    try:
        if kind in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
            if session.get("payment_status") in ("paid", "no_payment_required") and order_id:
                email = (session.get("customer_details") or {}).get("email") or session.get("customer_email")
                mark_order_paid(main_session, order_id=order_id, reference=session.get("id"),
                                email=email.lower() if email else None,
                                shipping=shipping_from_session(session), mailer=get_mailer())
        elif kind in ("checkout.session.expired", "checkout.session.async_payment_failed"):
            if order_id:
                mark_order_failed(main_session, order_id=order_id)
        else:
            log.info(f"Stripe webhook ignored: {kind}")
    except NotFound:
        log.warning(f"Stripe webhook for unknown order {order_id}")
    except Exception as e:
        log.exception("Stripe webhook error")
        notify(settings, f"Stripe webhook error: {e}")
        return jsonify({"error": "Webhook processing failed"}), 500
    return jsonify({"received": True})
