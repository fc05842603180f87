# storefront/order_service.py
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import select

from .errors import NotFound, ValidationError
from .log import log
from .models import Order, OrderItem, Product

SHIPPING_FIELDS = ("shipping_address", "shipping_city", "shipping_state",
                   "shipping_zip", "shipping_country", "phone_number")


def to_decimal(value, what="amount") -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {what}")
    try:
        d = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid {what}")
    if not d.is_finite():
        raise ValidationError(f"Invalid {what}")
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def safe_status(status) -> str:
    return status if status in ("pending", "paid") else "pending"


def item_quantity(value) -> int:
    """Whole number >= 1; a missing quantity means one."""
    if value is None:
        return 1
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError("Invalid order payload")
    return value


def normalize_items(items):
    """[{productId, quantity, price, productName?}] with validated numbers."""
    if not isinstance(items, list) or not items:
        raise ValidationError("Invalid order payload")
    out = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("Invalid order payload")
        try:
            product_id = int(item.get("productId"))
        except (TypeError, ValueError):
            raise ValidationError("Invalid order payload")
        quantity = item_quantity(item.get("quantity"))
        out.append({
            "productId": product_id,
            "quantity": quantity,
            "price": to_decimal(item.get("price"), "price"),
            "productName": item.get("productName") or item.get("name"),
        })
    return out


def items_total(items) -> Decimal:
    return sum((it["price"] * it["quantity"] for it in items), Decimal("0.00"))


def create_order(session_factory, *, total_amount, currency, email, items,
                 payment_status="pending", user_id=None, provider=None, reference=None,
                 shipping=None, mailer=None, send_confirmation=True) -> int:
    """Insert an order and its items in one transaction.

    The confirmation email goes out after the commit; a mail failure is logged
    and never undoes the order.
    """
    if total_amount is None:
        raise ValidationError("Invalid order payload")
    items = normalize_items(items)
    total = to_decimal(total_amount, "total amount")
    currency = (currency or "kes").lower()

    with session_factory() as db:
        missing = set(it["productId"] for it in items) - set(
            db.scalars(select(Product.id).where(Product.id.in_([it["productId"] for it in items])))
        )
        if missing:
            raise ValidationError(f"Unknown product(s): {', '.join(map(str, sorted(missing)))}")

        try:
            o = Order(total_amount=total, currency=currency, customer_email=email or None,
                      payment_status=safe_status(payment_status), payment_provider=provider,
                      payment_reference=reference, user_id=user_id)
            for k, v in (shipping or {}).items():
                if k in SHIPPING_FIELDS:
                    setattr(o, k, v)
            db.add(o)
            db.flush()  # get o.id
            for it in items:
                db.add(OrderItem(order_id=o.id, product_id=it["productId"],
                                 quantity=it["quantity"], price_at_purchase=it["price"]))
            db.commit()
            order_id, status = o.id, o.payment_status
        except Exception:
            db.rollback()
            log.exception("Error creating order")
            raise

    log.info(f"Order #{order_id} created ({status}, {total} {currency})")
    if email and send_confirmation:
        _send_confirmation(mailer, email, order_id, total, currency, items)
    return order_id


def _send_confirmation(mailer, email, order_id, total, currency, items):
    if mailer is None:
        return
    try:
        mailer.send_order_confirmation(email, order_id, total, currency, [
            {"productName": it.get("productName") or "Product",
             "quantity": it["quantity"], "price": it["price"]}
            for it in items
        ])
    except Exception as e:
        log.error(f"Failed to send order confirmation email for #{order_id}: {e}")


def find_order(db, order_id=None, reference=None):
    o = None
    if order_id is not None:
        try:
            o = db.get(Order, int(order_id))
        except (TypeError, ValueError):
            o = None
    if o is None and reference:
        o = db.execute(select(Order).where(Order.payment_reference == reference)).scalars().first()
    return o


def mark_order_paid(session_factory, *, order_id=None, reference=None, email=None,
                    shipping=None, mailer=None) -> bool:
    """pending -> paid. Returns True only on the transition (the email goes out once)."""
    with session_factory() as db:
        o = find_order(db, order_id, reference)
        if not o:
            raise NotFound("Order not found")
        if o.payment_status == "paid":
            return False
        o.payment_status = "paid"
        if email and not o.customer_email:
            o.customer_email = email
        for k, v in (shipping or {}).items():
            if k in SHIPPING_FIELDS and v:
                setattr(o, k, v)
        db.commit()
        oid, to = o.id, o.customer_email
        total, currency = o.total_amount, o.currency
        items = [{"productName": it.product.name if it.product else None,
                  "quantity": it.quantity, "price": it.price_at_purchase} for it in o.items]

    log.info(f"Order #{oid} paid")
    if to:
        _send_confirmation(mailer, to, oid, total, currency, items)
    return True


def mark_order_failed(session_factory, *, order_id=None, reference=None) -> bool:
    with session_factory() as db:
        o = find_order(db, order_id, reference)
        if not o or o.payment_status != "pending":
            return False
        o.payment_status = "failed"
        db.commit()
        log.info(f"Order #{o.id} marked failed")
    return True
