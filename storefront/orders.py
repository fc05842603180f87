# storefront/orders.py
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import select

from .auth import optional_user_id
from .cart import clear_user_cart
from .config import get_settings
from .db import main_session
from .email_service import get_mailer
from .errors import NotFound, ValidationError
from .models import Order
from .order_service import create_order

bp = Blueprint("orders", __name__)


@bp.post("")
def post_order():
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if not isinstance(items, list) or not items or data.get("totalAmount") is None:
        raise ValidationError("Invalid order payload")

    user_id = optional_user_id()
    order_id = create_order(
        main_session,
        total_amount=data["totalAmount"],
        currency=data.get("currency") or get_settings().DEFAULT_CURRENCY,
        email=(data.get("email") or "").strip().lower() or None,
        items=items,
        payment_status=data.get("paymentStatus", "paid"),
        user_id=user_id,
        mailer=get_mailer(),
    )
    if user_id:
        with main_session() as db:
            clear_user_cart(db, user_id)
            db.commit()
    return jsonify({"id": order_id}), 201


@bp.get("")
@login_required
def list_orders():
    with main_session() as db:
        rows = db.execute(
            select(Order).where(Order.user_id == current_user.user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        ).scalars().all()
        return jsonify({"orders": [o.to_dict(with_items=True) for o in rows]})


@bp.get("/<int:order_id>")
def get_order(order_id):
    user_id = optional_user_id()
    with main_session() as db:
        o = db.get(Order, order_id)
        if not o:
            raise NotFound("Order not found")
        # linked orders belong to their user, guest orders to their email
        if o.user_id is not None:
            allowed = o.user_id == user_id
        else:
            allowed = bool(o.customer_email) and o.customer_email == request.args.get("email", "").strip().lower()
        if not allowed:
            raise NotFound("Order not found")
        return jsonify(o.to_dict(with_items=True))
