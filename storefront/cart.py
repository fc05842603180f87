# storefront/cart.py
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import delete, select

from .db import main_session
from .errors import NotFound, ValidationError
from .models import CartItem, Product, money

bp = Blueprint("cart", __name__)


@bp.before_request
@login_required
def require_login():
    """All cart routes act on the signed-in user's cart."""


def _quantity(value, default=None):
    if value is None:
        value = default
    if isinstance(value, bool):
        raise ValidationError("Valid quantity is required")
    try:
        q = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Valid quantity is required")
    if q < 1:
        raise ValidationError("Valid quantity is required")
    return q


def _owned(db, item_id) -> CartItem:
    row = db.execute(
        select(CartItem).where(CartItem.id == item_id, CartItem.user_id == current_user.user_id)
    ).scalar_one_or_none()
    if not row:
        raise NotFound("Cart item not found")
    return row


@bp.get("")
def get_cart():
    with main_session() as db:
        rows = db.execute(
            select(CartItem, Product)
            .join(Product, CartItem.product_id == Product.id)
            .where(CartItem.user_id == current_user.user_id)
            .order_by(CartItem.created_at.desc(), CartItem.id.desc())
        ).all()
        items = [{
            "cartItemId": ci.id,
            "quantity": ci.quantity,
            "size": ci.size,
            "id": p.id,
            "name": p.name,
            "brand": p.brand,
            "price": money(p.price),
            "image_url": p.image_url,
            "in_stock": bool(p.in_stock),
        } for ci, p in rows]
    return jsonify({"cartItems": items})


@bp.post("")
def add_to_cart():
    data = request.get_json(silent=True) or {}
    pid = data.get("productId")
    if not pid:
        raise ValidationError("Product ID is required")
    qty = _quantity(data.get("quantity"), default=1)
    size = data.get("size") or None

    with main_session() as db:
        p = db.get(Product, int(pid)) if str(pid).isdigit() else None
        if not p:
            raise NotFound("Product not found")
        if not p.in_stock:
            raise ValidationError("Product is out of stock")

        size_match = CartItem.size.is_(None) if size is None else CartItem.size == size
        row = db.execute(
            select(CartItem).where(CartItem.user_id == current_user.user_id,
                                   CartItem.product_id == p.id, size_match)
        ).scalar_one_or_none()
        if row:
            row.quantity += qty
            db.commit()
            return jsonify({"message": "Cart updated", "cartItemId": row.id})

        row = CartItem(user_id=current_user.user_id, product_id=p.id, quantity=qty, size=size)
        db.add(row)
        db.commit()
        return jsonify({"message": "Item added to cart", "cartItemId": row.id}), 201


@bp.put("/<int:item_id>")
def update_item(item_id):
    data = request.get_json(silent=True) or {}
    qty = _quantity(data.get("quantity"))
    with main_session() as db:
        row = _owned(db, item_id)
        row.quantity = qty
        db.commit()
    return jsonify({"message": "Cart item updated"})


@bp.delete("/<int:item_id>")
def remove_item(item_id):
    with main_session() as db:
        db.delete(_owned(db, item_id))
        db.commit()
    return jsonify({"message": "Item removed from cart"})


@bp.delete("")
def clear_cart():
    with main_session() as db:
        clear_user_cart(db, current_user.user_id)
        db.commit()
    return jsonify({"message": "Cart cleared"})


def clear_user_cart(db, user_id):
    db.execute(delete(CartItem).where(CartItem.user_id == user_id))
