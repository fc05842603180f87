# storefront/products.py
from flask import Blueprint, jsonify, request
from sqlalchemy import delete, or_, select

from .currency import format_price, get_currency
from .db import main_session
from .errors import NotFound, ValidationError
from .log import log
from .models import CartItem, Product
from .order_service import to_decimal

bp = Blueprint("products", __name__)

IMAGE_URL_MAX = Product.__table__.c.image_url.type.length
FIELDS = {
    "name": "name",
    "brand": "brand",
    "description": "description",
    "category": "category",
    "imageUrl": "image_url",
}


def _flag(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in ("0", "false", "no", "off")


def _apply(p: Product, data: dict):
    for key, attr in FIELDS.items():
        if key in data:
            setattr(p, attr, data[key] or None)
    if "price" in data:
        price = to_decimal(data["price"], "price")
        if price < 0:
            raise ValidationError("Price must not be negative")
        p.price = price
    if "inStock" in data:
        p.in_stock = _flag(data["inStock"])
    if p.image_url and len(p.image_url) > IMAGE_URL_MAX:
        raise ValidationError("The image data is too large to store. "
                              "Please upload a smaller image or use a shorter image URL.")


def _with_display(d: dict, currency):
    if currency:
        d["displayPrice"] = format_price(d["price"], currency)
    return d


@bp.get("")
def list_products():
    args = request.args
    currency = args.get("currency")
    if currency:
        get_currency(currency)

    q = select(Product)
    if args.get("category"):
        q = q.where(Product.category == args["category"])
    if args.get("brand"):
        q = q.where(Product.brand == args["brand"])
    if args.get("inStock") is not None:
        q = q.where(Product.in_stock == _flag(args["inStock"]))
    if args.get("q"):
        like = f"%{args['q']}%"
        q = q.where(or_(Product.name.ilike(like), Product.description.ilike(like)))

    with main_session() as db:
        rows = db.execute(q.order_by(Product.created_at.desc(), Product.id.desc())).scalars().all()
        return jsonify([_with_display(p.to_dict(), currency) for p in rows])


@bp.get("/<int:pid>")
def get_product(pid):
    currency = request.args.get("currency")
    with main_session() as db:
        p = db.get(Product, pid)
        if not p:
            raise NotFound("Product not found")
        return jsonify(_with_display(p.to_dict(), currency))


@bp.post("")
def create_product():
    data = request.get_json(silent=True) or {}
    if not data.get("name") or data.get("price") is None:
        raise ValidationError("Name and price are required")

    p = Product(in_stock=True)
    _apply(p, data)
    with main_session() as db:
        db.add(p)
        db.commit()
        log.info(f"Product {p.id} created: {p.name}")
        return jsonify(p.to_dict()), 201


@bp.put("/<int:pid>")
def update_product(pid):
    data = request.get_json(silent=True) or {}
    if "name" in data and not data["name"]:
        raise ValidationError("Name must not be empty")
    if "price" in data and data["price"] is None:
        raise ValidationError("Price must not be empty")

    with main_session() as db:
        p = db.get(Product, pid)
        if not p:
            raise NotFound("Product not found")
        _apply(p, data)
        db.commit()
        return jsonify(p.to_dict())


@bp.delete("/<int:pid>")
def delete_product(pid):
    with main_session() as db:
        db.execute(delete(CartItem).where(CartItem.product_id == pid))
        db.execute(delete(Product).where(Product.id == pid))
        db.commit()
    log.info(f"Product {pid} deleted")
    return "", 204
