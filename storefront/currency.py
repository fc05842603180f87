# storefront/currency.py
from collections import namedtuple
from decimal import ROUND_HALF_UP, Decimal

from flask import Blueprint, jsonify

from .errors import ValidationError

bp = Blueprint("currencies", __name__)

Currency = namedtuple("Currency", "code symbol name rate")

BASE_CURRENCY = "KES"

# display rates, 1 KES -> target
CURRENCIES = {
    c.code: c for c in (
        Currency("KES", "KSh", "Kenya | KES KSh", Decimal("1")),
        Currency("USD", "$", "United States | USD $", Decimal("0.0077")),
        Currency("EUR", "€", "Eurozone | EUR €", Decimal("0.0071")),
        Currency("GBP", "£", "United Kingdom | GBP £", Decimal("0.0061")),
    )
}


def get_currency(code) -> Currency:
    c = CURRENCIES.get(str(code or "").strip().upper())
    if not c:
        raise ValidationError(f"Unsupported currency: {code}")
    return c


def convert(amount_kes, code) -> Decimal:
    c = get_currency(code)
    return (Decimal(str(amount_kes)) * c.rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_price(amount_kes, code) -> str:
    c = get_currency(code)
    return f"{c.symbol}{convert(amount_kes, code):,.2f}"


@bp.get("")
def list_currencies():
    return jsonify({
        "base": BASE_CURRENCY,
        "currencies": [
            {"code": c.code, "symbol": c.symbol, "name": c.name, "rate": float(c.rate)}
            for c in CURRENCIES.values()
        ],
    })
