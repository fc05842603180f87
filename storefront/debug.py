# storefront/debug.py
from flask import Blueprint, jsonify

from .db import ensure_schema, get_engine, table_columns

bp = Blueprint("debug", __name__)


@bp.get("/schema")
def schema():
    engine = get_engine()
    logs = [f"LOG: {a}" for a in ensure_schema(engine)]
    return jsonify({
        "message": "Schema check completed",
        "logs": logs,
        "currentColumns": table_columns(engine, "orders"),
    })


@bp.get("/db-info")
def db_info():
    engine = get_engine()
    return jsonify({"dialect": engine.dialect.name, "driver": engine.driver,
                    "db": engine.url.database, "user": engine.url.username})
