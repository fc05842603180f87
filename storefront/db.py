# storefront/db.py
from flask import current_app
from sqlalchemy import create_engine, inspect, text, true
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from .log import log
from .models import Base

# Columns added after the first release. Existing databases get them through
# ALTER TABLE; fresh tables already have them from create_all(). {true} is the
# dialect's boolean literal (1 on SQLite, true on PostgreSQL).
LATE_COLUMNS = {
    "users": [
        # existing users predate verification, so they count as verified
        ("email_verified", "BOOLEAN NOT NULL DEFAULT {true}"),
    ],
    "products": [
        ("brand", "VARCHAR(255)"),
        ("category", "VARCHAR(255)"),
        ("in_stock", "BOOLEAN NOT NULL DEFAULT {true}"),
    ],
    "orders": [
        ("customer_email", "VARCHAR(255)"),
        ("shipping_address", "TEXT"),
        ("shipping_city", "VARCHAR(255)"),
        ("shipping_state", "VARCHAR(255)"),
        ("shipping_zip", "VARCHAR(20)"),
        ("shipping_country", "VARCHAR(255)"),
        ("phone_number", "VARCHAR(20)"),
        ("payment_provider", "VARCHAR(20)"),
        ("payment_reference", "VARCHAR(255)"),
        ("user_id", "INTEGER"),
    ],
}


def column_ddl(ddl: str, dialect) -> str:
    return ddl.replace("{true}", str(true().compile(dialect=dialect)))


def make_engine(url: str):
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:"):
        # one shared connection, otherwise every session sees an empty database
        return create_engine(url, future=True, poolclass=StaticPool,
                             connect_args={"check_same_thread": False})
    return create_engine(url, future=True, pool_pre_ping=True)


def ensure_schema(engine):
    """Create missing tables and add missing columns. Returns the actions taken."""
    actions = []
    existing = set(inspect(engine).get_table_names())
    Base.metadata.create_all(engine)
    for table in sorted(set(Base.metadata.tables) - existing):
        actions.append(f"created table {table}")

    for table, columns in LATE_COLUMNS.items():
        if table not in existing:
            continue
        have = {c["name"] for c in inspect(engine).get_columns(table)}
        for name, ddl in columns:
            if name in have:
                continue
            with engine.begin() as conn:
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {column_ddl(ddl, engine.dialect)}"))
            actions.append(f"added column {table}.{name}")

    for a in actions:
        log.info(f"schema: {a}")
    return actions


def table_columns(engine, table: str):
    return [{"column_name": c["name"], "data_type": str(c["type"])}
            for c in inspect(engine).get_columns(table)]


def get_engine():
    return current_app.extensions["storefront.engine"]


def main_session():
    return Session(get_engine())
