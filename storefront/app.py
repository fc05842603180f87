# storefront/app.py
from flask import Flask, jsonify
from flask_cors import CORS

from . import auth, cart, checkout, currency, debug, orders, paystack, products, uploads, verification
from .config import Settings, load_env
from .db import ensure_schema, make_engine
from .email_service import Mailer
from .errors import register_error_handlers
from .log import log, setup_logging


def create_app(overrides=None, settings: Settings = None):
    if settings is None:
        load_env()
        settings = Settings.from_env(overrides)
    setup_logging(settings.LOG_FILE)

    app = Flask(__name__)
    app.secret_key = settings.JWT_SECRET
    app.config["MAX_CONTENT_LENGTH"] = settings.MAX_CONTENT_MB * 1024 * 1024
    app.extensions["storefront.settings"] = settings
    app.extensions["storefront.mailer"] = Mailer(settings)

    # ---------- Engine ----------
    engine = make_engine(settings.DATABASE_URL)
    app.extensions["storefront.engine"] = engine
    try:
        ensure_schema(engine)
    except Exception:
        log.exception("Failed to ensure DB schema")

    CORS(app, origins=[settings.CLIENT_URL], supports_credentials=True)
    auth.login_manager.init_app(app)
    register_error_handlers(app)

    @app.get("/api/health")
    def health():
        return jsonify({"status": "ok"})

    app.register_blueprint(products.bp, url_prefix="/api/products")
    app.register_blueprint(checkout.bp, url_prefix="/api/checkout")
    app.register_blueprint(paystack.bp, url_prefix="/api/checkout/paystack")
    app.register_blueprint(orders.bp, url_prefix="/api/orders")
    app.register_blueprint(verification.bp, url_prefix="/api/email")
    app.register_blueprint(auth.bp, url_prefix="/api/auth")
    app.register_blueprint(cart.bp, url_prefix="/api/cart")
    app.register_blueprint(currency.bp, url_prefix="/api/currencies")
    app.register_blueprint(uploads.bp)
    if settings.DEBUG_ROUTES:
        app.register_blueprint(debug.bp, url_prefix="/api/debug")

    if not checkout.is_placeholder_key(settings.STRIPE_SECRET_KEY):
        log.info("Stripe checkout enabled")
    else:
        log.warning("STRIPE_SECRET_KEY is not set. Stripe checkout will be disabled.")
    return app
