# storefront/errors.py
from flask import jsonify
from werkzeug.exceptions import HTTPException

from .log import log


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None, code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code

    def to_dict(self):
        body = {"error": self.message}
        if self.code:
            body["code"] = self.code
        return body


class ValidationError(StorefrontError):
    status_code = 400


class NotFound(StorefrontError):
    status_code = 404


class Conflict(StorefrontError):
    # duplicate registrations answer 400, like the SPA expects
    status_code = 400


class AuthError(StorefrontError):
    status_code = 401


class PaymentNotConfigured(StorefrontError):
    status_code = 500

    def __init__(self, message="Checkout is not configured. Please try again later."):
        super().__init__(message)


class PaymentError(StorefrontError):
    status_code = 502


class EmailError(StorefrontError):
    status_code = 500


def register_error_handlers(app):
    @app.errorhandler(StorefrontError)
    def handle_storefront_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        log.exception("Unhandled error")
        return jsonify({"error": "Internal server error"}), 500
