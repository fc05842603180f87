# storefront/verification.py
import secrets
from datetime import timedelta

from flask import Blueprint, jsonify, request
from sqlalchemy import delete, update

from .auth import normalize_email
from .config import get_settings
from .db import main_session
from .email_service import get_mailer
from .errors import EmailError, ValidationError
from .log import log
from .models import User, VerificationCode, utcnow

bp = Blueprint("email", __name__)


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def store_code(db, email: str, code: str, ttl_minutes: int):
    now = utcnow()
    db.execute(delete(VerificationCode).where(VerificationCode.expires_at < now))
    db.merge(VerificationCode(email=email, code=code, expires_at=now + timedelta(minutes=ttl_minutes)))
    db.commit()


def check_code(db, email: str, code: str):
    """Consume a code. Raises ValidationError unless it matches and is still live."""
    row = db.get(VerificationCode, email)
    if not row:
        raise ValidationError("No verification code found for this email")
    if utcnow() > row.expires_at:
        db.delete(row)
        db.commit()
        raise ValidationError("Verification code has expired")
    if row.code != code:
        raise ValidationError("Invalid verification code")
    db.delete(row)
    db.execute(update(User).where(User.email == email).values(email_verified=True))
    db.commit()


@bp.post("/send-verification")
def send_verification():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    if not email or "@" not in email:
        raise ValidationError("Valid email is required")

    settings = get_settings()
    code = generate_code()
    with main_session() as db:
        store_code(db, email, code, settings.VERIFICATION_TTL_MINUTES)

    try:
        get_mailer().send_verification_email(email, code)
    except EmailError as e:
        log.error(f"Error sending verification email to {email}: {e}")
        return jsonify({"error": "Failed to send verification email", "details": e.message}), 500

    return jsonify({"success": True, "message": "Verification code sent to your email"})


@bp.post("/verify-code")
def verify_code():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    code = str(data.get("code") or "").strip()
    if not email or not code:
        raise ValidationError("Email and code are required")

    with main_session() as db:
        check_code(db, email, code)
    log.info(f"Email verified: {email}")
    return jsonify({"success": True, "message": "Email verified successfully"})
