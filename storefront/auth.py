# storefront/auth.py
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from flask import Blueprint, g, jsonify, request
from flask_login import LoginManager, UserMixin, current_user, login_required
from sqlalchemy import select

from .config import get_settings
from .db import main_session
from .errors import AuthError, Conflict, NotFound, ValidationError
from .log import log
from .models import User

bp = Blueprint("auth", __name__)
login_manager = LoginManager()

TOKEN_COOKIE = "token"


class TokenUser(UserMixin):
    """The identity carried by a verified token. No database round trip."""

    def __init__(self, user_id: int, email: str):
        self.id = str(user_id)
        self.user_id = int(user_id)
        self.email = email


def normalize_email(email) -> str:
    return str(email or "").strip().lower()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def check_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # not a bcrypt hash
        return False


def issue_token(user: User, settings=None) -> str:
    settings = settings or get_settings()
    payload = {
        "userId": user.id,
        "email": user.email,
        "exp": datetime.now(timezone.utc) + timedelta(days=settings.TOKEN_TTL_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def token_from_request(req):
    token = req.cookies.get(TOKEN_COOKIE)
    if token:
        return token
    auth = req.headers.get("Authorization", "")
    if " " in auth:
        return auth.split(" ", 1)[1].strip() or None
    return None


@login_manager.request_loader
def load_user_from_request(req):
    token = token_from_request(req)
    if not token:
        return None
    try:
        payload = jwt.decode(token, get_settings().JWT_SECRET, algorithms=["HS256"])
        return TokenUser(payload["userId"], payload.get("email"))
    except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
        g.auth_error = "invalid"
        return None


@login_manager.unauthorized_handler
def unauthorized():
    if g.get("auth_error"):
        return jsonify({"error": "Invalid or expired token"}), 403
    return jsonify({"error": "Authentication required"}), 401


def optional_user_id():
    return current_user.user_id if current_user.is_authenticated else None


# --------------------------- ROUTES ---------------------------
@bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    name = data.get("name") or None
    if not email or not password:
        raise ValidationError("Email and password are required")

    with main_session() as db:
        exists = db.execute(select(User.id).where(User.email == email)).first()
        if exists:
            raise Conflict("Email already registered")
        u = User(email=email, password=hash_password(password), name=name, email_verified=False)
        db.add(u)
        db.commit()
        log.info(f"Registered user {u.id} ({email})")
        user = u.to_dict()

    return jsonify({
        "message": "User registered successfully. Please verify your email before logging in.",
        "requiresEmailVerification": True,
        "user": user,
    }), 201


@bp.post("/login")
def login():
    settings = get_settings()
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    if not email or not password:
        raise ValidationError("Email and password are required")

    with main_session() as db:
        u = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not u:
            raise AuthError("Invalid email or password")
        if not u.email_verified:
            raise AuthError("Please verify your email before logging in.",
                            status_code=403, code="EMAIL_NOT_VERIFIED")
        if not check_password(password, u.password):
            log.warning(f"Failed login attempt for {email}")
            raise AuthError("Invalid email or password")
        token = issue_token(u, settings)
        user = u.to_dict()

    resp = jsonify({"message": "Login successful", "user": user, "token": token})
    resp.set_cookie(
        TOKEN_COOKIE, token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        max_age=settings.TOKEN_TTL_DAYS * 24 * 60 * 60,
        samesite="Lax",
    )
    return resp


@bp.post("/logout")
def logout():
    resp = jsonify({"message": "Logged out successfully"})
    resp.delete_cookie(TOKEN_COOKIE)
    return resp


@bp.get("/me")
@login_required
def me():
    with main_session() as db:
        u = db.get(User, current_user.user_id)
        if not u:
            raise NotFound("User not found")
        return jsonify({"user": u.to_dict(with_created=True)})
