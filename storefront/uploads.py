# storefront/uploads.py
import os
import secrets
import time

from flask import Blueprint, jsonify, request, send_from_directory
from werkzeug.utils import secure_filename

from .config import get_settings
from .errors import ValidationError
from .log import log

bp = Blueprint("uploads", __name__)


def stored_name(original: str) -> str:
    """<ms-timestamp>-<random><ext>, keeping the original extension (default .jpg)."""
    ext = os.path.splitext(secure_filename(original or ""))[1].lower() or ".jpg"
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"


def public_url(path: str) -> str:
    base = get_settings().API_BASE_URL or request.host_url
    return f"{base.rstrip('/')}{path}"


@bp.post("/api/upload/image")
def upload_image():
    f = request.files.get("image")
    if f is None or not f.filename:
        raise ValidationError("No file uploaded")

    upload_dir = get_settings().UPLOAD_DIR
    os.makedirs(upload_dir, exist_ok=True)
    name = stored_name(f.filename)
    f.save(os.path.join(upload_dir, name))
    log.info(f"Stored upload {name}")

    path = f"/uploads/{name}"
    return jsonify({"url": public_url(path), "path": path}), 201


@bp.get("/uploads/<path:filename>")
def media(filename):
    return send_from_directory(get_settings().UPLOAD_DIR, filename, conditional=True)
