from datetime import datetime, timedelta, timezone
from functools import wraps

import bcrypt
from flask import current_app, g, jsonify, request
from jose import JWTError, jwt

ALGORITHM = "HS256"


def hash_password(password: str, rounds: int = 12) -> str:
    """bcrypt hash suitable for ADMIN_PASSWORD_HASH."""
    if not password or not isinstance(password, str):
        raise ValueError("Password must be a non-empty string")
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # ADMIN_PASSWORD_HASH is not a bcrypt hash
        return False


def validate_credentials(email: str, password: str) -> bool:
    admin_email = (current_app.config.get("ADMIN_EMAIL") or "").strip().lower()
    password_hash = current_app.config.get("ADMIN_PASSWORD_HASH")
    if not admin_email or not password_hash:
        return False
    if (email or "").strip().lower() != admin_email:
        return False
    return verify_password(password, password_hash)


def generate_token(email: str) -> str:
    ttl = current_app.config.get("ADMIN_TOKEN_TTL_SECONDS", 7 * 24 * 60 * 60)
    now = datetime.now(timezone.utc)
    payload = {
        "sub": email,
        "is_admin": True,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
    }
    return jwt.encode(payload, current_app.config["SECRET_KEY"], algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    return jwt.decode(token, current_app.config["SECRET_KEY"], algorithms=[ALGORITHM])


def require_admin(fn):
    """
    Usage: @require_admin on routes that need a dashboard bearer token.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        header = request.headers.get("Authorization") or ""
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return jsonify(error="Unauthorized"), 401

        try:
            payload = decode_token(token.strip())
        except JWTError:
            return jsonify(error="Invalid or expired token"), 401

        if not payload.get("is_admin"):
            return jsonify(error="Forbidden"), 403

        g.admin = payload
        return fn(*args, **kwargs)
    return wrapper
