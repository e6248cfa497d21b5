from datetime import datetime, timedelta
from functools import wraps

import jwt
from flask import current_app, g, request
from werkzeug.security import generate_password_hash, check_password_hash

from errors import Forbidden, Unauthorized

ROLES = ("user", "admin")


# =====================================================
# 🔑 PASSWORDS
# =====================================================

def hash_password(password):
    return generate_password_hash(password)


def verify_password(password, password_hash):
    if not password or not password_hash:
        return False
    return check_password_hash(password_hash, password)


# =====================================================
# 🎟️ TOKENS
# =====================================================

def generate_token(principal_id, role, expires_in=None):
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    if expires_in is None:
        expires_in = timedelta(hours=current_app.config["TOKEN_EXPIRY_HOURS"])
    payload = {
        "id": str(principal_id),
        "role": role,
        "exp": datetime.utcnow() + expires_in,
    }
    return jwt.encode(payload, current_app.config["SECRET_KEY"], algorithm="HS256")


def decode_token(token):
    """Verify signature and expiry and return the claims"""
    if not token:
        raise Unauthorized("Access token required")
    try:
        claims = jwt.decode(token, current_app.config["SECRET_KEY"], algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid or expired token")

    if claims.get("role") not in ROLES or not claims.get("id"):
        raise Unauthorized("Invalid or expired token")
    return claims


def get_bearer_token():
    auth_header = request.headers.get("Authorization", "")
    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def token_required(role=None):
    """Require a valid bearer token, optionally for one principal kind.

    The decoded claims are available to the handler as ``g.current_principal``.
    """
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            claims = decode_token(get_bearer_token())
            if role and claims["role"] != role:
                raise Forbidden("Admin access required" if role == "admin" else "User access required")
            g.current_principal = claims
            return f(*args, **kwargs)
        return wrapper
    return decorator


user_required = token_required("user")
admin_required = token_required("admin")


def current_principal_id():
    return g.current_principal["id"]
