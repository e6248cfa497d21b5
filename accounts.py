import logging
import uuid
from datetime import datetime

from flask import current_app
from pymongo.errors import DuplicateKeyError

from auth_utils import generate_token, hash_password, verify_password
from database import admins_collection, users_collection
from errors import Conflict, NotFound, ValidationError
from otp_utils import PASSWORD_RESET, REGISTRATION, confirm_otp, normalize_email
from user_utils import extract_profile_fields

logger = logging.getLogger(__name__)

REGISTRATION_REQUIRED = ["name", "email", "password", "phone", "otp"]
# The code may arrive as a JSON number; everything else must be text
REGISTRATION_TEXT = ["name", "email", "password", "phone"]


def _require(data, fields):
    missing = [f for f in fields if not data.get(f)]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}")


def _require_text(**values):
    wrong = [name for name, value in values.items() if not isinstance(value, str)]
    if wrong:
        raise ValidationError(f"Fields must be strings: {', '.join(wrong)}")


def serialize_admin(admin):
    return {
        "id": str(admin["_id"]),
        "username": admin["username"],
        "email": admin.get("email", ""),
    }


# =====================================================
# 👤 STUDENTS
# =====================================================

def register_user(data):
    """OTP-gated registration; returns (token, user)"""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    _require(data, REGISTRATION_REQUIRED)
    _require_text(**{f: data[f] for f in REGISTRATION_TEXT})

    email = normalize_email(data["email"])
    if users_collection().find_one({"email": email, "isVerified": True}):
        raise Conflict("User already exists")

    profile = extract_profile_fields(data)
    confirm_otp(email, data["otp"], purpose=REGISTRATION)

    now = datetime.utcnow()
    profile.setdefault("studyPreference", "India")
    profile.setdefault("skills", [])
    profile.setdefault("keywords", [])
    profile.update({
        "email": email,
        "password": hash_password(data["password"]),
        "isVerified": True,
        "updatedAt": now,
    })

    try:
        # An unverified leftover with this email is completed in place
        users_collection().update_one(
            {"email": email, "isVerified": {"$ne": True}},
            {
                "$set": profile,
                "$setOnInsert": {
                    "_id": str(uuid.uuid4()),
                    "applicationCount": 0,
                    "createdAt": now,
                },
            },
            upsert=True,
        )
    except DuplicateKeyError:
        raise Conflict("User already exists")

    user = users_collection().find_one({"email": email})
    logger.info("✅ User registered successfully: %s", email)
    return generate_token(user["_id"], "user"), user


def authenticate_user(email, password):
    if not email or not password:
        raise ValidationError("Email and password are required")
    _require_text(email=email, password=password)

    user = users_collection().find_one({"email": normalize_email(email)})
    if not user or not verify_password(password, user.get("password")):
        raise ValidationError("Invalid credentials")

    logger.info("✅ User login successful: %s", user["email"])
    return generate_token(user["_id"], "user"), user


def reset_password(email, otp, new_password):
    if not email or not otp or not new_password:
        raise ValidationError("Email, OTP, and new password are required")
    _require_text(email=email, newPassword=new_password)

    email = normalize_email(email)
    confirm_otp(email, otp, purpose=PASSWORD_RESET)

    result = users_collection().update_one(
        {"email": email},
        {"$set": {"password": hash_password(new_password), "updatedAt": datetime.utcnow()}},
    )
    if result.matched_count == 0:
        raise NotFound("User not found")
    logger.info("🔑 Password reset for %s", email)


# =====================================================
# 👨‍💼 ADMINS
# =====================================================

def authenticate_admin(username, password):
    if not username or not password:
        raise ValidationError("Username and password are required")
    _require_text(username=username, password=password)

    admin = admins_collection().find_one({"username": username.strip()})
    if not admin or not verify_password(password, admin.get("password")):
        logger.warning("❌ Failed admin login for: %s", username)
        raise ValidationError("Invalid credentials")

    logger.info("✅ Admin login successful: %s", admin["username"])
    return generate_token(admin["_id"], "admin"), admin


def seed_default_admin():
    """Create the configured admin unless one with that username exists"""
    config = current_app.config
    result = admins_collection().update_one(
        {"username": config["DEFAULT_ADMIN_USERNAME"]},
        {"$setOnInsert": {
            "_id": str(uuid.uuid4()),
            "username": config["DEFAULT_ADMIN_USERNAME"],
            "email": config["DEFAULT_ADMIN_EMAIL"],
            "password": hash_password(config["DEFAULT_ADMIN_PASSWORD"]),
            "createdAt": datetime.utcnow(),
        }},
        upsert=True,
    )
    if result.upserted_id is not None:
        logger.info("✅ Default admin created (username: %s)", config["DEFAULT_ADMIN_USERNAME"])
    else:
        logger.info("✅ Default admin already exists")
