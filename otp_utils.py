"""
One-time codes gating registration and password reset.

Each purpose has its own TTL collection holding at most one pending code per
email. Requesting a code overwrites the previous one; a correct, unexpired code
is consumed (deleted) atomically on confirmation.
"""
import logging
import secrets
from datetime import datetime, timedelta

from flask import current_app
from pymongo.errors import DuplicateKeyError

import email_utils
from database import otp_collection, password_reset_otp_collection, users_collection
from errors import Conflict, EmailDeliveryError, InvalidOTPError, NotFound, ValidationError

logger = logging.getLogger(__name__)

REGISTRATION = "registration"
PASSWORD_RESET = "password_reset"

OTP_MIN = 100000
OTP_MAX = 999999


def _store_for(purpose):
    if purpose == REGISTRATION:
        return otp_collection()
    if purpose == PASSWORD_RESET:
        return password_reset_otp_collection()
    raise ValueError(f"Unknown OTP purpose: {purpose}")


def normalize_email(email):
    if not email or not isinstance(email, str) or not email.strip():
        raise ValidationError("Email is required")
    return email.lower().strip()


def generate_otp():
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def request_otp(email, purpose=REGISTRATION, now=None):
    """Issue a fresh code for ``email`` and send it by email"""
    email = normalize_email(email)
    store = _store_for(purpose)

    if purpose == REGISTRATION:
        if users_collection().find_one({"email": email, "isVerified": True}):
            raise Conflict("User with this email already exists")
    else:
        if not users_collection().find_one({"email": email}):
            raise NotFound("User not found")

    now = now or datetime.utcnow()
    expiry_minutes = current_app.config["OTP_EXPIRY_MINUTES"]
    otp = generate_otp()

    pending = {
        "email": email,
        "otp": otp,
        "createdAt": now,
        "expiresAt": now + timedelta(minutes=expiry_minutes),
    }
    try:
        store.update_one({"email": email}, {"$set": pending}, upsert=True)
    except DuplicateKeyError:
        # A concurrent request inserted first; the record now exists to overwrite
        store.update_one({"email": email}, {"$set": pending}, upsert=True)

    sent = email_utils.send_otp_email(email, otp, purpose=purpose, expiry_minutes=expiry_minutes)
    if not sent:
        raise EmailDeliveryError("Failed to send OTP email. Please try again.")

    logger.info("📧 %s OTP sent to %s", purpose, email)
    return otp


def confirm_otp(email, otp, purpose=REGISTRATION, now=None):
    """Consume a pending code; raise InvalidOTPError unless it matches and is unexpired"""
    email = normalize_email(email)
    if not otp:
        raise InvalidOTPError()

    now = now or datetime.utcnow()
    record = _store_for(purpose).find_one_and_delete({
        "email": email,
        "otp": str(otp).strip(),
        "expiresAt": {"$gt": now},
    })
    if record is None:
        raise InvalidOTPError()
    return record
