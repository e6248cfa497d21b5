from datetime import datetime, timedelta

import pytest

import email_utils
from database import otp_collection, password_reset_otp_collection
from errors import Conflict, EmailDeliveryError, InvalidOTPError, NotFound, ValidationError
from otp_utils import PASSWORD_RESET, confirm_otp, generate_otp, request_otp


def test_generated_codes_are_six_digits_in_range():
    for _ in range(500):
        code = generate_otp()
        assert len(code) == 6
        assert code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_request_otp_stores_and_emails_code(app, sent_emails):
    now = datetime.utcnow().replace(microsecond=0)

    code = request_otp("New.Student@Example.com ", now=now)

    record = otp_collection().find_one({"email": "new.student@example.com"})
    assert record["otp"] == code
    assert record["expiresAt"] == now + timedelta(minutes=app.config["OTP_EXPIRY_MINUTES"])
    assert sent_emails == [{"email": "new.student@example.com", "otp": code, "purpose": "registration"}]


def test_new_request_overwrites_pending_code(app, sent_emails, monkeypatch):
    codes = iter(["111111", "222222"])
    monkeypatch.setattr("otp_utils.generate_otp", lambda: next(codes))

    request_otp("a@example.com")
    request_otp("a@example.com")

    assert otp_collection().count_documents({"email": "a@example.com"}) == 1
    with pytest.raises(InvalidOTPError):
        confirm_otp("a@example.com", "111111")
    assert confirm_otp("a@example.com", "222222")["otp"] == "222222"


def test_confirm_consumes_the_code(app, sent_emails):
    code = request_otp("a@example.com")

    confirm_otp("a@example.com", code)

    assert otp_collection().count_documents({}) == 0
    with pytest.raises(InvalidOTPError):
        confirm_otp("a@example.com", code)


def test_wrong_code_is_rejected_and_kept(app, sent_emails):
    code = request_otp("a@example.com")
    wrong = "100000" if code != "100000" else "100001"

    with pytest.raises(InvalidOTPError):
        confirm_otp("a@example.com", wrong)
    assert otp_collection().count_documents({"email": "a@example.com"}) == 1


def test_correct_code_after_expiry_is_rejected(app, sent_emails):
    issued = datetime.utcnow()
    code = request_otp("a@example.com", now=issued)
    window = timedelta(minutes=app.config["OTP_EXPIRY_MINUTES"])

    with pytest.raises(InvalidOTPError):
        confirm_otp("a@example.com", code, now=issued + window + timedelta(seconds=1))

    assert confirm_otp("a@example.com", code, now=issued + window - timedelta(seconds=1))


def test_verified_email_cannot_request_registration_code(app, sent_emails, make_user):
    make_user(email="taken@example.com")

    with pytest.raises(Conflict):
        request_otp("taken@example.com")
    assert sent_emails == []


def test_missing_email_is_a_validation_error(app, sent_emails):
    with pytest.raises(ValidationError):
        request_otp("  ")


def test_email_failure_fails_the_request(app, monkeypatch):
    monkeypatch.setattr(email_utils, "send_otp_email", lambda *args, **kwargs: False)

    with pytest.raises(EmailDeliveryError):
        request_otp("a@example.com")


def test_password_reset_requires_existing_user(app, sent_emails):
    with pytest.raises(NotFound):
        request_otp("ghost@example.com", purpose=PASSWORD_RESET)


def test_password_reset_codes_live_in_their_own_store(app, sent_emails, make_user):
    make_user(email="a@example.com")

    code = request_otp("a@example.com", purpose=PASSWORD_RESET)

    assert password_reset_otp_collection().count_documents({"email": "a@example.com"}) == 1
    assert otp_collection().count_documents({}) == 0
    with pytest.raises(InvalidOTPError):
        confirm_otp("a@example.com", code)
    assert confirm_otp("a@example.com", code, purpose=PASSWORD_RESET)


def test_concurrent_first_request_overwrites_instead_of_failing(app, sent_emails, monkeypatch):
    # The first upsert loses the insert race against another request for the same email
    import otp_utils
    from pymongo.errors import DuplicateKeyError

    real_store = otp_collection()

    class RacingStore:
        calls = 0

        def update_one(self, *args, **kwargs):
            RacingStore.calls += 1
            if RacingStore.calls == 1:
                real_store.insert_one({"email": "a@example.com", "otp": "999999"})
                raise DuplicateKeyError("E11000 duplicate key error")
            return real_store.update_one(*args, **kwargs)

    monkeypatch.setattr(otp_utils, "_store_for", lambda purpose: RacingStore())

    code = request_otp("a@example.com")

    assert RacingStore.calls == 2
    assert otp_collection().count_documents({"email": "a@example.com"}) == 1
    assert real_store.find_one({"email": "a@example.com"})["otp"] == code
