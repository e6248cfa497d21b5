from datetime import timedelta

import jwt
import pytest

from auth_utils import decode_token, generate_token, hash_password, verify_password
from errors import Unauthorized


def test_hash_password_is_salted_and_verifiable():
    first = hash_password("hunter22")
    second = hash_password("hunter22")

    assert first != "hunter22"
    assert first != second
    assert verify_password("hunter22", first)
    assert verify_password("hunter22", second)


def test_verify_password_rejects_wrong_or_missing_hash():
    hashed = hash_password("hunter22")

    assert not verify_password("hunter23", hashed)
    assert not verify_password("hunter22", None)
    assert not verify_password("", hashed)


def test_token_carries_id_role_and_expiry(app):
    token = generate_token("user-1", "user")
    claims = decode_token(token)

    assert claims["id"] == "user-1"
    assert claims["role"] == "user"
    assert "exp" in claims


def test_unknown_role_cannot_be_issued(app):
    with pytest.raises(ValueError):
        generate_token("someone", "superuser")


def test_expired_token_is_rejected(app):
    token = generate_token("user-1", "user", expires_in=timedelta(seconds=-5))

    with pytest.raises(Unauthorized):
        decode_token(token)


def test_token_signed_with_other_secret_is_rejected(app):
    forged = jwt.encode({"id": "admin-1", "role": "admin"}, "not-the-secret", algorithm="HS256")

    with pytest.raises(Unauthorized):
        decode_token(forged)


def test_missing_token_is_rejected(app):
    with pytest.raises(Unauthorized):
        decode_token(None)


def test_protected_route_without_token_returns_401(client):
    response = client.get("/api/my-applications")

    assert response.status_code == 401
    assert response.get_json()["message"] == "Access token required"


def test_protected_route_with_garbage_token_returns_401(client):
    response = client.get("/api/my-applications", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_user_token_on_admin_route_returns_403(client, make_user, user_headers):
    user = make_user()

    response = client.get("/api/admin/stats", headers=user_headers(user))

    assert response.status_code == 403
    assert response.get_json()["message"] == "Admin access required"


def test_admin_token_on_user_route_returns_403(client, admin_headers):
    response = client.get("/api/my-applications", headers=admin_headers)

    assert response.status_code == 403
