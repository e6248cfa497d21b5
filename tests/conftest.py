import base64
import uuid
from datetime import datetime, timedelta
from io import BytesIO

import mongomock
import pytest
from openpyxl import Workbook

import email_utils
from accounts import seed_default_admin
from auth_utils import generate_token, hash_password
from config import TestingConfig
from database import admins_collection, internships_collection, users_collection
from internship_utils import new_internship_document
from main import create_app


@pytest.fixture
def app():
    app = create_app(TestingConfig, database_handle=mongomock.MongoClient()["internx_test"])
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture OTP emails instead of talking to SMTP"""
    sent = []

    def fake_send_otp_email(recipient_email, otp, purpose="registration", expiry_minutes=10):
        sent.append({"email": recipient_email, "otp": otp, "purpose": purpose})
        return True

    monkeypatch.setattr(email_utils, "send_otp_email", fake_send_otp_email)
    return sent


@pytest.fixture
def make_user(app):
    def _make_user(email="student@example.com", password="secret123", with_resume=True, **fields):
        now = datetime.utcnow()
        user = {
            "_id": str(uuid.uuid4()),
            "name": "Test Student",
            "email": email,
            "password": hash_password(password),
            "phone": "9999999999",
            "skills": ["Python"],
            "keywords": [],
            "applicationCount": 0,
            "isVerified": True,
            "createdAt": now,
            "updatedAt": now,
        }
        if with_resume:
            user.update({
                "resume": base64.b64encode(b"%PDF-1.4 resume").decode(),
                "resumeFilename": "resume.pdf",
                "resumeContentType": "application/pdf",
            })
        user.update(fields)
        users_collection().insert_one(user)
        return user
    return _make_user


@pytest.fixture
def make_internship(app):
    counter = {"n": 0}

    def _make_internship(**fields):
        # Strictly increasing creation times keep ordering deterministic
        counter["n"] += 1
        data = {
            "title": "Software Intern",
            "company": "Acme",
            "location": "Bengaluru",
            "domain": "Engineering",
            "position": "Backend Developer",
            "salary": 12000,
            "type": "Full-time",
            "duration": "3 months",
            "description": "Build APIs",
            "requirements": ["Python"],
        }
        data.update(fields)
        doc = new_internship_document(data, now=datetime(2024, 1, 1) + timedelta(minutes=counter["n"]))
        internships_collection().insert_one(doc)
        return doc
    return _make_internship


@pytest.fixture
def admin(app):
    seed_default_admin()
    return admins_collection().find_one({"username": app.config["DEFAULT_ADMIN_USERNAME"]})


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {generate_token(admin['_id'], 'admin')}"}


@pytest.fixture
def user_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {generate_token(user['_id'], 'user')}"}
    return _headers


@pytest.fixture
def make_workbook():
    def _make_workbook(headers, rows):
        wb = Workbook()
        ws = wb.active
        ws.append(headers)
        for row in rows:
            ws.append(row)
        output = BytesIO()
        wb.save(output)
        return output.getvalue()
    return _make_workbook
