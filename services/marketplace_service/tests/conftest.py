import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "development"
os.environ["SMS_PROVIDER"] = "console"
os.environ["SMS_BULK_DELAY_SECONDS"] = "0"

import pytest
from fastapi.testclient import TestClient
from main import app
from database import SessionLocal, reset_db
from crud import create_user, create_college, create_service, upsert_provider_profile
from auth import create_user_token
from models import Role


@pytest.fixture(autouse=True)
def fresh_db():
    reset_db()
    yield


@pytest.fixture
def client():
    # One portal, so HTTP handlers and sockets share an event loop like uvicorn
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(user):
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture
def make_user():
    def _make(email, role=Role.CLIENT, name="Test User", phone=None, password="secret123"):
        with SessionLocal() as db:
            return create_user(db, email, password, name, role, phone)
    return _make


@pytest.fixture
def make_provider(make_user):
    def _make(email, college_id=None, service_ids=None, latitude=None, longitude=None, phone="0712345678"):
        user = make_user(email, Role.SERVICE_PROVIDER, name="Provider")
        with SessionLocal() as db:
            provider = upsert_provider_profile(db, user.id, {
                "first_name": "Pat",
                "last_name": "Provider",
                "phone_number": phone,
                "college_id": college_id,
                "latitude": latitude,
                "longitude": longitude,
                "service_ids": service_ids or [],
            })
            provider_id = provider.id
        return user, provider_id
    return _make


@pytest.fixture
def college():
    with SessionLocal() as db:
        return create_college(db, "Strathmore University", "Nairobi")


@pytest.fixture
def service():
    with SessionLocal() as db:
        return create_service(db, "Laptop Repair", "electronics", "Hardware and software fixes")
