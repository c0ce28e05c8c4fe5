import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from printops.main import app
from printops.database import Base, get_db

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


def register(client, *, email: str | None = None, password: str = "secret"):
    """
    purpose: register a fresh account and return bearer headers for it
    outputs: tuple(headers dict, email str)
    """

    email = email or f"user-{uuid.uuid4()}@example.com"
    resp = client.post("/api/auth/register", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}, email


def organization_admin(client, name: str = "Print Shop"):
    """
    purpose: register a user who creates and administers a new organization
    outputs: tuple(headers dict, organization json)
    """

    headers, _ = register(client)
    resp = client.post("/api/organizations", json={"name": name}, headers=headers)
    assert resp.status_code == 201, resp.text
    return headers, resp.json()


@pytest.fixture
def admin_headers(client):
    headers, _ = organization_admin(client)
    return headers
