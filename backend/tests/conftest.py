"""
ProjectTrack - Test Configuration and Fixtures

MongoDB is replaced by mongomock; the FastAPI app is exercised through
TestClient without running the startup hook, so no real server is needed.
"""
import os

import mongomock
import pytest
from faker import Faker
from fastapi.testclient import TestClient

# Set testing environment before the app modules read it
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import auth
import database
from database import ensure_indexes, utcnow
from main import app

fake = Faker()


@pytest.fixture
def db():
    """A fresh in-memory database with the production indexes, wired into database.db"""
    client = mongomock.MongoClient()
    test_db = client["projecttrack_test"]
    ensure_indexes(test_db)
    database.db = test_db
    yield test_db
    database.db = None
    client.close()


@pytest.fixture
def make_user(db):
    """Factory inserting a user and returning it shaped like get_current_user's result"""
    def _make(role: str = "student", password: str = None, **overrides) -> dict:
        doc = {
            "fullName": fake.name(),
            "email": f"{fake.unique.user_name()}@campus.edu".lower(),
            "hashedPassword": auth.get_password_hash(password) if password else None,
            "role": role,
            "department": "Computer Science",
            "phone": None,
            "isVerified": True,
            "createdAt": utcnow(),
        }
        doc.update(overrides)
        result = db.users.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc
    return _make


@pytest.fixture
def admin(make_user) -> dict:
    return make_user(role="admin")


@pytest.fixture
def faculty(make_user) -> dict:
    return make_user(role="faculty")


@pytest.fixture
def students(make_user):
    """Factory for n students"""
    def _make(n: int) -> list:
        return [make_user(role="student") for _ in range(n)]
    return _make


@pytest.fixture
def auth_headers():
    """Generate authentication headers for a user dict"""
    def _headers(user: dict) -> dict:
        token = auth.create_access_token({"sub": user["email"], "role": user["role"]})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def client(db) -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_project(db):
    """Factory inserting a project document directly (bypasses the workflow)"""
    def _make(title: str, group_id: str = None, guide_id: str = None, status: str = "proposed", **overrides) -> dict:
        now = utcnow()
        doc = {
            "title": title,
            "description": fake.sentence(),
            "groupId": group_id or "0" * 24,
            "submittedBy": None,
            "guideId": guide_id,
            "projectType": "major",
            "status": status,
            "technologyStack": ["Python"],
            "objectives": fake.sentence(),
            "expectedOutcomes": None,
            "academicYear": "2025-26",
            "semester": "7",
            "rejectionReason": None,
            "proposalFileId": None,
            "submissionDate": now,
            "approvalDate": None,
            "createdAt": now,
            "updatedAt": now,
        }
        doc.update(overrides)
        result = db.projects.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc
    return _make
