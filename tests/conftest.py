import os
import re
import smtplib
import tempfile

# Configure the app before it is imported
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp(prefix="tutor-uploads-"))
os.environ.setdefault("CODE_HASH_SECRET", "test-secret")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from database import Base, get_db
import models  # noqa: F401  (registers tables on Base.metadata)
from models.profile import Profile
from app import app
from services.email_service import get_mailer
from utils.passwords import hash_password
from fastapi.testclient import TestClient

# Use a test database URL (set this in your environment or hardcode for local dev)
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite:///./test_test.db")
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingMailer:
    """Stands in for SmtpMailer and keeps every message it was asked to send."""

    def __init__(self):
        self.sent = []

    def send(self, to_email, subject, text, html):
        self.sent.append({"to": to_email, "subject": subject, "text": text, "html": html})

    def last_code(self, to_email=None):
        messages = [m for m in self.sent if to_email is None or m["to"] == to_email]
        assert messages, f"no email sent to {to_email}"
        return re.search(r"Code: (\d{6})", messages[-1]["text"]).group(1)


class FailingMailer:
    def send(self, to_email, subject, text, html):
        raise smtplib.SMTPException("relay refused")


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    # Create tables before any tests
    Base.metadata.create_all(bind=engine)
    yield
    # Drop tables after all tests
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    session = TestingSessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
    finally:
        session.close()


@pytest.fixture
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def client(db, mailer):
    # Override get_db and get_mailer dependencies to use the test DB and fake transport
    def override_get_db():
        try:
            yield db
        finally:
            db.close()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides = {}


@pytest.fixture
def make_profile(db):
    def _make(email="a@b.com", password="secret123", **fields):
        profile = Profile(email=email, password=hash_password(password), **fields)
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile
    return _make


@pytest.fixture
def failing_mailer():
    return FailingMailer()


@pytest.fixture
def session_factory():
    return TestingSessionLocal
