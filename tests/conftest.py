"""Shared pytest fixtures and configuration."""

import os
import shutil
import tempfile

# Set test environment variables (read once, when app.core.config is imported)
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="marketplace-uploads-")
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="marketplace-logs-")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ADMIN_EMAIL"] = "admin-inbox@example.com"
os.environ["CONTACT_EMAIL"] = "contact-inbox@example.com"

import pytest
from faker import Faker
from fastapi.testclient import TestClient

from app.core import config
from app.core.database import Base, SessionLocal, engine
from app.core.security import create_access_token, get_password_hash
from app.main import app
from app.models import tables
from app.services.notifications import EmailSendError, NotificationDispatcher, get_notification_dispatcher

fake = Faker("pl_PL")

DEFAULT_PASSWORD = "secret123"


class FakeMailer:
    """Records outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()
        self.fail_all = False

    def send(self, to, subject, html):
        if self.fail_all or to in self.fail_for:
            raise EmailSendError(f"SMTP refused {to}")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return f"<fake-{len(self.sent)}@test>"

    @property
    def recipients(self):
        return [m["to"] for m in self.sent]


@pytest.fixture(autouse=True)
def fresh_database():
    """Every test starts from empty tables and an empty upload directory."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    for entry in os.listdir(config.UPLOAD_DIR):
        path = os.path.join(config.UPLOAD_DIR, entry)
        if os.path.isdir(path):
            shutil.rmtree(path)
        else:
            os.remove(path)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def client(mailer):
    app.dependency_overrides[get_notification_dispatcher] = lambda: NotificationDispatcher(mailer)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def upload_dir():
    return config.UPLOAD_DIR


def stored_files(root=None):
    """Relative paths of every file currently under the upload directory."""
    root = root or config.UPLOAD_DIR
    found = []
    for dirpath, _, filenames in os.walk(root):
        for name in filenames:
            found.append(os.path.relpath(os.path.join(dirpath, name), root))
    return sorted(found)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


# ==========================================
# FACTORIES
# ==========================================
@pytest.fixture
def make_user(db):
    def _make_user(role="user", is_active=True, password=DEFAULT_PASSWORD, **overrides):
        data = {
            "name": fake.first_name(),
            "surname": fake.last_name(),
            "email": fake.unique.email().lower(),
            "phone": fake.phone_number(),
        }
        data.update(overrides)
        user = tables.User(
            password_hash=get_password_hash(password),
            role=role,
            is_active=is_active,
            **data,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role="admin")


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def make_listing(db, make_user):
    def _make_listing(owner=None, files=0, **overrides):
        owner = owner or make_user()
        details = overrides.pop("details", {"area": str(fake.random_int(30, 150)), "rooms": fake.random_int(1, 5)})
        data = {
            "name": f"{fake.city()} - {fake.word()}",
            "description": fake.sentence(nb_words=12),
            "price": str(fake.random_int(200_000, 900_000)),
            "category": "mieszkanie",
            "status": "na_sprzedaz",
            "address": fake.street_address(),
            "region": "mazowieckie",
            "city": "Warszawa",
            "is_active": True,
        }
        data.update(overrides)
        listing = tables.Listing(user_id=owner.id, details=details, **data)
        for position in range(files):
            listing.files.append(tables.ListingFile(
                position=position,
                filename=f"photo-{position}.jpg",
                original_name=f"photo-{position}.jpg",
                path=f"uploads/photo-{position}.jpg",
                mimetype="image/jpeg",
                size=1024,
                is_cover=(position == 0),
            ))
        db.add(listing)
        db.commit()
        db.refresh(listing)
        return listing
    return _make_listing


@pytest.fixture
def make_submission(db):
    def _make_submission(form_type="contact_inquiry", **overrides):
        payload = overrides.pop("payload", {"formType": form_type, "message": fake.sentence()})
        data = {
            "name": fake.name(),
            "email": fake.unique.email().lower(),
            "phone": fake.phone_number(),
            "status": "new",
            "tags": [],
            "internal_notes": "",
        }
        data.update(overrides)
        submission = tables.FormSubmission(form_type=form_type, payload=payload, **data)
        db.add(submission)
        db.commit()
        db.refresh(submission)
        return submission
    return _make_submission
