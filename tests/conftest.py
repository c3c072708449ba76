import asyncio
import os

# Keep test runs from writing log files; must be set before main is imported
os.environ["LOG_FILE"] = ""

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from app.core.config import Settings
from app.database.mongodb import get_contacts_collection
from app.models.contact import utcnow
from app.services.email_service import get_email_service
from main import create_app


class RecordingEmailService:
    """Stands in for SMTP delivery and remembers what would have been sent."""

    def __init__(self):
        self.sent = []

    def send_contact_notification(self, contact):
        self.sent.append(("notification", contact))
        return True

    def send_auto_reply(self, contact):
        self.sent.append(("auto-reply", contact))
        return True


@pytest.fixture
def settings():
    return Settings(LOG_FILE="", ENVIRONMENT="test", RATE_LIMIT_MAX_REQUESTS=1000)


@pytest.fixture
def collection():
    return AsyncMongoMockClient()["techedushop_test"]["contacts"]


@pytest.fixture
def email_outbox():
    return RecordingEmailService()


@pytest.fixture
def app(settings, collection, email_outbox):
    application = create_app(settings)
    application.dependency_overrides[get_contacts_collection] = lambda: collection
    application.dependency_overrides[get_email_service] = lambda: email_outbox
    return application


@pytest.fixture
def client(app):
    # No context manager: the lifespan (real MongoDB connection) is not started
    return TestClient(app)


@pytest.fixture
def make_contact():
    def factory(**overrides):
        now = utcnow()
        document = {
            "name": "Jane Doe",
            "school": "Green Hill Academy",
            "email": "jane@greenhill.org",
            "message": "We would like to book a school visit.",
            "status": "new",
            "source": "website",
            "priority": "medium",
            "ip_address": "127.0.0.1",
            "user_agent": "pytest",
            "is_read": False,
            "is_archived": False,
            "created_at": now,
            "updated_at": now,
        }
        document.update(overrides)
        return document

    return factory


@pytest.fixture
def seed(collection):
    """Insert documents from a synchronous test and return their ids."""

    def insert(*documents):
        result = asyncio.run(collection.insert_many([dict(document) for document in documents]))
        return result.inserted_ids

    return insert


@pytest.fixture
def stored(collection):
    """Read a stored document back from a synchronous test."""

    def find(contact_id):
        return asyncio.run(collection.find_one({"_id": contact_id}))

    return find


@pytest.fixture
def stored_count(collection):
    """Count stored contacts from a synchronous test."""

    def count():
        return asyncio.run(collection.count_documents({}))

    return count
