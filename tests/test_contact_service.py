from datetime import timedelta

import pytest
from bson import ObjectId

from app.core.errors import NotFoundError, ValidationError
from app.models.contact import ContactCreate, ContactListQuery, ContactUpdate, utcnow
from app.services.contact_service import ContactService


@pytest.fixture
def service(collection):
    return ContactService(collection)


def new_contact(**overrides):
    payload = {
        "name": "Jo",
        "school": "<b>Green Hill</b>",
        "email": "Jo@GreenHill.org",
        "message": "Hello <script>alert(1)</script> robotics kits",
    }
    payload.update(overrides)
    return ContactCreate.model_validate(payload)


async def test_create_assigns_defaults_and_sanitizes(service, collection):
    contact = await service.create_contact(new_contact(), ip_address="10.0.0.1", user_agent=" Mozilla ")

    assert contact.status == "new"
    assert contact.source == "website"
    assert contact.priority == "medium"
    assert contact.is_read is False and contact.is_archived is False
    assert contact.created_at == contact.updated_at

    stored = await collection.find_one({"_id": ObjectId(contact.id)})
    assert stored["school"] == "Green Hill"
    assert stored["message"] == "Hello alert(1) robotics kits"
    assert stored["email"] == "jo@greenhill.org"
    assert stored["ip_address"] == "10.0.0.1"
    assert stored["user_agent"] == "Mozilla"
    assert "phone" not in stored and "notes" not in stored


async def test_get_missing_contact_raises(service):
    with pytest.raises(NotFoundError):
        await service.get_contact(ObjectId())


async def test_list_pages_newest_first(service, collection, make_contact):
    base = utcnow() - timedelta(days=1)
    await collection.insert_many(
        [make_contact(name=f"Contact {i:02d}", created_at=base + timedelta(minutes=i)) for i in range(12)]
    )

    contacts, pagination = await service.list_contacts(ContactListQuery(page=3, limit=5))

    assert [contact.name for contact in contacts] == ["Contact 01", "Contact 00"]
    assert pagination.total_items == 12
    assert pagination.total_pages == 3
    assert pagination.current_page == 3


async def test_search_is_case_insensitive_substring(service, collection, make_contact):
    await collection.insert_many(
        [
            make_contact(name="Alice", school="Riverside School"),
            make_contact(name="Bob", email="bob@robotics.org"),
            make_contact(name="Carol", message="Need ROBOTICS kits please"),
            make_contact(name="Dave", status="closed", message="robotics again"),
        ]
    )

    contacts, pagination = await service.list_contacts(
        ContactListQuery.model_validate({"search": "Robotic", "status": "new"})
    )

    assert sorted(contact.name for contact in contacts) == ["Bob", "Carol"]
    assert pagination.total_items == 2


async def test_update_applies_only_allowed_fields(service, collection, make_contact):
    created_at = utcnow() - timedelta(days=2)
    (contact_id,) = (await collection.insert_many([make_contact(created_at=created_at, updated_at=created_at)])).inserted_ids

    update = ContactUpdate.model_validate(
        {"status": "closed", "notes": "<b>call</b> back", "name": "Mallory", "ipAddress": "6.6.6.6"}
    )
    contact = await service.update_contact(contact_id, update)

    assert contact.status == "closed"
    assert contact.notes == "call back"
    assert contact.name == "Jane Doe"
    assert contact.ip_address == "127.0.0.1"
    assert contact.updated_at > contact.created_at


async def test_update_allows_any_status_transition(service, collection, make_contact):
    (contact_id,) = (await collection.insert_many([make_contact(status="closed")])).inserted_ids

    contact = await service.update_contact(contact_id, ContactUpdate.model_validate({"status": "new"}))

    assert contact.status == "new"


async def test_update_rejects_a_merged_record_that_breaks_the_schema(service, collection, make_contact):
    (contact_id,) = (await collection.insert_many([make_contact(priority="urgent")])).inserted_ids

    with pytest.raises(ValidationError):
        await service.update_contact(contact_id, ContactUpdate.model_validate({"isRead": True}))

    stored = await collection.find_one({"_id": contact_id})
    assert stored["is_read"] is False


async def test_update_missing_contact_raises(service):
    with pytest.raises(NotFoundError):
        await service.update_contact(ObjectId(), ContactUpdate.model_validate({"status": "closed"}))


async def test_mark_as_read_is_idempotent(service, collection, make_contact):
    (contact_id,) = (await collection.insert_many([make_contact()])).inserted_ids

    first = await service.mark_as_read(contact_id)
    second = await service.mark_as_read(contact_id)

    assert first.is_read is True
    assert second.is_read is True


async def test_archive(service, collection, make_contact):
    (contact_id,) = (await collection.insert_many([make_contact()])).inserted_ids

    contact = await service.archive_contact(contact_id)

    assert contact.is_archived is True
    assert contact.is_read is False


async def test_delete_is_permanent(service, collection, make_contact):
    (contact_id,) = (await collection.insert_many([make_contact()])).inserted_ids

    await service.delete_contact(contact_id)

    assert await collection.count_documents({}) == 0
    with pytest.raises(NotFoundError):
        await service.delete_contact(contact_id)


async def test_stats(service, collection, make_contact):
    old = utcnow() - timedelta(days=30)
    await collection.insert_many(
        [
            make_contact(),
            make_contact(is_read=True),
            make_contact(status="closed", is_read=True),
            make_contact(status="in-progress", created_at=old, updated_at=old),
        ]
    )

    stats = await service.get_stats()

    assert stats.total == 4
    assert stats.unread == 2
    assert stats.by_status == {"new": 2, "closed": 1, "in-progress": 1}
    assert stats.recent_contacts == 3
