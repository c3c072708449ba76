from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from bson import ObjectId
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging

from app.core.errors import NotFoundError, ValidationError, collect_field_errors
from app.models.contact import (
    ContactCreate,
    ContactInDB,
    ContactListQuery,
    ContactPriority,
    ContactResponse,
    ContactSource,
    ContactStats,
    ContactStatus,
    ContactUpdate,
    count_by_status,
    sanitize_contact_fields,
    utcnow,
)
from app.schemas.response import Pagination
from app.services.contact_filters import build_contact_filter, build_sort, page_window

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(days=7)


class ContactService:
    """Create, read, update and delete contact submissions."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def create_contact(
        self,
        data: ContactCreate,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ContactResponse:
        now = utcnow()
        contact_dict = data.model_dump()
        contact_dict.update(
            {
                "status": ContactStatus.NEW.value,
                "source": ContactSource.WEBSITE.value,
                "priority": ContactPriority.MEDIUM.value,
                "ip_address": ip_address,
                "user_agent": user_agent.strip() if user_agent else None,
                "is_read": False,
                "is_archived": False,
                "created_at": now,
                "updated_at": now,
            }
        )
        # Mongo documents leave optional fields out instead of storing nulls
        contact_dict = {key: value for key, value in contact_dict.items() if value is not None}
        contact_dict = sanitize_contact_fields(contact_dict)

        result = await self.collection.insert_one(contact_dict)
        contact_dict["_id"] = result.inserted_id

        logger.info(f"✅ New contact created: {result.inserted_id} from {contact_dict['email']}")
        return ContactResponse.model_validate(contact_dict)

    async def get_contact(self, contact_id: ObjectId) -> ContactResponse:
        contact = await self.collection.find_one({"_id": contact_id})
        if not contact:
            raise NotFoundError("Contact not found")
        return ContactResponse.model_validate(contact)

    async def list_contacts(self, query: ContactListQuery) -> Tuple[List[ContactResponse], Pagination]:
        filter_query = build_contact_filter(query)
        skip, limit = page_window(query.page, query.limit)

        total = await self.collection.count_documents(filter_query)
        cursor = self.collection.find(filter_query, sort=build_sort(query.sort_by), skip=skip, limit=limit)
        contacts = await cursor.to_list(length=limit)

        return (
            [ContactResponse.model_validate(contact) for contact in contacts],
            Pagination.build(query.page, query.limit, total),
        )

    async def update_contact(self, contact_id: ObjectId, update: ContactUpdate) -> ContactResponse:
        existing = await self.collection.find_one({"_id": contact_id})
        if not existing:
            raise NotFoundError("Contact not found")

        changes = sanitize_contact_fields(update.changes())
        changes["updated_at"] = utcnow()

        # The merged record has to satisfy the stored schema before we write it
        try:
            ContactInDB.model_validate({**existing, **changes})
        except PydanticValidationError as exc:
            raise ValidationError(errors=collect_field_errors(exc.errors())) from exc

        contact = await self._set_fields(contact_id, changes)
        logger.info(f"✅ Contact updated: {contact_id} ({', '.join(sorted(changes))})")
        return contact

    async def mark_as_read(self, contact_id: ObjectId) -> ContactResponse:
        return await self._set_fields(contact_id, {"is_read": True, "updated_at": utcnow()})

    async def archive_contact(self, contact_id: ObjectId) -> ContactResponse:
        contact = await self._set_fields(contact_id, {"is_archived": True, "updated_at": utcnow()})
        logger.info(f"📦 Contact archived: {contact_id}")
        return contact

    async def delete_contact(self, contact_id: ObjectId) -> None:
        result = await self.collection.delete_one({"_id": contact_id})
        if result.deleted_count == 0:
            raise NotFoundError("Contact not found")
        logger.info(f"🗑️ Contact deleted: {contact_id}")

    async def get_stats(self) -> ContactStats:
        groups = await self.collection.aggregate(
            [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        ).to_list(length=None)

        total = await self.collection.count_documents({})
        unread = await self.collection.count_documents({"is_read": False})
        recent = await self.collection.count_documents(
            {"created_at": {"$gte": utcnow() - RECENT_WINDOW}}
        )

        return ContactStats(
            total=total,
            unread=unread,
            by_status=count_by_status(groups),
            recent_contacts=recent,
        )

    async def _set_fields(self, contact_id: ObjectId, fields: Dict[str, Any]) -> ContactResponse:
        contact = await self.collection.find_one_and_update(
            {"_id": contact_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if not contact:
            raise NotFoundError("Contact not found")
        return ContactResponse.model_validate(contact)
