from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError as PydanticValidationError
from typing import Optional
from bson import ObjectId

from app.core.errors import ValidationError, collect_field_errors
from app.database.mongodb import get_contacts_collection
from app.models.contact import ContactCreate, ContactListQuery, ContactPublic, ContactUpdate
from app.schemas.response import StandardResponse
from app.services.contact_service import ContactService
from app.services.email_service import EmailService, get_email_service
from app.utils.rate_limit import enforce_rate_limit, get_client_ip

# Admin routes below are not authenticated; see DESIGN.md
router = APIRouter(dependencies=[Depends(enforce_rate_limit)])


def get_contact_service(
    collection: AsyncIOMotorCollection = Depends(get_contacts_collection),
) -> ContactService:
    return ContactService(collection)


def valid_contact_id(contact_id: str) -> ObjectId:
    if not ObjectId.is_valid(contact_id):
        raise ValidationError(errors=[{"field": "id", "message": "Invalid contact ID"}])
    return ObjectId(contact_id)


def contact_list_query(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    is_read: Optional[str] = Query(None, alias="isRead"),
    is_archived: Optional[str] = Query(None, alias="isArchived"),
    search: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
) -> ContactListQuery:
    raw = {
        "page": page,
        "limit": limit,
        "status": status,
        "priority": priority,
        "isRead": is_read,
        "isArchived": is_archived,
        "search": search,
        "sortBy": sort_by,
    }
    try:
        return ContactListQuery.model_validate({key: value for key, value in raw.items() if value is not None})
    except PydanticValidationError as exc:
        raise ValidationError(errors=collect_field_errors(exc.errors())) from exc


@router.post(
    "/contacts",
    response_model=StandardResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_contact(
    contact: ContactCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    service: ContactService = Depends(get_contact_service),
    email_service: EmailService = Depends(get_email_service),
):
    created = await service.create_contact(
        contact,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )

    # Send emails in background (won't block the response)
    background_tasks.add_task(email_service.send_contact_notification, created)
    background_tasks.add_task(email_service.send_auto_reply, created)

    return StandardResponse(
        message="Thank you for contacting us! We will get back to you soon.",
        data={"contact": ContactPublic.from_contact(created).to_api()},
    )


@router.get("/contacts/stats", response_model=StandardResponse, response_model_exclude_none=True)
async def get_contact_stats(service: ContactService = Depends(get_contact_service)):
    stats = await service.get_stats()
    return StandardResponse(data=stats.to_api())


@router.get("/contacts", response_model=StandardResponse, response_model_exclude_none=True)
async def get_contacts(
    query: ContactListQuery = Depends(contact_list_query),
    service: ContactService = Depends(get_contact_service),
):
    contacts, pagination = await service.list_contacts(query)
    return StandardResponse(
        results=len(contacts),
        pagination=pagination.to_api(),
        data={"contacts": [contact.to_api() for contact in contacts]},
    )


@router.get("/contacts/{contact_id}", response_model=StandardResponse, response_model_exclude_none=True)
async def get_contact(
    contact_id: ObjectId = Depends(valid_contact_id),
    service: ContactService = Depends(get_contact_service),
):
    contact = await service.get_contact(contact_id)
    return StandardResponse(data={"contact": contact.to_api()})


@router.patch("/contacts/{contact_id}", response_model=StandardResponse, response_model_exclude_none=True)
async def update_contact(
    update: Optional[ContactUpdate] = None,
    contact_id: ObjectId = Depends(valid_contact_id),
    service: ContactService = Depends(get_contact_service),
):
    contact = await service.update_contact(contact_id, update or ContactUpdate())
    return StandardResponse(
        message="Contact updated successfully",
        data={"contact": contact.to_api()},
    )


@router.delete("/contacts/{contact_id}", response_model=StandardResponse, response_model_exclude_none=True)
async def delete_contact(
    contact_id: ObjectId = Depends(valid_contact_id),
    service: ContactService = Depends(get_contact_service),
):
    await service.delete_contact(contact_id)
    return StandardResponse(message="Contact deleted successfully")


@router.patch("/contacts/{contact_id}/read", response_model=StandardResponse, response_model_exclude_none=True)
async def mark_contact_as_read(
    contact_id: ObjectId = Depends(valid_contact_id),
    service: ContactService = Depends(get_contact_service),
):
    contact = await service.mark_as_read(contact_id)
    return StandardResponse(message="Contact marked as read", data={"contact": contact.to_api()})


@router.patch("/contacts/{contact_id}/archive", response_model=StandardResponse, response_model_exclude_none=True)
async def archive_contact(
    contact_id: ObjectId = Depends(valid_contact_id),
    service: ContactService = Depends(get_contact_service),
):
    contact = await service.archive_contact(contact_id)
    return StandardResponse(message="Contact archived successfully", data={"contact": contact.to_api()})
