from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_serializer, field_validator
from pydantic.alias_generators import to_camel
from email_validator import EmailNotValidError, validate_email
from typing import Any, Dict, Iterable, Mapping, Optional
from datetime import datetime, timezone
from enum import Enum
from bson import ObjectId
import re


class ContactStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CLOSED = "closed"


class ContactSource(str, Enum):
    WEBSITE = "website"
    PHONE = "phone"
    EMAIL = "email"
    REFERRAL = "referral"
    OTHER = "other"


class ContactPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


MARKUP_PATTERN = re.compile(r"<[^>]*>")
NAME_PATTERN = re.compile(r"[a-zA-Z\s'-]+")
PHONE_PATTERN = re.compile(r"[\d\s+()-]+")

# Free-text fields that get markup stripped before every write
SANITIZED_FIELDS = ("name", "school", "message", "notes")

# The only fields an admin may change after creation
MUTABLE_FIELDS = frozenset({"status", "priority", "notes", "is_read", "is_archived"})

# API sort keys -> stored document keys
SORTABLE_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "name": "name",
    "school": "school",
    "email": "email",
    "status": "status",
    "priority": "priority",
    "isRead": "is_read",
    "isArchived": "is_archived",
}
DEFAULT_SORT = "-createdAt"

REQUIRED_MESSAGES = {
    "name": "Contact person name is required",
    "school": "School name is required",
    "email": "Email address is required",
    "message": "Message is required",
}


def utcnow() -> datetime:
    # MongoDB hands back naive UTC datetimes, so store them the same way
    return datetime.now(timezone.utc).replace(tzinfo=None)


def strip_markup(value: str) -> str:
    """Remove anything that looks like an HTML tag."""
    return MARKUP_PATTERN.sub("", value)


def sanitize_contact_fields(document: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of a contact document (or ``$set`` payload) with markup
    stripped from the free-text fields. Other keys are left untouched.
    """
    sanitized = dict(document)
    for field in SANITIZED_FIELDS:
        if isinstance(sanitized.get(field), str):
            sanitized[field] = strip_markup(sanitized[field])
    return sanitized


def isoformat_utc(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_contact_date(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def count_by_status(groups: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    """Turn ``$group`` output (``{"_id": status, "count": n}``) into a mapping."""
    return {group["_id"]: group["count"] for group in groups if group.get("_id") is not None}


def _enum_value(enum_cls, value, message: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str) and value in {member.value for member in enum_cls}:
        return value
    raise ValueError(message)


def _strict_bool(value, message: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(message)
    return value


def _parse_flag(value, message: str) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0"):
            return False
    raise ValueError(message)


def _parse_int(value, message: str, minimum: int, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        raise ValueError(message)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(message) from None
    if number < minimum or (maximum is not None and number > maximum):
        raise ValueError(message)
    return number


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


# 📝 Public submission
class ContactCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str
    school: str
    email: str
    phone: Optional[str] = None
    message: str

    # Tags are removed before the length checks so the stored text is what gets measured
    @field_validator("school", "message", mode="before")
    @classmethod
    def drop_markup(cls, value):
        if isinstance(value, str):
            return strip_markup(value)
        return value

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        if not value:
            raise ValueError(REQUIRED_MESSAGES["name"])
        if not 2 <= len(value) <= 100:
            raise ValueError("Name must be between 2 and 100 characters")
        if not NAME_PATTERN.fullmatch(value):
            raise ValueError("Name can only contain letters, spaces, hyphens, and apostrophes")
        return value

    @field_validator("school")
    @classmethod
    def check_school(cls, value: str) -> str:
        if not value:
            raise ValueError(REQUIRED_MESSAGES["school"])
        if not 2 <= len(value) <= 200:
            raise ValueError("School name must be between 2 and 200 characters")
        return value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        if not value:
            raise ValueError(REQUIRED_MESSAGES["email"])
        try:
            validate_email(value, check_deliverability=False)
        except EmailNotValidError:
            raise ValueError("Please provide a valid email address") from None
        return value.lower()

    # An empty phone field counts as not provided
    @field_validator("phone", mode="before")
    @classmethod
    def blank_phone(cls, value):
        return _blank_to_none(value)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if not PHONE_PATTERN.fullmatch(value):
            raise ValueError("Please provide a valid phone number")
        if not 10 <= len(value) <= 20:
            raise ValueError("Phone number must be between 10 and 20 characters")
        return value

    @field_validator("message")
    @classmethod
    def check_message(cls, value: str) -> str:
        if not value:
            raise ValueError(REQUIRED_MESSAGES["message"])
        if not 10 <= len(value) <= 2000:
            raise ValueError("Message must be between 10 and 2000 characters")
        return value


# ✏️ Admin partial update. Anything outside the allow-list is dropped.
class ContactUpdate(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        str_strip_whitespace=True,
        use_enum_values=True,
        extra="ignore",
    )

    status: Optional[ContactStatus] = None
    priority: Optional[ContactPriority] = None
    notes: Optional[str] = None
    is_read: Optional[bool] = None
    is_archived: Optional[bool] = None

    @field_validator("status", mode="before")
    @classmethod
    def check_status(cls, value):
        return _enum_value(ContactStatus, value, "Invalid status value")

    @field_validator("priority", mode="before")
    @classmethod
    def check_priority(cls, value):
        return _enum_value(ContactPriority, value, "Invalid priority value")

    @field_validator("notes", mode="before")
    @classmethod
    def check_notes_type(cls, value):
        if value is not None and not isinstance(value, str):
            raise ValueError("Notes must be text")
        return value

    @field_validator("notes")
    @classmethod
    def check_notes(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > 1000:
            raise ValueError("Notes cannot exceed 1000 characters")
        return value

    @field_validator("is_read", mode="before")
    @classmethod
    def check_is_read(cls, value):
        return _strict_bool(value, "isRead must be a boolean value")

    @field_validator("is_archived", mode="before")
    @classmethod
    def check_is_archived(cls, value):
        return _strict_bool(value, "isArchived must be a boolean value")

    def changes(self) -> Dict[str, Any]:
        """Fields the caller actually sent, keyed by their stored names."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if key in MUTABLE_FIELDS
        }


# 🔍 Admin list query
class ContactListQuery(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=True,
    )

    page: int = 1
    limit: int = 10
    status: Optional[ContactStatus] = None
    priority: Optional[ContactPriority] = None
    is_read: Optional[bool] = None
    is_archived: Optional[bool] = None
    search: Optional[str] = None
    sort_by: str = DEFAULT_SORT

    @field_validator("page", mode="before")
    @classmethod
    def check_page(cls, value):
        return _parse_int(value, "Page must be a positive integer", minimum=1)

    @field_validator("limit", mode="before")
    @classmethod
    def check_limit(cls, value):
        return _parse_int(value, "Limit must be between 1 and 100", minimum=1, maximum=100)

    @field_validator("status", mode="before")
    @classmethod
    def check_status(cls, value):
        value = _blank_to_none(value)
        if value is None:
            return None
        return _enum_value(ContactStatus, value, "Invalid status filter")

    @field_validator("priority", mode="before")
    @classmethod
    def check_priority(cls, value):
        value = _blank_to_none(value)
        if value is None:
            return None
        return _enum_value(ContactPriority, value, "Invalid priority filter")

    @field_validator("is_read", mode="before")
    @classmethod
    def check_is_read(cls, value):
        return _parse_flag(_blank_to_none(value), "isRead must be a boolean value")

    @field_validator("is_archived", mode="before")
    @classmethod
    def check_is_archived(cls, value):
        return _parse_flag(_blank_to_none(value), "isArchived must be a boolean value")

    @field_validator("search", mode="before")
    @classmethod
    def blank_search(cls, value):
        return _blank_to_none(value)

    @field_validator("search")
    @classmethod
    def check_search(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not 2 <= len(value) <= 100:
            raise ValueError("Search term must be between 2 and 100 characters")
        return value

    @field_validator("sort_by", mode="before")
    @classmethod
    def check_sort_by(cls, value):
        value = _blank_to_none(value)
        if value is None:
            return DEFAULT_SORT
        if not isinstance(value, str) or value.lstrip("-") not in SORTABLE_FIELDS:
            raise ValueError("Invalid sort field")
        return value.strip()


# 💾 Stored shape, re-validated on every read and on every merged update
class ContactInDB(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        arbitrary_types_allowed=True,
    )

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"), serialization_alias="id")
    name: str
    school: str
    email: str
    phone: Optional[str] = None
    message: str
    status: ContactStatus = ContactStatus.NEW
    source: ContactSource = ContactSource.WEBSITE
    priority: ContactPriority = ContactPriority.MEDIUM
    notes: Optional[str] = Field(None, max_length=1000)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    is_read: bool = False
    is_archived: bool = False
    created_at: datetime
    updated_at: datetime

    @field_validator("id", mode="before")
    @classmethod
    def stringify_object_id(cls, value):
        if isinstance(value, ObjectId):
            return str(value)
        return value

    @field_serializer("created_at", "updated_at", when_used="json")
    def serialize_timestamp(self, value: datetime) -> str:
        return isoformat_utc(value)


class ContactResponse(ContactInDB):
    """Admin view of a contact, including derived fields."""

    @computed_field(alias="formattedDate")
    @property
    def formatted_date(self) -> str:
        return format_contact_date(self.created_at)

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ContactPublic(BaseModel):
    """What the public submitter gets back."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    school: str
    email: str
    created_at: datetime

    @classmethod
    def from_contact(cls, contact: ContactInDB) -> "ContactPublic":
        return cls(
            id=contact.id,
            name=contact.name,
            school=contact.school,
            email=contact.email,
            created_at=contact.created_at,
        )

    @field_serializer("created_at", when_used="json")
    def serialize_created_at(self, value: datetime) -> str:
        return isoformat_utc(value)

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ContactStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int
    unread: int
    by_status: Dict[str, int] = Field(default_factory=dict)
    recent_contacts: int = 0

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
