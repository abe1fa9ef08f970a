import re
from datetime import datetime, timezone
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

TASK_STATUSES = ("pending", "in-progress", "completed")
TASK_PRIORITIES = ("low", "medium", "high")
TASK_UPDATE_FIELDS = ("title", "description", "status", "priority", "due_date")

TITLE_MAX = 100
DESCRIPTION_MAX = 500
NAME_MIN, NAME_MAX = 2, 50
BIO_MAX = 500
PASSWORD_MIN = 6
PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything here is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _clean_title(value):
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValueError("Title is required")
    value = value.strip()
    if len(value) > TITLE_MAX:
        raise ValueError(f"Title cannot exceed {TITLE_MAX} characters")
    return value


def _clean_description(value):
    if value is None:
        return None
    value = value.strip()
    if len(value) > DESCRIPTION_MAX:
        raise ValueError(f"Description cannot exceed {DESCRIPTION_MAX} characters")
    return value or None


def _clean_name(value):
    value = value.strip()
    if len(value) < NAME_MIN:
        raise ValueError(f"Name must be at least {NAME_MIN} characters long")
    if len(value) > NAME_MAX:
        raise ValueError(f"Name cannot exceed {NAME_MAX} characters")
    return value


def _check_choice(value, choices, label):
    if value not in choices:
        raise ValueError(f"Invalid {label} value")
    return value


# Tasks

class TaskCreate(CamelModel):
    title: Optional[str] = Field(default=None, validate_default=True)
    description: Optional[str] = None
    status: str = "pending"
    priority: str = "medium"
    due_date: Optional[datetime] = None

    check_title = field_validator("title")(_clean_title)
    check_description = field_validator("description")(_clean_description)

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        return _check_choice(v, TASK_STATUSES, "status")

    @field_validator("priority")
    @classmethod
    def check_priority(cls, v):
        return _check_choice(v, TASK_PRIORITIES, "priority")

    @field_validator("due_date")
    @classmethod
    def check_due_date(cls, v):
        return as_utc(v)


class TaskUpdate(CamelModel):
    """Partial update; only the fields present in the request are applied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[datetime] = None

    check_title = field_validator("title")(_clean_title)
    check_description = field_validator("description")(_clean_description)

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        return _check_choice(v, TASK_STATUSES, "status")

    @field_validator("priority")
    @classmethod
    def check_priority(cls, v):
        return _check_choice(v, TASK_PRIORITIES, "priority")

    @field_validator("due_date")
    @classmethod
    def check_due_date(cls, v):
        return as_utc(v)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class TaskOut(CamelModel):
    """The one task shape every layer speaks, server rows and client cache alike."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    status: str = "pending"
    priority: str = "medium"
    due_date: Optional[datetime] = None
    owner_id: int
    created_at: datetime
    updated_at: datetime

    @field_validator("due_date", "created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v):
        return as_utc(v)

    @computed_field
    @property
    def completed(self) -> bool:
        return self.status == "completed"

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class Pagination(CamelModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


# Users

class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str

    check_name = field_validator("name")(_clean_name)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        if len(v) < PASSWORD_MIN:
            raise ValueError(f"Password must be at least {PASSWORD_MIN} characters long")
        return v


class UserLogin(BaseModel):
    email: str
    password: str


class Token(BaseModel):
    token: str


class UserOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    name: str
    email: str
    bio: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    provider: str = "local"
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v):
        return as_utc(v)


class ProfileUpdate(CamelModel):
    name: str
    email: EmailStr
    bio: Optional[str] = None
    phone: Optional[str] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = None

    check_name = field_validator("name")(_clean_name)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()

    @field_validator("bio")
    @classmethod
    def check_bio(cls, v):
        if v is None:
            return None
        v = v.strip()
        if len(v) > BIO_MAX:
            raise ValueError(f"Bio cannot exceed {BIO_MAX} characters")
        return v or None

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not PHONE_RE.match(v):
            raise ValueError("Please provide a valid phone number")
        return v

    def password_change_errors(self) -> List[str]:
        """One message per problem with a requested password change."""
        errors: List[str] = []
        if self.new_password:
            if not self.current_password:
                errors.append("Current password is required to set a new password")
            if len(self.new_password) < PASSWORD_MIN:
                errors.append(f"New password must be at least {PASSWORD_MIN} characters long")
        return errors


class AccountDelete(CamelModel):
    password: Optional[str] = None
    confirm_oauth: bool = Field(default=False, alias="confirmOAuth")
