from datetime import datetime, timezone
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlmodel import Field, SQLModel


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(SQLModel, table=True):
    """Database model"""

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(max_length=255, unique=True, index=True)
    email: str = Field(max_length=255, unique=True)
    password_hash: str = Field(max_length=255)
    role: Role = Field(
        default=Role.MEMBER, sa_column=Column(String(32), nullable=False)
    )
    profile_picture: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class UserRegister(SQLModel):
    """Schema for registration - role is always member"""

    username: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=6)

    @field_validator("username")
    @classmethod
    def username_has_no_reserved_chars(cls, v: str) -> str:
        if "@" in v or "?" in v:
            raise ValueError("username must not contain '@' or '?'")
        return v


class UserLogin(SQLModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserUpdate(SQLModel):
    """Schema for updating a user - all fields optional, empty strings are ignored"""

    username: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = None
    password: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_unset(cls, v):
        return v or None

    @field_validator("password")
    @classmethod
    def password_min_length(cls, v: str | None) -> str | None:
        if v and len(v) < 6:
            raise ValueError("password must be at least 6 characters")
        return v


class UserRead(SQLModel):
    """Public user snapshot. Also the cached form of a user."""

    id: int
    username: str
    email: str
    role: Role
    profile_picture: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskBase(SQLModel):
    """Base model with shared fields"""

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    status: TaskStatus = Field(default=TaskStatus.PENDING)


class Task(TaskBase, table=True):
    """Database model. security_code holds ciphertext."""

    __tablename__ = "tasks"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )
    status: TaskStatus = Field(
        default=TaskStatus.PENDING, sa_column=Column(String(32), nullable=False)
    )
    security_code: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class TaskCreate(TaskBase):
    """Schema for creating a task"""

    status: TaskStatus
    security_code: str = ""


class TaskUpdate(SQLModel):
    """Schema for updating a task - all fields optional, empty strings are ignored"""

    title: str | None = Field(default=None, max_length=255)
    description: str | None = None
    status: TaskStatus | None = None
    security_code: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def blank_status_is_unset(cls, v):
        return v or None


class TaskSnapshot(TaskBase):
    """Stored form of a task, security_code still encrypted. This is what gets cached."""

    id: int
    user_id: int
    security_code: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TaskResponse(TaskBase):
    """Schema for task responses, security_code decrypted"""

    id: int
    user_id: int
    security_code: str = ""
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------------

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Every response body: HTTP status mirrors ``status``."""

    message: str
    success: bool = True
    status: int = 200
    data: T | None = None


class RegisterResult(BaseModel):
    id: int


class LoginResult(BaseModel):
    user_id: int
    role: Role
    token: str


class UploadResult(BaseModel):
    filename: str
    size: int


class ProfilePictureResult(BaseModel):
    profile_picture: str
