"""User and principal domain models."""

from enum import StrEnum

from pydantic import BaseModel, Field


class UserRole(StrEnum):
    """User role in the organization."""

    ADMIN = "admin"
    MEMBER = "member"


class Principal(BaseModel):
    """Authenticated actor on whose behalf an operation runs."""

    id: str = Field(..., description="User ID")
    name: str = Field(..., description="Display name used in activity messages")
    role: UserRole = Field(default=UserRole.MEMBER, description="User role")


class UserRef(BaseModel):
    """Minimal user reference resolved from the user directory."""

    id: str
    name: str


class User(BaseModel):
    """User data transfer object."""

    id: str = Field(..., description="Unique user ID from database")
    name: str = Field(..., description="Display name of the user")
    email: str | None = Field(default=None, description="Email address")
    role: UserRole = Field(default=UserRole.MEMBER, description="User role")
