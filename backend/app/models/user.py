"""
User and session models
"""
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from .cog import CatalogModel


class User(CatalogModel):
    """Stored user record"""
    id: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    created_at: Optional[datetime] = None


class UserPublic(CatalogModel):
    id: str
    email: str
    first_name: str
    last_name: str


class RegisterRequest(CatalogModel):
    email: str
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Email is required")
        return v


class LoginRequest(CatalogModel):
    email: str
    password: str = Field(..., min_length=6)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()
