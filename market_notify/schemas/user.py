"""Pydantic models for user API interactions."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["super-admin", "tenant", "client"]


class UserBase(BaseModel):
    """Shared properties of user representations."""

    email: EmailStr
    full_name: Optional[str] = None


class UserCreate(UserBase):
    """Schema for account registration input."""

    password: str = Field(min_length=8, max_length=128)
    roles: List[Literal["tenant", "client"]] = Field(default_factory=lambda: ["tenant"])


class UserLogin(BaseModel):
    """Schema for user login request."""

    email: EmailStr
    password: str


class UserRead(UserBase):
    """Schema returned after user registration or retrieval."""

    id: uuid.UUID
    roles: List[Role]
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
