"""
Pydantic schemas for profile and session request/response validation.
"""

from datetime import datetime
from pydantic import BaseModel, EmailStr, Field


class ProfileCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=8, max_length=72)


class ProfileLogin(BaseModel):
    email: EmailStr
    password: str


class ProfileResponse(BaseModel):
    id: str
    email: str
    full_name: str
    role: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
