"""Pydantic schemas for user and auth endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)
    email: EmailStr
    company: str = ""


class LoginRequest(BaseModel):
    username: str
    password: str


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: str
    status: str
    company: str
    created_at: datetime
    updated_at: datetime
    last_login: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


class UserSearchResponse(BaseModel):
    users: list[UserResponse]
    total: int
    page: int
    page_size: int


class UserUpdateRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    company: Optional[str] = None


class LoginLogResponse(BaseModel):
    id: int
    user_id: int
    ip: str
    user_agent: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class LoginLogPage(BaseModel):
    logs: list[LoginLogResponse]
    total: int
    page: int
    page_size: int


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(
        ..., validation_alias=AliasChoices("currentPassword", "current_password"),
    )
    new_password: str = Field(..., validation_alias=AliasChoices("newPassword", "new_password"))


class TokenValidationRequest(BaseModel):
    token: str = ""


class TokenUser(BaseModel):
    id: int
    username: str
    email: str
    role: str

    model_config = {"from_attributes": True}


class TokenValidationResponse(BaseModel):
    valid: bool
    user: Optional[TokenUser] = None
    error: str = ""
