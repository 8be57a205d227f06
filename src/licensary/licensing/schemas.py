"""Pydantic schemas for licensing endpoints.

The binding fields travel as ``userid``/``productid`` on the wire.
"""

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class LicenseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    key: str
    status: str
    valid_until: datetime
    issued_to: int
    version: str
    permissions: str
    user_id: str = Field(alias="userid")
    product_id: str = Field(alias="productid")
    created_at: datetime
    updated_at: datetime
    last_activated_at: datetime


class LicenseListResponse(BaseModel):
    licenses: list[LicenseResponse]
    total: int
    page: int
    page_size: int


class GenerateRequest(BaseModel):
    version: str = Field(default="", max_length=64)
    permissions: str = ""
    user_id: str = Field(default="", validation_alias=AliasChoices("userid", "user_id"))
    product_id: str = Field(default="", validation_alias=AliasChoices("productid", "product_id"))


class IssueRequest(BaseModel):
    license_key: str = Field(..., min_length=1, validation_alias=AliasChoices("license_key", "key"))
    user_id: int = Field(..., ge=0)


class LicenseUpdateRequest(BaseModel):
    """Partial update; empty strings count as absent."""

    status: Optional[str] = None
    valid_until: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("validuntil", "valid_until"),
    )
    version: Optional[str] = None
    permissions: Optional[str] = None
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("userid", "user_id"))
    product_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("productid", "product_id"),
    )


class LicenseMutationResponse(BaseModel):
    message: str
    license: LicenseResponse


class VerificationResponse(BaseModel):
    valid: bool
    status: str
