"""Shared Pydantic schemas for Licensary."""

from fastapi import Query
from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "licensary"


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: str = ""


class MessageResponse(BaseModel):
    message: str


class PaginationParams(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def pagination_params(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> PaginationParams:
    """FastAPI dependency reading ``page``/``page_size`` query parameters."""
    return PaginationParams(page=page, page_size=page_size)
