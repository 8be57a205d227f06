"""Pydantic schemas for operation log responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class OperationLogResponse(BaseModel):
    id: int
    user_id: int
    action: str
    target: str
    target_id: str
    details: dict[str, Any] = {}
    created_at: datetime

    model_config = {"from_attributes": True}


class OperationLogPage(BaseModel):
    logs: list[OperationLogResponse]
    total: int
    page: int
    page_size: int
