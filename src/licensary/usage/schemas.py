"""Pydantic schemas for usage endpoints."""

from datetime import datetime

from pydantic import BaseModel


class UsageRecordResponse(BaseModel):
    id: int
    license_key: str
    action: str
    ip_address: str
    user_agent: str
    timestamp: datetime

    model_config = {"from_attributes": True}


class UsageHistoryResponse(BaseModel):
    usages: list[UsageRecordResponse]
