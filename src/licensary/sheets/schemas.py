"""Pydantic schemas for sync endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SkippedRowResponse(BaseModel):
    row_number: int
    reason: str

    model_config = {"from_attributes": True}


class PullResponse(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    rows_read: int
    inserted: int
    duplicates: list[str]
    skipped: list[SkippedRowResponse]
    aborted: bool
    message: str

    model_config = {"from_attributes": True}


class ExportResponse(BaseModel):
    updated: int
    appended: int

    model_config = {"from_attributes": True}


class SyncStatusResponse(BaseModel):
    enabled: bool
    sheet_name: str = ""
    pull_running: bool = False
    pull_interval: int = 0
    pending_pushes: int = 0
    pushed: int = 0
    failed_pushes: int = 0
    dropped_pushes: int = 0
    skipped_pushes: int = 0
    last_pull: Optional[PullResponse] = None
