"""Pydantic schemas for reporting endpoints."""

import datetime as dt

from pydantic import BaseModel


class DailyUsageResponse(BaseModel):
    date: dt.date
    active_users: int
    new_activations: int
    total_checks: int

    model_config = {"from_attributes": True}


class LicenseStatisticsResponse(BaseModel):
    start_date: dt.date
    end_date: dt.date
    total_licenses: int
    active_licenses: int
    expired_licenses: int
    expiring_licenses: int
    suspended_licenses: int
    revoked_licenses: int
    licenses_by_product: dict[str, int]
    daily_usage: list[DailyUsageResponse]
    average_usage_duration: float
    total_activations: int
    failed_activations: int
    success_rate: float

    model_config = {"from_attributes": True}
