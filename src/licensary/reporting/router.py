"""Reporting API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from licensary.common.security import CallerIdentity, require_admin
from licensary.reporting.schemas import LicenseStatisticsResponse
from licensary.reporting.service import parse_date

router = APIRouter()


def _get_service():
    from licensary.deps import get_reporting_service
    return get_reporting_service()


def _get_db():
    from licensary.deps import get_db
    return get_db()


@router.get("/licenses/statistics", response_model=LicenseStatisticsResponse)
async def license_statistics(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    _: CallerIdentity = Depends(require_admin),
):
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        stats = await svc.license_statistics(session, start, end)
        return LicenseStatisticsResponse.model_validate(stats)
