"""Usage API router."""

from fastapi import APIRouter

from licensary.usage.schemas import UsageHistoryResponse, UsageRecordResponse

router = APIRouter()


def _get_service():
    from licensary.deps import get_usage_service
    return get_usage_service()


def _get_db():
    from licensary.deps import get_db
    return get_db()


@router.get("/licenses/usage/{key}", response_model=UsageHistoryResponse)
async def get_license_usage(key: str):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        usages = await svc.get_usage(session, key)
        return UsageHistoryResponse(
            usages=[UsageRecordResponse.model_validate(u) for u in usages],
        )
