"""Operation log API router."""

from fastapi import APIRouter, Depends, Query

from licensary.audit.schemas import OperationLogPage, OperationLogResponse
from licensary.common.schemas import PaginationParams, pagination_params
from licensary.common.security import CallerIdentity, require_admin, require_user

router = APIRouter()


def _get_service():
    from licensary.deps import get_audit_service
    return get_audit_service()


def _get_db():
    from licensary.deps import get_db
    return get_db()


async def _page(user_id: int | None, action: str | None, pagination: PaginationParams):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        items, total = await svc.list_operations(
            session, user_id=user_id, action=action,
            offset=pagination.offset, limit=pagination.page_size,
        )
        return OperationLogPage(
            logs=[OperationLogResponse.model_validate(e) for e in items],
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
        )


@router.get("/logs", response_model=OperationLogPage)
async def list_operation_logs(
    user_id: int | None = Query(None),
    action: str | None = Query(None),
    pagination: PaginationParams = Depends(pagination_params),
    _: CallerIdentity = Depends(require_admin),
):
    return await _page(user_id, action, pagination)


@router.get("/logs/me", response_model=OperationLogPage)
async def list_my_operation_logs(
    pagination: PaginationParams = Depends(pagination_params),
    identity: CallerIdentity = Depends(require_user),
):
    return await _page(identity.user_id, None, pagination)
