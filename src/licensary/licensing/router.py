"""Licensing API router.

Fixed paths (``verify``, ``activate``, ``generate``, ``issue``) are
declared before ``/licenses/{key}`` so they are not captured by it.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from licensary.common.exceptions import LicenseNotFoundError
from licensary.common.schemas import MessageResponse, PaginationParams, pagination_params
from licensary.common.security import CallerIdentity, require_admin, require_user
from licensary.licensing.schemas import (
    GenerateRequest,
    IssueRequest,
    LicenseListResponse,
    LicenseMutationResponse,
    LicenseResponse,
    LicenseUpdateRequest,
    VerificationResponse,
)

router = APIRouter()


def _get_service():
    from licensary.deps import get_licensing_service
    return get_licensing_service()


def _get_db():
    from licensary.deps import get_db
    return get_db()


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


@router.get("/licenses/verify", response_model=VerificationResponse)
async def verify_license(
    request: Request,
    key: str = Query(""),
    userid: str = Query(""),
    productid: str = Query(""),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        result = await svc.verify(
            session, key, userid, productid,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent", ""),
        )
        return VerificationResponse(valid=result.valid, status=result.status)


@router.post("/licenses/activate", response_model=LicenseResponse)
async def activate_license(
    key: str = Query(..., min_length=1),
    _: CallerIdentity = Depends(require_user),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        lic = await svc.activate(session, key)
        return LicenseResponse.model_validate(lic)


@router.post("/licenses/generate", response_model=LicenseResponse, status_code=201)
async def generate_license(
    body: GenerateRequest,
    identity: CallerIdentity = Depends(require_admin),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        lic = await svc.generate(
            session,
            version=body.version,
            permissions=body.permissions,
            user_id=body.user_id,
            product_id=body.product_id,
            actor_id=identity.user_id,
        )
        return LicenseResponse.model_validate(lic)


@router.post("/licenses/issue", response_model=LicenseResponse)
async def issue_license(
    body: IssueRequest,
    identity: CallerIdentity = Depends(require_admin),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        lic = await svc.issue(session, body.license_key, body.user_id, actor_id=identity.user_id)
        return LicenseResponse.model_validate(lic)


@router.get("/licenses", response_model=LicenseListResponse)
async def list_licenses(
    status: Optional[str] = Query(None),
    userid: Optional[str] = Query(None),
    productid: Optional[str] = Query(None),
    pagination: PaginationParams = Depends(pagination_params),
    _: CallerIdentity = Depends(require_admin),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        items, total = await svc.list_licenses(
            session, status=status, user_id=userid, product_id=productid,
            offset=pagination.offset, limit=pagination.page_size,
        )
        return LicenseListResponse(
            licenses=[LicenseResponse.model_validate(lic) for lic in items],
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
        )


@router.get("/licenses/{key}", response_model=LicenseResponse)
async def get_license(key: str, _: CallerIdentity = Depends(require_user)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        lic = await svc.get_license(session, key)
        if lic is None:
            raise LicenseNotFoundError()
        return LicenseResponse.model_validate(lic)


@router.put("/licenses/{key}", response_model=LicenseMutationResponse)
async def update_license(
    key: str,
    body: LicenseUpdateRequest,
    identity: CallerIdentity = Depends(require_admin),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        lic, created = await svc.create_or_patch(
            session, key,
            status=body.status,
            valid_until=body.valid_until,
            version=body.version,
            permissions=body.permissions,
            user_id=body.user_id,
            product_id=body.product_id,
            actor_id=identity.user_id,
        )
        return LicenseMutationResponse(
            message="License created" if created else "License updated",
            license=LicenseResponse.model_validate(lic),
        )


@router.delete("/licenses/{key}", response_model=MessageResponse)
async def delete_license(key: str, identity: CallerIdentity = Depends(require_admin)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete(session, key, actor_id=identity.user_id)
    return MessageResponse(message="License deleted")
