"""User and auth API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from licensary.common.exceptions import UserNotFoundError
from licensary.common.schemas import MessageResponse, PaginationParams, pagination_params
from licensary.common.security import CallerIdentity, require_admin, require_user
from licensary.users.schemas import (
    ChangePasswordRequest,
    LoginLogPage,
    LoginLogResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    TokenUser,
    TokenValidationRequest,
    TokenValidationResponse,
    UserResponse,
    UserSearchResponse,
    UserUpdateRequest,
)

router = APIRouter()


def _get_service():
    from licensary.deps import get_user_service
    return get_user_service()


def _get_db():
    from licensary.deps import get_db
    return get_db()


# ── Accounts ──

@router.post("/users/register", response_model=UserResponse, status_code=201)
async def register(body: RegisterRequest):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        user = await svc.register(
            session, body.username, body.password, body.email, company=body.company,
        )
        return UserResponse.model_validate(user)


@router.post("/users/login", response_model=LoginResponse)
async def login(body: LoginRequest, request: Request):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        token, user = await svc.login(
            session, body.username, body.password,
            ip=request.client.host if request.client else "",
            user_agent=request.headers.get("user-agent", ""),
        )
        return LoginResponse(token=token, user=UserResponse.model_validate(user))


@router.get("/users/info", response_model=UserResponse)
async def user_info(identity: CallerIdentity = Depends(require_user)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        user = await svc.get_user(session, identity.user_id)
        if user is None:
            raise UserNotFoundError()
        return UserResponse.model_validate(user)


@router.get("/users/search", response_model=UserSearchResponse)
async def search_users(
    keyword: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    pagination: PaginationParams = Depends(pagination_params),
    _: CallerIdentity = Depends(require_admin),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        users, total = await svc.search_users(
            session, keyword=keyword, role=role, status=status,
            offset=pagination.offset, limit=pagination.page_size,
        )
        return UserSearchResponse(
            users=[UserResponse.model_validate(u) for u in users],
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
        )


@router.get("/users/login-logs", response_model=LoginLogPage)
async def login_logs(
    pagination: PaginationParams = Depends(pagination_params),
    identity: CallerIdentity = Depends(require_user),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        logs, total = await svc.list_login_logs(
            session, identity.user_id,
            offset=pagination.offset, limit=pagination.page_size,
        )
        return LoginLogPage(
            logs=[LoginLogResponse.model_validate(entry) for entry in logs],
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
        )


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    body: UserUpdateRequest,
    identity: CallerIdentity = Depends(require_user),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        user = await svc.update_user(
            session, user_id, identity.user_id,
            username=body.username,
            email=body.email,
            role=body.role,
            status=body.status,
            company=body.company,
        )
        return UserResponse.model_validate(user)


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(user_id: int, identity: CallerIdentity = Depends(require_admin)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete_user(session, user_id, identity.user_id)
    return MessageResponse(message="User deleted")


# ── Auth ──

@router.post("/auth/validate-token", response_model=TokenValidationResponse)
async def validate_token(body: TokenValidationRequest):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        user = await svc.validate_token(session, body.token)
        if user is None:
            return TokenValidationResponse(valid=False, error="Invalid token")
        return TokenValidationResponse(valid=True, user=TokenUser.model_validate(user))


@router.post("/auth/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    identity: CallerIdentity = Depends(require_user),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.change_password(
            session, identity.user_id, body.current_password, body.new_password,
        )
    return MessageResponse(message="Password updated")
