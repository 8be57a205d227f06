"""User service: accounts, login history, and the bootstrap admin."""

import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from licensary.common.config import LicensarySettings
from licensary.common.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    UnauthorizedError,
    UserNotFoundError,
)
from licensary.common.models import utcnow
from licensary.common.security import (
    ROLE_ADMIN,
    ROLE_USER,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from licensary.users.models import LoginLogModel, UserModel

logger = logging.getLogger(__name__)

ROLES = (ROLE_USER, ROLE_ADMIN)
STATUS_ACTIVE = "active"
STATUS_DISABLED = "disabled"
USER_STATUSES = (STATUS_ACTIVE, STATUS_DISABLED)

MIN_PASSWORD_LENGTH = 6


class UserService:
    """Account management operations."""

    def __init__(self, settings: LicensarySettings):
        self.settings = settings

    # ── Lookup ──

    async def get_user(self, session: AsyncSession, user_id: int) -> UserModel | None:
        return await session.get(UserModel, user_id)

    async def get_by_username(self, session: AsyncSession, username: str) -> UserModel | None:
        result = await session.execute(
            select(UserModel).where(UserModel.username == username)
        )
        return result.scalar_one_or_none()

    async def _require_user(self, session: AsyncSession, user_id: int) -> UserModel:
        user = await self.get_user(session, user_id)
        if user is None:
            raise UserNotFoundError()
        return user

    async def _ensure_unique(
        self, session: AsyncSession, username: str | None, email: str | None,
        exclude_id: int | None = None,
    ) -> None:
        clauses = []
        if username:
            clauses.append(UserModel.username == username)
        if email:
            clauses.append(UserModel.email == email)
        if not clauses:
            return
        query = select(func.count()).select_from(UserModel).where(or_(*clauses))
        if exclude_id is not None:
            query = query.where(UserModel.id != exclude_id)
        if (await session.execute(query)).scalar():
            raise ConflictError("Username or email already taken", code="USER_EXISTS")

    # ── Accounts ──

    async def register(
        self,
        session: AsyncSession,
        username: str,
        password: str,
        email: str,
        company: str = "",
        role: str = ROLE_USER,
    ) -> UserModel:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise BadRequestError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        await self._ensure_unique(session, username, email)

        user = UserModel(
            username=username,
            password_hash=hash_password(password),
            email=email,
            role=role,
            status=STATUS_ACTIVE,
            company=company,
        )
        session.add(user)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise ConflictError("Username or email already taken", code="USER_EXISTS") from exc
        logger.info("Registered user %s", username)
        return user

    async def login(
        self,
        session: AsyncSession,
        username: str,
        password: str,
        ip: str = "",
        user_agent: str = "",
    ) -> tuple[str, UserModel]:
        """Check credentials and return ``(token, user)``.

        Failed attempts against a known account are logged and committed
        before the error is raised.
        """
        user = await self.get_by_username(session, username)
        if user is None:
            raise UnauthorizedError("Invalid username or password")

        if not verify_password(password, user.password_hash):
            session.add(LoginLogModel(user_id=user.id, ip=ip, user_agent=user_agent, status="failed"))
            await session.commit()
            raise UnauthorizedError("Invalid username or password")

        if user.status != STATUS_ACTIVE:
            raise UnauthorizedError("Account is disabled")

        now = utcnow()
        session.add(LoginLogModel(
            user_id=user.id, ip=ip, user_agent=user_agent, status="success", created_at=now,
        ))
        user.last_login = now
        await session.flush()

        return create_access_token(user.id, self.settings), user

    async def validate_token(self, session: AsyncSession, token: str) -> UserModel | None:
        """Return the token's user, or None for a bad token or unknown user."""
        if not token:
            raise BadRequestError("Token not provided")
        try:
            user_id = decode_access_token(token, self.settings)
        except UnauthorizedError:
            return None
        return await self.get_user(session, user_id)

    async def change_password(
        self, session: AsyncSession, user_id: int, current_password: str, new_password: str,
    ) -> None:
        user = await self._require_user(session, user_id)
        if not verify_password(current_password, user.password_hash):
            raise UnauthorizedError("Current password is incorrect")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise BadRequestError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        user.password_hash = hash_password(new_password)
        await session.flush()

    async def search_users(
        self,
        session: AsyncSession,
        keyword: str | None = None,
        role: str | None = None,
        status: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[UserModel], int]:
        filters = []
        if keyword:
            pattern = f"%{keyword}%"
            filters.append(or_(UserModel.username.like(pattern), UserModel.email.like(pattern)))
        if role:
            filters.append(UserModel.role == role)
        if status:
            filters.append(UserModel.status == status)

        total = (await session.execute(
            select(func.count()).select_from(UserModel).where(*filters)
        )).scalar() or 0
        result = await session.execute(
            select(UserModel).where(*filters).order_by(UserModel.id).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    async def update_user(
        self,
        session: AsyncSession,
        user_id: int,
        caller_id: int,
        username: str | None = None,
        email: str | None = None,
        role: str | None = None,
        status: str | None = None,
        company: str | None = None,
    ) -> UserModel:
        """Update a profile. Callers edit themselves; admins edit anyone.

        ``role`` and ``status`` are applied only for admin callers.
        """
        user = await self._require_user(session, user_id)
        caller = await self.get_user(session, caller_id)
        if caller is None:
            raise ForbiddenError("Not allowed to modify this user")
        is_admin = caller.role == ROLE_ADMIN
        if user.id != caller.id and not is_admin:
            raise ForbiddenError("Not allowed to modify this user")

        await self._ensure_unique(session, username, email, exclude_id=user.id)
        if username:
            user.username = username
        if email:
            user.email = email
        if company:
            user.company = company
        if is_admin:
            if role:
                if role not in ROLES:
                    raise BadRequestError(f"Unknown role '{role}'")
                user.role = role
            if status:
                if status not in USER_STATUSES:
                    raise BadRequestError(f"Unknown user status '{status}'")
                user.status = status
        user.updated_at = utcnow()
        await session.flush()
        return user

    async def delete_user(self, session: AsyncSession, user_id: int, caller_id: int) -> None:
        user = await self._require_user(session, user_id)
        if user.id == caller_id:
            raise BadRequestError("Cannot delete your own account")
        if user.username == self.settings.bootstrap_admin_username:
            raise BadRequestError("The system administrator cannot be deleted")

        await session.execute(delete(LoginLogModel).where(LoginLogModel.user_id == user.id))
        await session.delete(user)
        await session.flush()
        logger.info("Deleted user %s", user.username)

    # ── Login history ──

    async def list_login_logs(
        self, session: AsyncSession, user_id: int, offset: int = 0, limit: int = 20,
    ) -> tuple[list[LoginLogModel], int]:
        total = (await session.execute(
            select(func.count()).select_from(LoginLogModel)
            .where(LoginLogModel.user_id == user_id)
        )).scalar() or 0
        result = await session.execute(
            select(LoginLogModel)
            .where(LoginLogModel.user_id == user_id)
            .order_by(LoginLogModel.created_at.desc(), LoginLogModel.id.desc())
            .offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    # ── Bootstrap ──

    async def ensure_admin(self, session: AsyncSession) -> bool:
        """Create the configured admin account if it does not exist yet."""
        username = self.settings.bootstrap_admin_username
        if await self.get_by_username(session, username) is not None:
            return False
        session.add(UserModel(
            username=username,
            password_hash=hash_password(self.settings.bootstrap_admin_password),
            email=self.settings.bootstrap_admin_email,
            role=ROLE_ADMIN,
            status=STATUS_ACTIVE,
        ))
        await session.flush()
        logger.info("Created bootstrap admin account %s", username)
        return True
