from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.decorators import async_cached, async_cached_write
from app.cache.entities import EntityCache
from app.core.exceptions import ConflictError, NotFoundError, UnauthorizedError
from app.core.permissions import ensure_admin, ensure_user_access
from app.core.security import Identity, TokenService, hash_password, verify_password
from app.models import (
    LoginResult,
    Role,
    Task,
    TaskSnapshot,
    User,
    UserLogin,
    UserRead,
    UserRegister,
    UserUpdate,
)

logger = structlog.get_logger(__name__)
audit_logger = structlog.get_logger(__name__, channel="audit")
security_logger = structlog.get_logger(__name__, channel="security")


class UserService:
    def __init__(
        self,
        db: AsyncSession,
        user_cache: EntityCache[UserRead],
        task_cache: EntityCache[TaskSnapshot],
        tokens: TokenService,
    ):
        self.db = db
        self.user_cache = user_cache
        self.task_cache = task_cache
        self.tokens = tokens

    async def _commit_unique(self, message: str):
        """Commit, turning a unique-constraint violation into a 409."""
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning("Unique constraint violated", error=str(e.orig))
            raise ConflictError(message) from e

    async def _ensure_unregistered(self, username: str, email: str):
        result = await self.db.exec(select(User.id).where(User.username == username))
        if result.first() is not None:
            raise ConflictError("Username already exists")
        result = await self.db.exec(select(User.id).where(User.email == email))
        if result.first() is not None:
            raise ConflictError("Email already exists")

    async def register(self, user_data: UserRegister) -> int:
        await self._ensure_unregistered(user_data.username, user_data.email)
        user = User(
            username=user_data.username,
            email=user_data.email,
            password_hash=hash_password(user_data.password),
            role=Role.MEMBER.value,
        )
        self.db.add(user)
        await self._commit_unique("Username or email already exists")
        await self.db.refresh(user)

        audit_logger.info("User registered", user_id=user.id, username=user.username)
        return user.id

    async def login(self, credentials: UserLogin) -> LoginResult:
        result = await self.db.exec(select(User).where(User.username == credentials.username))
        user = result.first()

        if not user or not verify_password(credentials.password, user.password_hash):
            security_logger.warning("Login failed", username=credentials.username)
            raise UnauthorizedError("Invalid credentials")

        token = self.tokens.issue(user.id, Role(user.role).value)
        security_logger.info("Login success", user_id=user.id)
        return LoginResult(user_id=user.id, role=user.role, token=token)

    async def get_all_users(self, identity: Identity) -> list[UserRead]:
        ensure_admin(identity)
        result = await self.db.exec(select(User).order_by(User.id))
        return [UserRead.model_validate(user) for user in result.all()]

    @async_cached("user_cache")
    async def _load_user(self, user_id: int) -> UserRead | None:
        user = await self.db.get(User, user_id)
        return UserRead.model_validate(user) if user else None

    async def get_user(self, identity: Identity, user_id: int) -> tuple[UserRead, bool]:
        """Returns the user and whether it was served from the cache."""
        ensure_user_access(identity, user_id)
        cached = await self._load_user(user_id)
        return cached.value, cached.from_cache

    async def get_user_row(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    @async_cached_write("user_cache")
    async def _write_user(self, user_id: int, user: User, user_data: UserUpdate) -> UserRead:
        # Empty strings leave the stored value untouched
        if user_data.username:
            user.username = user_data.username
        if user_data.email:
            user.email = user_data.email
        if user_data.password:
            user.password_hash = hash_password(user_data.password)
        user.updated_at = datetime.now(timezone.utc)

        await self._commit_unique("Username or email already exists")
        await self.db.refresh(user)
        return UserRead.model_validate(user)

    async def update_user(
        self, identity: Identity, user_id: int, user_data: UserUpdate
    ) -> UserRead:
        ensure_user_access(identity, user_id, "You don't have permission to update this user")
        user = await self.get_user_row(user_id)
        updated = await self._write_user(user_id, user, user_data)
        audit_logger.info("User updated", user_id=user_id, by=identity.user_id)
        return updated

    @async_cached_write("user_cache")
    async def _remove_user(self, user_id: int, user: User) -> None:
        result = await self.db.exec(select(Task).where(Task.user_id == user_id))
        tasks = result.all()
        for task in tasks:
            await self.db.delete(task)
        # task rows first, the FK has no ORM relationship to order the deletes
        await self.db.flush()
        await self.db.delete(user)
        await self.db.commit()

        for task in tasks:
            await self.task_cache.invalidate(task.id)
        return None

    async def delete_user(self, identity: Identity, user_id: int) -> None:
        ensure_user_access(identity, user_id, "You don't have permission to delete this user")
        user = await self.get_user_row(user_id)
        await self._remove_user(user_id, user)
        audit_logger.info("User deleted", user_id=user_id, by=identity.user_id)

    @async_cached_write("user_cache")
    async def set_profile_picture(self, user_id: int, url: str) -> UserRead:
        user = await self.get_user_row(user_id)
        user.profile_picture = url
        user.updated_at = datetime.now(timezone.utc)
        await self.db.commit()
        await self.db.refresh(user)
        audit_logger.info("Profile picture updated", user_id=user_id)
        return UserRead.model_validate(user)

    async def ensure_admin_account(self, username: str, email: str, password: str) -> None:
        """Create the bootstrap admin if no user holds that username yet."""
        result = await self.db.exec(select(User).where(User.username == username))
        if result.first():
            return
        self.db.add(
            User(
                username=username,
                email=email,
                password_hash=hash_password(password),
                role=Role.ADMIN.value,
            )
        )
        await self._commit_unique("Admin account conflicts with an existing user")
        audit_logger.info("Admin user created", username=username)
