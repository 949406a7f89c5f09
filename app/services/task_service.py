from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.decorators import async_cached, async_cached_write
from app.cache.entities import EntityCache
from app.core.crypto import SecretCipher
from app.core.exceptions import NotFoundError
from app.core.permissions import ensure_task_access
from app.core.security import Identity
from app.models import Task, TaskCreate, TaskResponse, TaskSnapshot, TaskUpdate

logger = structlog.get_logger(__name__)
audit_logger = structlog.get_logger(__name__, channel="audit")


class TaskService:
    def __init__(
        self,
        db: AsyncSession,
        task_cache: EntityCache[TaskSnapshot],
        cipher: SecretCipher,
    ):
        self.db = db
        self.task_cache = task_cache
        self.cipher = cipher

    def _to_response(self, snapshot: TaskSnapshot) -> TaskResponse:
        data = snapshot.model_dump()
        data["security_code"] = (
            self.cipher.decrypt(snapshot.security_code) if snapshot.security_code else ""
        )
        return TaskResponse.model_validate(data)

    async def create_task(self, identity: Identity, task_data: TaskCreate) -> TaskResponse:
        task = Task(
            user_id=identity.user_id,
            title=task_data.title,
            description=task_data.description,
            status=task_data.status.value,
            security_code=self.cipher.encrypt(task_data.security_code),
        )
        self.db.add(task)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # token outlived its user row
            await self.db.rollback()
            logger.warning("Task owner missing", user_id=identity.user_id, error=str(e.orig))
            raise NotFoundError("User not found") from e
        await self.db.refresh(task)

        audit_logger.info("Task created", task_id=task.id, user_id=identity.user_id)
        return self._to_response(TaskSnapshot.model_validate(task))

    async def get_all_tasks(self, identity: Identity) -> list[TaskResponse]:
        """Admins see every task, members their own. Each row also warms its cache entry."""
        query = select(Task)
        if not identity.is_admin:
            query = query.where(Task.user_id == identity.user_id)
        query = query.order_by(Task.id)

        result = await self.db.exec(query)
        snapshots = [TaskSnapshot.model_validate(task) for task in result.all()]

        responses = [self._to_response(snapshot) for snapshot in snapshots]
        for snapshot in snapshots:
            await self.task_cache.store(snapshot.id, snapshot)
        return responses

    @async_cached("task_cache")
    async def _load_task(self, task_id: int) -> TaskSnapshot | None:
        task = await self.db.get(Task, task_id)
        return TaskSnapshot.model_validate(task) if task else None

    async def get_task(self, identity: Identity, task_id: int) -> tuple[TaskResponse, bool]:
        """Returns the task and whether it was served from the cache."""
        cached = await self._load_task(task_id)
        ensure_task_access(identity, cached.value.user_id)
        return self._to_response(cached.value), cached.from_cache

    async def get_owned_task(
        self, identity: Identity, task_id: int, message: str = "Forbidden"
    ) -> Task:
        """Load the stored row (404) and check ownership (403)."""
        task = await self.db.get(Task, task_id)
        if not task:
            raise NotFoundError("Task not found")
        ensure_task_access(identity, task.user_id, message)
        return task

    @async_cached_write("task_cache")
    async def _write_task(self, task_id: int, task: Task, task_data: TaskUpdate) -> TaskSnapshot:
        # Empty strings leave the stored value untouched
        if task_data.title:
            task.title = task_data.title
        if task_data.description:
            task.description = task_data.description
        if task_data.status:
            task.status = task_data.status.value
        if task_data.security_code:
            task.security_code = self.cipher.encrypt(task_data.security_code)
        task.updated_at = datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(task)
        return TaskSnapshot.model_validate(task)

    async def update_task(
        self, identity: Identity, task: Task, task_data: TaskUpdate
    ) -> TaskResponse:
        """Apply an update to a row already returned by ``get_owned_task``."""
        snapshot = await self._write_task(task.id, task, task_data)
        audit_logger.info("Task updated", task_id=task.id, user_id=identity.user_id)
        return self._to_response(snapshot)

    @async_cached_write("task_cache")
    async def _remove_task(self, task_id: int, task: Task) -> None:
        await self.db.delete(task)
        await self.db.commit()
        return None

    async def delete_task(self, identity: Identity, task_id: int) -> None:
        task = await self.get_owned_task(identity, task_id)
        await self._remove_task(task_id, task)
        audit_logger.info("Task deleted", task_id=task_id, user_id=identity.user_id)
