from typing import AsyncIterator, Optional

import structlog
from fastapi import Depends, Header, Request
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.context import AppContext
from app.core.exceptions import UnauthorizedError
from app.core.security import Identity
from app.models import Task
from app.services.task_service import TaskService
from app.services.user_service import UserService

logger = structlog.get_logger(__name__, channel="security")


def get_context(request: Request) -> AppContext:
    return request.app.state.context


# Dependency for getting DB session
async def get_db(context: AppContext = Depends(get_context)) -> AsyncIterator[AsyncSession]:
    async with context.session_factory() as session:
        yield session


def get_identity(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    context: AppContext = Depends(get_context),
) -> Identity:
    """Bearer-token gate for protected routers. Identity is also left on request.state."""
    try:
        identity = context.tokens.authenticate(authorization)
    except UnauthorizedError as e:
        logger.warning("Rejected bearer token", reason=e.message, path=request.url.path)
        raise
    request.state.identity = identity
    return identity


def get_task_service(
    db: AsyncSession = Depends(get_db), context: AppContext = Depends(get_context)
) -> TaskService:
    return TaskService(db, context.task_cache, context.cipher)


def get_user_service(
    db: AsyncSession = Depends(get_db), context: AppContext = Depends(get_context)
) -> UserService:
    return UserService(db, context.user_cache, context.task_cache, context.tokens)


async def get_task_for_update(
    task_id: int,
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
) -> Task:
    """Resolves before the request body is validated, so 404 and 403 win over 400."""
    return await service.get_owned_task(
        identity, task_id, "You don't have permission to update this task"
    )
