from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from redis.asyncio import Redis

from app.core.config import Settings, get_settings
from app.core.context import AppContext, build_context
from app.core.exceptions import register_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import setup_middleware
from app.database import create_db_and_tables
from app.routers import auth, tasks, uploads, users
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)


async def bootstrap_admin(context: AppContext):
    settings = context.settings
    if not (settings.admin_username and settings.admin_email and settings.admin_password):
        return
    async with context.session_factory() as session:
        service = UserService(session, context.user_cache, context.task_cache, context.tokens)
        await service.ensure_admin_account(
            settings.admin_username, settings.admin_email, settings.admin_password
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    context: AppContext = app.state.context
    await context.startup()
    if context.settings.create_tables_on_startup:
        await create_db_and_tables(context.engine)
    await bootstrap_admin(context)
    logger.info("Application started", environment=context.settings.environment)
    yield
    await context.shutdown()
    logger.info("Application stopped")


def create_app(settings: Optional[Settings] = None, redis: Optional[Redis] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="TaskVault API",
        description="Task management API with JWT auth, encrypted task codes and Redis caching",
        swagger_ui_parameters={"displayRequestDuration": True},
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.context = build_context(settings, redis=redis)

    register_exception_handlers(app)
    setup_middleware(app, settings)

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(tasks.router)
    app.include_router(uploads.router)

    @app.get("/")
    async def root():
        return {
            "message": "Welcome to TaskVault API",
            "docs": "/docs",
            "version": "1.0.0",
        }

    @app.get("/health")
    async def health_check(request: Request):
        context: AppContext = request.app.state.context
        return {"status": "healthy", "cache": context.cache.get_stats()}

    return app


app = create_app()
