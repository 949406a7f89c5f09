from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from app.cache.entities import EntityCache
from app.cache.layer import CacheLayer
from app.core.config import Settings
from app.core.crypto import SecretCipher
from app.core.security import TokenService
from app.database import build_engine, build_session_factory
from app.models import TaskSnapshot, UserRead


@dataclass
class AppContext:
    """Process-wide collaborators, built once per application and shared by all requests."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    cache: CacheLayer
    task_cache: EntityCache[TaskSnapshot]
    user_cache: EntityCache[UserRead]
    cipher: SecretCipher
    tokens: TokenService

    async def startup(self):
        await self.cache.init_cache()

    async def shutdown(self):
        await self.cache.close()
        await self.engine.dispose()


def build_context(settings: Settings, redis: Optional[Redis] = None) -> AppContext:
    engine = build_engine(settings.database_url)
    cache = CacheLayer(settings, redis=redis)
    ttl = settings.cache_ttl_seconds
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        cache=cache,
        task_cache=EntityCache(cache, "task", TaskSnapshot, ttl=ttl, strict=True),
        user_cache=EntityCache(cache, "user", UserRead, ttl=ttl),
        cipher=SecretCipher(settings.encryption_key),
        tokens=TokenService(
            settings.secret_key,
            algorithm=settings.jwt_algorithm,
            expires_in=timedelta(minutes=settings.access_token_expire_minutes),
        ),
    )
