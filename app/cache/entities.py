"""
Cache-aside over single entities.

Redis is never authoritative. Reads try ``"<entity_type>:<id>"`` first and fall
back to the store; writes go to the store first and only then replace or drop
the cached snapshot. Nothing ties the store write and the cache update together,
so a concurrent reader can still re-populate a pre-write snapshot between the
two; entries self-heal after the TTL.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from app.cache.layer import CacheLayer
from app.core.exceptions import CacheError, NotFoundError

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class Cached(Generic[M]):
    value: M
    from_cache: bool


class EntityCache(Generic[M]):
    def __init__(
        self,
        layer: CacheLayer,
        entity_type: str,
        model: type[M],
        ttl: Optional[int] = None,
        strict: bool = False,
    ):
        self.layer = layer
        self.entity_type = entity_type
        self.model = model
        self.ttl = ttl
        # strict: a snapshot that cannot be serialized fails the request
        self.strict = strict

    def key(self, entity_id: int) -> str:
        return f"{self.entity_type}:{entity_id}"

    def _serialize(self, entity: M) -> Optional[str]:
        try:
            return entity.model_dump_json()
        except (TypeError, ValueError) as e:
            logger.error("Serialization failed", entity=self.entity_type, error=str(e))
            if self.strict:
                raise CacheError(f"Error encoding {self.entity_type} to JSON") from e
            return None

    async def get(
        self, entity_id: int, loader: Callable[[], Awaitable[Optional[M]]]
    ) -> Cached[M]:
        """
        Cached snapshot if present and decodable, else load from the store and cache it.

        Raises:
            NotFoundError: the loader found nothing (nothing is cached)
        """
        key = self.key(entity_id)
        raw = await self.layer.get(key)
        if raw is not None:
            try:
                return Cached(self.model.model_validate_json(raw), True)
            except ValidationError:
                logger.warning("Discarding undecodable cache entry", key=key)

        value = await loader()
        if value is None:
            raise NotFoundError(f"{self.entity_type.capitalize()} not found")

        await self.store(entity_id, value)
        return Cached(value, False)

    async def store(self, entity_id: int, entity: M) -> None:
        """Write a snapshot with the TTL. Serialization errors only propagate when strict."""
        data = self._serialize(entity)
        if data is not None:
            await self.layer.set(self.key(entity_id), data, ttl=self.ttl)

    async def put(
        self, entity_id: int, writer: Callable[[], Awaitable[Optional[M]]]
    ) -> Optional[M]:
        """
        Run the store write, then refresh the cache from its result.

        A writer returning a snapshot overwrites the key; returning None drops it.
        If the writer raises, the cache is left untouched.
        """
        entity = await writer()
        await self.invalidate(entity_id)
        if entity is not None:
            await self.store(entity_id, entity)
        return entity

    async def invalidate(self, entity_id: int) -> None:
        await self.layer.delete(self.key(entity_id))
