from functools import wraps
from typing import Callable

from app.cache.entities import EntityCache


def async_cached(cache_attr: str):
    """
    Cache-aside read for a service method whose first argument is the entity id.
    The wrapped method is the store loader and returns a snapshot or None;
    the wrapper returns ``Cached`` or raises ``NotFoundError``.
    Example:
      @async_cached("task_cache")
      async def get_task(self, task_id): ...
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(self, entity_id: int, *args, **kwargs):
            cache: EntityCache = getattr(self, cache_attr)

            # loader closure calls the original function
            async def loader():
                return await fn(self, entity_id, *args, **kwargs)

            return await cache.get(entity_id, loader)

        return wrapper

    return decorator


def async_cached_write(cache_attr: str):
    """
    Store write followed by a cache refresh of the same key. The wrapped method
    returns the fresh snapshot (cached) or None (key dropped).
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(self, entity_id: int, *args, **kwargs):
            cache: EntityCache = getattr(self, cache_attr)

            async def writer():
                return await fn(self, entity_id, *args, **kwargs)

            return await cache.put(entity_id, writer)

        return wrapper

    return decorator
