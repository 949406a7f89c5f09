from datetime import datetime, timezone
from typing import Any

import fakeredis
import pytest
from pydantic import BaseModel
from redis.exceptions import ConnectionError as RedisConnectionError

from app.cache.entities import EntityCache
from app.cache.layer import CacheLayer
from app.core.config import Settings
from app.core.exceptions import CacheError, NotFoundError
from app.models import TaskSnapshot, TaskStatus

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def snapshot(task_id: int = 1, title: str = "Write report") -> TaskSnapshot:
    return TaskSnapshot(
        id=task_id,
        user_id=1,
        title=title,
        description="Quarterly numbers",
        status=TaskStatus.PENDING,
        security_code="ciphertext",
        created_at=NOW,
        updated_at=NOW,
    )


class BrokenRedis:
    """Redis client whose every command fails at the transport level."""

    async def ping(self):
        return True

    async def get(self, key):
        raise RedisConnectionError("connection reset")

    async def set(self, key, value, ex=None):
        raise RedisConnectionError("connection reset")

    async def delete(self, key):
        raise RedisConnectionError("connection reset")

    async def aclose(self):
        return None


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, cache_ttl_seconds=3600)


@pytest.fixture
def redis():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture
async def layer(settings, redis) -> CacheLayer:
    layer = CacheLayer(settings, redis=redis)
    await layer.init_cache()
    return layer


@pytest.fixture
def tasks(layer) -> EntityCache[TaskSnapshot]:
    return EntityCache(layer, "task", TaskSnapshot, ttl=3600, strict=True)


class Loader:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


class TestEntityCacheGet:
    async def test_miss_loads_and_populates(self, tasks, redis):
        loader = Loader(snapshot())
        result = await tasks.get(1, loader)

        assert result.from_cache is False
        assert result.value == snapshot()
        assert loader.calls == 1
        assert await redis.get("task:1") is not None
        assert 0 < await redis.ttl("task:1") <= 3600

    async def test_second_read_is_served_from_cache(self, tasks):
        loader = Loader(snapshot())
        await tasks.get(1, loader)
        result = await tasks.get(1, loader)

        assert result.from_cache is True
        assert result.value == snapshot()
        assert loader.calls == 1

    async def test_missing_entity_is_not_cached(self, tasks, redis):
        with pytest.raises(NotFoundError, match="Task not found"):
            await tasks.get(1, Loader(None))
        assert await redis.get("task:1") is None

    async def test_undecodable_entry_falls_through_to_store(self, tasks, redis):
        await redis.set("task:1", "{not json")
        loader = Loader(snapshot())

        result = await tasks.get(1, loader)

        assert result.from_cache is False
        assert loader.calls == 1
        assert TaskSnapshot.model_validate_json(await redis.get("task:1")) == snapshot()


class TestEntityCachePut:
    async def test_write_replaces_cached_snapshot(self, tasks):
        await tasks.get(1, Loader(snapshot(title="old")))
        await tasks.put(1, Loader(snapshot(title="new")))

        result = await tasks.get(1, Loader(None))
        assert result.from_cache is True
        assert result.value.title == "new"

    async def test_writer_returning_none_drops_key(self, tasks, redis):
        await tasks.store(1, snapshot())
        await tasks.put(1, Loader(None))
        assert await redis.get("task:1") is None

    async def test_failed_write_leaves_cache_alone(self, tasks, redis):
        await tasks.store(1, snapshot(title="kept"))

        async def failing_writer():
            raise RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await tasks.put(1, failing_writer)
        assert TaskSnapshot.model_validate_json(await redis.get("task:1")).title == "kept"

    async def test_invalidate_missing_key_is_fine(self, tasks):
        await tasks.invalidate(404)


class Unserializable(BaseModel):
    payload: Any


class TestSerialization:
    async def test_strict_cache_raises_cache_error(self, layer):
        cache = EntityCache(layer, "task", Unserializable, strict=True)

        with pytest.raises(CacheError) as exc:
            await cache.store(1, Unserializable(payload=object()))
        assert exc.value.status_code == 500

    async def test_lenient_cache_skips_the_write(self, layer, redis):
        cache = EntityCache(layer, "task", Unserializable)

        await cache.store(1, Unserializable(payload=object()))
        assert await redis.get("task:1") is None


class TestDegradedRedis:
    async def test_transport_errors_read_as_misses(self, settings):
        layer = CacheLayer(settings, redis=BrokenRedis())
        await layer.init_cache()
        tasks = EntityCache(layer, "task", TaskSnapshot, strict=True)
        loader = Loader(snapshot())

        first = await tasks.get(1, loader)
        second = await tasks.get(1, loader)

        assert first.from_cache is False
        assert second.from_cache is False
        assert loader.calls == 2
        assert layer.get_stats()["errors"] == 4

    async def test_unreachable_redis_disables_cache(self):
        settings = Settings(_env_file=None, redis_dsn="redis://127.0.0.1:1/0")
        layer = CacheLayer(settings)
        await layer.init_cache()

        assert layer.available is False
        assert await layer.get("task:1") is None
        assert await layer.set("task:1", "{}") is False
        assert await layer.delete("task:1") is False


async def test_namespace_prefixes_keys(redis):
    layer = CacheLayer(Settings(_env_file=None, cache_namespace="tv:"), redis=redis)
    await layer.init_cache()
    await EntityCache(layer, "user", TaskSnapshot).store(3, snapshot(3))

    assert await redis.get("tv:user:3") is not None
    assert layer.get_stats()["available"] is True
