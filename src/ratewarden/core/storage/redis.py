from typing import Any

from redis.asyncio import Redis, from_url
from redis.exceptions import NoScriptError, RedisError

from ratewarden.core.errors import StoreError
from ratewarden.core.storage.base import NO_SCRIPT_PREFIX, StorageBackend


class RedisBackend(StorageBackend):
    """Counter store backed by Redis hashes and server-side Lua."""

    # Plain HSET would create a record without TTL when the key is gone.
    _HSET_IF_EXISTS = """
    if redis.call('exists', KEYS[1]) == 1 then
        redis.call('hset', KEYS[1], ARGV[1], ARGV[2])
        return 1
    end
    return 0
    """

    def __init__(self, redis: Redis):
        self._redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisBackend":
        return cls(from_url(url, encoding="utf-8", decode_responses=True))

    async def script_load(self, body: str) -> str:
        try:
            return await self._redis.script_load(body)
        except RedisError as exc:
            raise StoreError(f"script load failed: {exc}") from exc

    async def evalsha(self, handle: str, keys: list[str], args: list[str | int]) -> Any:
        try:
            return await self._redis.evalsha(handle, len(keys), *keys, *args)
        except NoScriptError as exc:
            # redis-py strips the error prefix, put it back for callers
            raise StoreError(f"{NO_SCRIPT_PREFIX}{exc}") from exc
        except RedisError as exc:
            raise StoreError(str(exc)) from exc

    async def hmget(self, key: str, fields: list[str]) -> list[str | None]:
        try:
            values = await self._redis.hmget(key, fields)
        except RedisError as exc:
            raise StoreError(str(exc)) from exc
        return [v.decode() if isinstance(v, bytes) else v for v in values]

    async def hset_if_exists(self, key: str, field: str, value: str | int) -> bool:
        try:
            updated = await self._redis.eval(self._HSET_IF_EXISTS, 1, key, field, value)
        except RedisError as exc:
            raise StoreError(str(exc)) from exc
        return bool(updated)

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            raise StoreError(str(exc)) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            raise StoreError(str(exc)) from exc

    async def close(self) -> None:
        await self._redis.aclose()
