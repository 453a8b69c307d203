"""
Cached handle for a server-side procedure.

The store may forget a registered procedure at any time: a restart, a
SCRIPT FLUSH, eviction, or a cluster/ring node that never saw the
registration. The handle kept here is therefore only a hint. Callers
invoke with it and, when the store answers "NOSCRIPT", ask for a reload
and try again.
"""

import asyncio
from typing import Any

import structlog

from ratewarden.core.storage.base import NO_SCRIPT_PREFIX, StorageBackend

logger = structlog.get_logger()


def is_no_script_error(exc: BaseException) -> bool:
    """True when the store reports that the procedure handle is unknown."""
    return str(exc).startswith(NO_SCRIPT_PREFIX)


class ScriptCache:
    """
    Registers a procedure body once and re-registers it on demand.

    Reloads are single-flight within a process: concurrent callers that saw
    the same stale handle wait on one registration instead of each sending
    their own. `generation` increases on every successful registration and
    is how a caller tells whether someone already reloaded for it.
    """

    def __init__(self, backend: StorageBackend, body: str):
        self._backend = backend
        self._body = body
        self._handle: str | None = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @classmethod
    async def create(cls, backend: StorageBackend, body: str) -> "ScriptCache":
        cache = cls(backend, body)
        await cache.load()
        return cache

    @property
    def handle(self) -> str | None:
        return self._handle

    @property
    def generation(self) -> int:
        return self._generation

    async def load(self) -> str:
        async with self._lock:
            return await self._register()

    async def reload(self, seen_generation: int) -> str:
        """
        Re-register the body unless another caller already did.

        Args:
            seen_generation: `generation` observed before the failed call.
        """
        async with self._lock:
            if self._handle is not None and self._generation != seen_generation:
                return self._handle
            logger.warning("script_reload", generation=self._generation)
            return await self._register()

    async def execute(self, keys: list[str], args: list[str | int]) -> Any:
        """Invoke the procedure with the cached handle, loading it first if needed."""
        handle = self._handle
        if handle is None:
            handle = await self.load()
        return await self._backend.evalsha(handle, keys, args)

    async def _register(self) -> str:
        self._handle = await self._backend.script_load(self._body)
        self._generation += 1
        logger.debug("script_registered", handle=self._handle, generation=self._generation)
        return self._handle
