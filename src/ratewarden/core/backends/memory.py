"""
In-memory storage backend for testing and development.

This backend keeps hash records in Python dictionaries, making it:
- Fast: No network calls, no serialization
- Simple: No external dependencies
- Isolated: Each instance is independent

Registered procedures cannot run Lua here. Instead every supported script
body is paired with a Python emulation that follows the same steps. Each
operation runs without yielding to the event loop and under a lock, so a
procedure is atomic with respect to every other call, like on Redis.

WARNING: Not suitable for production!
- No persistence (data lost on restart)
- No distribution (single process only)

Use RedisBackend for production deployments.
"""

import hashlib
import threading
import time
from collections.abc import Callable
from typing import Any

from ratewarden.core.errors import StoreError
from ratewarden.core.storage.base import NO_SCRIPT_PREFIX, StorageBackend
from ratewarden.core.strategies.fixed_window import FIXED_WINDOW_SCRIPT

Program = Callable[..., Any]


def fixed_window_program(
    backend: "InMemoryBackend",
    keys: list[str],
    args: list[str | int],
) -> list[Any]:
    """Python rendition of FIXED_WINDOW_SCRIPT."""
    used = 0
    total = 0
    headroom = None
    for i, key in enumerate(keys):
        max_count = int(args[i * 2])
        window_ms = int(args[i * 2 + 1])
        record = backend._get_record(key)

        if record is not None and "ct" in record:
            count = int(record["ct"])
            limit = int(record["lt"]) if "lt" in record else max_count
            if count >= limit:
                return [1, key, count, limit]
            count += 1
            record["ct"] = str(count)
        else:
            count = 1
            limit = max_count
            backend._records[key] = {"ct": str(count), "lt": str(limit)}
            backend._expiry[key] = backend._clock() + window_ms / 1000

        if headroom is None or limit - count < headroom:
            headroom = limit - count
            used = count
            total = limit
    return [0, "", used, total]


DEFAULT_PROGRAMS: dict[str, Program] = {
    FIXED_WINDOW_SCRIPT: fixed_window_program,
}


class InMemoryBackend(StorageBackend):
    """
    In-memory implementation of StorageBackend.

    Features:
    - Hash records with millisecond TTL (checked on access)
    - Script registry keyed by SHA1, like Redis
    - `flush_scripts()` to simulate a store that forgot its scripts

    Example:
        >>> backend = InMemoryBackend()
        >>> handle = await backend.script_load(FIXED_WINDOW_SCRIPT)
        >>> await backend.evalsha(handle, ["u1:5-S"], [5, 1000])
        [0, '', 1, 5]

    Args:
        clock: Returns the current time in seconds. Tests pass a fake one
            to move across window boundaries without sleeping.
        programs: Supported script bodies and their emulations.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        programs: dict[str, Program] | None = None,
    ) -> None:
        self._clock = clock
        self._programs = dict(DEFAULT_PROGRAMS if programs is None else programs)
        self._lock = threading.Lock()

        # key -> {field: value}, values stored as strings like Redis does
        self._records: dict[str, dict[str, str]] = {}

        # key -> clock() value after which the record is gone
        self._expiry: dict[str, float] = {}

        # SHA1 -> script body
        self._scripts: dict[str, str] = {}

    def _get_record(self, key: str) -> dict[str, str] | None:
        """Return the live record for key, dropping it first if expired."""
        deadline = self._expiry.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._records.pop(key, None)
            self._expiry.pop(key, None)
            return None
        return self._records.get(key)

    # =========================================================================
    # StorageBackend
    # =========================================================================

    async def script_load(self, body: str) -> str:
        if body not in self._programs:
            raise StoreError("ERR script not supported by the in-memory backend")
        handle = hashlib.sha1(body.encode()).hexdigest()
        with self._lock:
            self._scripts[handle] = body
        return handle

    async def evalsha(self, handle: str, keys: list[str], args: list[str | int]) -> Any:
        with self._lock:
            body = self._scripts.get(handle)
            if body is None:
                raise StoreError(f"{NO_SCRIPT_PREFIX}No matching script. Please use EVAL.")
            return self._programs[body](self, list(keys), list(args))

    async def hmget(self, key: str, fields: list[str]) -> list[str | None]:
        with self._lock:
            record = self._get_record(key) or {}
            return [record.get(field) for field in fields]

    async def hset_if_exists(self, key: str, field: str, value: str | int) -> bool:
        with self._lock:
            record = self._get_record(key)
            if record is None:
                return False
            record[field] = str(value)
            return True

    async def delete(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)
            self._expiry.pop(key, None)

    # =========================================================================
    # Utility Methods (not part of interface, useful for testing)
    # =========================================================================

    def flush_scripts(self) -> None:
        """Forget every registered script, like SCRIPT FLUSH or a restart."""
        with self._lock:
            self._scripts.clear()

    def ttl_ms(self, key: str) -> int | None:
        """Milliseconds left before key expires, None if absent or persistent."""
        with self._lock:
            if self._get_record(key) is None or key not in self._expiry:
                return None
            return int((self._expiry[key] - self._clock()) * 1000)

    def keys(self) -> list[str]:
        """All keys that have not expired."""
        with self._lock:
            return [k for k in list(self._records) if self._get_record(k) is not None]
