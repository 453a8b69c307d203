from collections.abc import Sequence
from typing import Any

import structlog

from ratewarden.core.errors import ProtocolError, StoreError
from ratewarden.core.keys import make_key
from ratewarden.core.storage.base import StorageBackend
from ratewarden.core.storage.scripts import ScriptCache, is_no_script_error
from ratewarden.core.strategies.base import EvaluationOutcome, Strategy

logger = structlog.get_logger()

# KEYS[i]: "<identity>:<strategy id>", one per strategy, in evaluation order
# ARGV[2i-1]: max count, ARGV[2i]: window in milliseconds
# HASH KEYS[i]: ct (count), lt (limit)
#
# The first window already at its limit rejects the call and stops the loop.
# Windows before it have already been counted and keep that count.
# On admit, reports the window with the least headroom left.
FIXED_WINDOW_SCRIPT = """
local used = 0
local total = 0
local headroom = nil
for i = 1, #KEYS do
    local key = KEYS[i]
    local max_count = tonumber(ARGV[(i - 1) * 2 + 1])
    local window_ms = tonumber(ARGV[(i - 1) * 2 + 2])
    local record = redis.call('hmget', key, 'ct', 'lt')
    local count
    local limit
    if record[1] then
        count = tonumber(record[1])
        limit = tonumber(record[2]) or max_count
        if count >= limit then
            return {1, key, count, limit}
        end
        count = redis.call('hincrby', key, 'ct', 1)
    else
        count = 1
        limit = max_count
        redis.call('hset', key, 'ct', count, 'lt', limit)
        redis.call('pexpire', key, window_ms)
    end
    if headroom == nil or limit - count < headroom then
        headroom = limit - count
        used = count
        total = limit
    end
end
return {0, '', used, total}
"""


class FixedWindowEvaluator:
    """
    Evaluates every window of an identity in one atomic store call.

    The store runs FIXED_WINDOW_SCRIPT as a single unit, so two callers
    racing on the same identity can never both be admitted past a limit.
    No lock is taken in-process.
    """

    def __init__(self, scripts: ScriptCache):
        self.scripts = scripts

    @classmethod
    async def create(cls, backend: StorageBackend) -> "FixedWindowEvaluator":
        return cls(await ScriptCache.create(backend, FIXED_WINDOW_SCRIPT))

    async def evaluate(self, identity: str, strategies: Sequence[Strategy]) -> EvaluationOutcome:
        keys: list[str] = []
        args: list[str | int] = []
        strategy_by_key: dict[str, str] = {}
        for strategy in strategies:
            key = make_key(identity, strategy.strategy_id)
            keys.append(key)
            args.extend((strategy.max_count, strategy.window_ms))
            strategy_by_key[key] = strategy.strategy_id

        raw = await self._execute(keys, args)
        return self._decode(raw, strategy_by_key)

    async def _execute(self, keys: list[str], args: list[str | int]) -> Any:
        if self.scripts.handle is None:
            await self.scripts.load()
        generation = self.scripts.generation
        try:
            return await self.scripts.execute(keys, args)
        except StoreError as exc:
            if not is_no_script_error(exc):
                raise
            logger.warning("script_missing", error=str(exc))

        # One retry only, a second failure goes to the caller as is
        await self.scripts.reload(generation)
        return await self.scripts.execute(keys, args)

    @staticmethod
    def _decode(raw: Any, strategy_by_key: dict[str, str]) -> EvaluationOutcome:
        """Validate the 4-element reply [rejected, key, used, total]."""
        if not isinstance(raw, (list, tuple)) or len(raw) != 4:
            raise ProtocolError(f"unexpected reply from store: {raw!r}")

        flag, key, used, total = raw
        if isinstance(key, bytes):
            key = key.decode()

        if flag not in (0, 1) or isinstance(flag, bool):
            raise ProtocolError(f"unexpected rejection flag: {flag!r}")
        if not isinstance(key, str):
            raise ProtocolError(f"unexpected key in reply: {key!r}")
        for value in (used, total):
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ProtocolError(f"unexpected count in reply: {value!r}")

        if flag == 0:
            if key:
                raise ProtocolError(f"admitted reply carries a key: {key!r}")
            return EvaluationOutcome(reached=False, strategy_id="", used=used, total=total)

        strategy_id = strategy_by_key.get(key)
        if strategy_id is None:
            raise ProtocolError(f"reply names a key that was not sent: {key!r}")
        return EvaluationOutcome(reached=True, strategy_id=strategy_id, used=used, total=total)
