"""
Public entry point of the limiter.

RateLimiter owns the in-process StrategySet and composes it with the atomic
fixed window evaluator. Every instance of a service builds its own
RateLimiter against the same store; counters are shared through the store,
configuration is per process.
"""

from collections.abc import Mapping

import structlog

from ratewarden.core.errors import FormatError, InvalidStrategyError, NoRecordError, ProtocolError
from ratewarden.core.keys import make_key
from ratewarden.core.storage.base import StorageBackend
from ratewarden.core.strategies.base import (
    EvaluationOutcome,
    Strategy,
    Usage,
    parse_limit,
    parse_strategy_id,
)
from ratewarden.core.strategies.fixed_window import FixedWindowEvaluator
from ratewarden.core.strategies.strategy_set import StrategySet

logger = structlog.get_logger()

COUNT_FIELD = "ct"
LIMIT_FIELD = "lt"


class RateLimiter:
    """
    Multi-window fixed window rate limiter.

    Example:
        >>> limiter = await RateLimiter.create(backend, {"Second": 5, "10-M": None})
        >>> outcome = await limiter.check("user42")
        >>> outcome.reached
        False
    """

    def __init__(
        self,
        backend: StorageBackend,
        strategies: StrategySet,
        evaluator: FixedWindowEvaluator,
    ):
        self.backend = backend
        self._strategies = strategies
        self._evaluator = evaluator

    @classmethod
    async def create(
        cls,
        backend: StorageBackend,
        strategies: StrategySet | Mapping[str, int | str | None],
    ) -> "RateLimiter":
        """Build a limiter and register the evaluation procedure with the store."""
        if not isinstance(strategies, StrategySet):
            strategies = StrategySet.from_config(strategies)
        evaluator = await FixedWindowEvaluator.create(backend)
        return cls(backend, strategies, evaluator)

    @property
    def strategies(self) -> tuple[Strategy, ...]:
        return self._strategies.snapshot()

    async def check(self, identity: str) -> EvaluationOutcome:
        """
        Count one request for identity against every configured window.

        Returns:
            The outcome. A reached limit is a normal result, not an error.

        Raises:
            StoreError: The store failed, after at most one script reload.
            ProtocolError: The store reply had an unexpected shape.
        """
        _require_identity(identity)
        outcome = await self._evaluator.evaluate(identity, self._strategies.snapshot())

        if outcome.reached:
            logger.info(
                "rate_limit_reached",
                identity=identity,
                strategy=outcome.strategy_id,
                used=outcome.used,
                total=outcome.total,
            )
        else:
            logger.debug(
                "rate_limit_check",
                identity=identity,
                used=outcome.used,
                total=outcome.total,
            )
        return outcome

    async def set_limit(self, identity: str, strategy_id: str, new_max: int | str) -> None:
        """
        Change the limit of a configured window.

        The new limit applies to windows created from now on, and is pushed
        into identity's live record so its current window uses it at once.
        Other identities keep their current limit until their window ends.
        """
        _require_identity(identity)
        parse_strategy_id(strategy_id)
        limit = parse_limit(new_max)

        if self._strategies.set_max_count(strategy_id, limit) is None:
            raise InvalidStrategyError(f"strategy not configured: {strategy_id!r}")

        updated = await self.backend.hset_if_exists(
            make_key(identity, strategy_id), LIMIT_FIELD, limit
        )
        logger.info(
            "rate_limit_updated",
            identity=identity,
            strategy=strategy_id,
            limit=limit,
            live_record=updated,
        )

    async def remove_limit(self, identity: str, strategy_id: str) -> None:
        """Stop evaluating a window and delete identity's record for it."""
        _require_identity(identity)
        parse_strategy_id(strategy_id)

        self._strategies.remove(strategy_id)
        await self.backend.delete(make_key(identity, strategy_id))
        logger.info("rate_limit_removed", identity=identity, strategy=strategy_id)

    async def add_limit(self, strategy_id: str, max_count: int | str | None = None) -> Strategy:
        """Add a window, or replace the limit of an existing one."""
        strategy = Strategy.from_id(strategy_id, max_count)
        self._strategies.add_or_update(strategy.strategy_id, strategy.max_count, strategy.window_ms)
        logger.info(
            "rate_limit_added",
            strategy=strategy.strategy_id,
            limit=strategy.max_count,
            window_ms=strategy.window_ms,
        )
        return strategy

    async def inspect(self, identity: str, strategy_id: str) -> Usage:
        """Read identity's usage of one window without counting a request."""
        _require_identity(identity)
        parse_strategy_id(strategy_id)

        used, total = await self.backend.hmget(
            make_key(identity, strategy_id), [COUNT_FIELD, LIMIT_FIELD]
        )
        if used is None or total is None:
            raise NoRecordError(f"no record for {identity!r} under {strategy_id!r}")
        try:
            return Usage(used=int(used), total=int(total))
        except ValueError as exc:
            raise ProtocolError(f"non-numeric record fields: {used!r}, {total!r}") from exc


def _require_identity(identity: str) -> None:
    if not isinstance(identity, str) or not identity:
        raise FormatError(f"invalid identity: {identity!r}")
