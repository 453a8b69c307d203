import threading
from collections.abc import Iterator, Mapping

from ratewarden.core.strategies.base import Strategy, parse_limit, parse_strategy_id


class StrategySet:
    """
    Ordered, thread-safe collection of strategies keyed by identifier.

    Order is insertion order and is the order in which the store procedure
    evaluates windows, so it decides which strategy is reported first when
    several are exhausted. Updating a strategy keeps its position.

    Changes here never touch the counter store. Records already written
    under an old limit keep it until the limiter pushes a new one or the
    record expires.
    """

    def __init__(self, strategies: list[Strategy] | None = None) -> None:
        self._lock = threading.RLock()
        self._strategies: dict[str, Strategy] = {}
        for strategy in strategies or []:
            self._strategies[strategy.strategy_id] = strategy

    @classmethod
    def from_config(cls, config: Mapping[str, int | str | None]) -> "StrategySet":
        """
        Build from a {strategy_id: max_count} mapping.

        `max_count` may be None for "<limit>-<unit>" identifiers, which
        carry their own limit.
        """
        return cls([Strategy.from_id(sid, max_count) for sid, max_count in config.items()])

    def add_or_update(self, strategy_id: str, max_count: int | str, window_ms: int) -> Strategy:
        parse_strategy_id(strategy_id)
        strategy = Strategy(
            strategy_id=strategy_id,
            max_count=parse_limit(max_count),
            window_ms=window_ms,
        )
        with self._lock:
            self._strategies[strategy_id] = strategy
        return strategy

    def set_max_count(self, strategy_id: str, max_count: int | str) -> Strategy | None:
        """Replace the limit of an existing strategy. Returns None if absent."""
        limit = parse_limit(max_count)
        with self._lock:
            current = self._strategies.get(strategy_id)
            if current is None:
                return None
            updated = Strategy(strategy_id, limit, current.window_ms)
            self._strategies[strategy_id] = updated
        return updated

    def remove(self, strategy_id: str) -> None:
        with self._lock:
            self._strategies.pop(strategy_id, None)

    def validate(self, strategy_id: str) -> bool:
        with self._lock:
            return strategy_id in self._strategies

    def get(self, strategy_id: str) -> Strategy | None:
        with self._lock:
            return self._strategies.get(strategy_id)

    def snapshot(self) -> tuple[Strategy, ...]:
        with self._lock:
            return tuple(self._strategies.values())

    def __contains__(self, strategy_id: object) -> bool:
        with self._lock:
            return strategy_id in self._strategies

    def __iter__(self) -> Iterator[Strategy]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._strategies)
