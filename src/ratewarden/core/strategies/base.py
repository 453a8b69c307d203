"""
Value types shared by the fixed window limiter.

A strategy is one configured window: a maximum number of requests within a
fixed period. Strategies are addressed by a text identifier, either
"<limit>-<unit>" (e.g. "10-M") or a bare period name (e.g. "Minute").
"""

import re
from dataclasses import dataclass

from ratewarden.core.errors import FormatError, UnknownPeriodError

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

UNIT_WINDOWS_MS = {
    "S": SECOND_MS,
    "M": MINUTE_MS,
    "H": HOUR_MS,
    "D": DAY_MS,
}

PERIOD_WINDOWS_MS = {
    "Second": SECOND_MS,
    "Minute": MINUTE_MS,
    "Hour": HOUR_MS,
    "Day": DAY_MS,
}

_NAMED_PERIOD = re.compile(r"[A-Za-z]+")
_LIMIT_UNIT = re.compile(r"(?P<limit>[^-]+)-(?P<unit>[A-Za-z]+)")


def parse_strategy_id(strategy_id: str) -> tuple[int | None, int]:
    """
    Parse a strategy identifier.

    Returns:
        (limit, window_ms). `limit` is None for bare period names.

    Raises:
        FormatError: the identifier does not have either accepted shape,
            or its limit is not a positive integer.
        UnknownPeriodError: the shape is right but the unit or period
            name is not one we know.
    """
    if not isinstance(strategy_id, str) or not strategy_id:
        raise FormatError(f"invalid strategy id: {strategy_id!r}")

    if _NAMED_PERIOD.fullmatch(strategy_id):
        window_ms = PERIOD_WINDOWS_MS.get(strategy_id)
        if window_ms is None:
            raise UnknownPeriodError(f"unknown period: {strategy_id!r}")
        return None, window_ms

    match = _LIMIT_UNIT.fullmatch(strategy_id)
    if match is None:
        raise FormatError(f"invalid strategy id: {strategy_id!r}")

    limit = parse_limit(match.group("limit"))
    window_ms = UNIT_WINDOWS_MS.get(match.group("unit"))
    if window_ms is None:
        raise UnknownPeriodError(f"unknown unit in strategy id: {strategy_id!r}")
    return limit, window_ms


def parse_limit(value: int | str) -> int:
    """Coerce a limit to a positive int, raising FormatError otherwise."""
    if isinstance(value, bool):
        raise FormatError(f"invalid limit: {value!r}")
    if isinstance(value, int):
        limit = value
    elif isinstance(value, str) and value.isdecimal():
        limit = int(value)
    else:
        raise FormatError(f"invalid limit: {value!r}")

    if limit <= 0:
        raise FormatError(f"limit must be positive, got {limit}")
    return limit


@dataclass(frozen=True)
class Strategy:
    """
    One fixed window.

    Attributes:
        strategy_id: Identifier, unique within a StrategySet.
        max_count: Requests admitted per window.
        window_ms: Window length in milliseconds. Also the TTL of the
            counter record created at the first request of a window.
    """

    strategy_id: str
    max_count: int
    window_ms: int

    def __post_init__(self) -> None:
        if self.max_count <= 0:
            raise FormatError(f"max_count must be positive, got {self.max_count}")
        if self.window_ms <= 0:
            raise FormatError(f"window_ms must be positive, got {self.window_ms}")

    @classmethod
    def from_id(cls, strategy_id: str, max_count: int | str | None = None) -> "Strategy":
        """
        Build a strategy from its identifier.

        An explicit `max_count` overrides the limit embedded in a
        "<limit>-<unit>" identifier. Bare period names need one.
        """
        embedded_limit, window_ms = parse_strategy_id(strategy_id)
        if max_count is not None:
            limit = parse_limit(max_count)
        elif embedded_limit is not None:
            limit = embedded_limit
        else:
            raise FormatError(f"no limit given for strategy {strategy_id!r}")
        return cls(strategy_id=strategy_id, max_count=limit, window_ms=window_ms)


@dataclass(frozen=True)
class EvaluationOutcome:
    """
    Result of evaluating every strategy for one identity.

    Attributes:
        reached: True when the request was rejected.
        strategy_id: The first strategy found at its limit, empty when
            the request was admitted.
        used: Requests counted in the reported window.
        total: Limit of the reported window.

    When admitted, `used`/`total` describe the most constrained window
    after this request was counted.
    """

    reached: bool
    strategy_id: str
    used: int
    total: int

    @property
    def is_allowed(self) -> bool:
        return not self.reached

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.used)


@dataclass(frozen=True)
class Usage:
    """Current usage of one identity under one strategy."""

    used: int
    total: int
