"""
Error taxonomy for the limiter.

Client-side errors (FormatError, UnknownPeriodError, InvalidStrategyError,
NoRecordError) are detected locally or from a plain read and are never
retried. Server-side errors (StoreError, ProtocolError) come from the remote
counter store.
"""


class RateLimiterError(Exception):
    """Base class for every error raised by the limiter."""

    code = "rate_limiter_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class FormatError(RateLimiterError):
    """Malformed strategy identifier or limit value."""

    code = "invalid_format"


class UnknownPeriodError(RateLimiterError):
    """Well-formed identifier naming a unit or period that does not exist."""

    code = "unknown_period"


class InvalidStrategyError(RateLimiterError):
    """The strategy is not configured on this limiter."""

    code = "invalid_strategy"


class NoRecordError(RateLimiterError):
    """No live counter record exists for the identity and strategy."""

    code = "no_record"


class StoreError(RateLimiterError):
    """The counter store is unreachable or rejected the command."""

    code = "store_error"


class ProtocolError(RateLimiterError):
    """The counter store replied with an unexpected payload."""

    code = "protocol_error"
