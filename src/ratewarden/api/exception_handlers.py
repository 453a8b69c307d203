"""
Maps limiter errors to HTTP responses.

- FormatError, UnknownPeriodError → 400
- InvalidStrategyError, NoRecordError → 404
- StoreError, ProtocolError → 500

A reached limit is not an error; the route answers it with 429.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ratewarden.core.errors import (
    FormatError,
    InvalidStrategyError,
    NoRecordError,
    RateLimiterError,
    UnknownPeriodError,
)

logger = structlog.get_logger()


def status_for(exc: RateLimiterError) -> int:
    if isinstance(exc, (FormatError, UnknownPeriodError)):
        return 400
    if isinstance(exc, (InvalidStrategyError, NoRecordError)):
        return 404
    return 500


async def rate_limiter_error_handler(request: Request, exc: RateLimiterError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log("rate_limiter_error", code=exc.code, error=exc.message, status_code=status_code)

    return JSONResponse(
        status_code=status_code,
        content={"msg": exc.message, "code": exc.code},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RateLimiterError, rate_limiter_error_handler)
