from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ratewarden.core.limiter import RateLimiter

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    strategies: list[str]


class MessageResponse(BaseModel):
    msg: str


class UsageResponse(BaseModel):
    use: int
    total: int


def get_limiter(request: Request) -> RateLimiter:
    return request.app.state.limiter


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    limiter = get_limiter(request)
    return HealthResponse(
        status="healthy",
        strategies=[s.strategy_id for s in limiter.strategies],
    )


@router.post("/request", response_model=MessageResponse)
async def evaluate(request: Request, username: str):
    outcome = await get_limiter(request).check(username)

    if outcome.reached:
        return JSONResponse(
            status_code=429,
            content={
                "msg": "Rate limit exceeded",
                "use": outcome.used,
                "total": outcome.total,
                "period": outcome.strategy_id,
            },
        )
    return MessageResponse(msg="success")


@router.post("/set_limit", response_model=MessageResponse)
async def set_limit(request: Request, username: str, period: str, limit: str):
    await get_limiter(request).set_limit(username, period, limit)
    return MessageResponse(msg="success")


@router.post("/del_limit", response_model=MessageResponse)
async def remove_limit(request: Request, username: str, period: str):
    await get_limiter(request).remove_limit(username, period)
    return MessageResponse(msg="success")


@router.get("/get_cnt", response_model=UsageResponse)
async def inspect(request: Request, username: str, period: str):
    usage = await get_limiter(request).inspect(username, period)
    return UsageResponse(use=usage.used, total=usage.total)
