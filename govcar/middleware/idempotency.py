import json
from typing import Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from govcar.redis_client import get_redis


IDEMPOTENCY_TTL = 3600  # 1 hour


def _cache_key(request: Request, key: str) -> str:
    return f"idempotency:{request.url.path}:{key}"


async def check_idempotency(request: Request) -> Optional[Response]:
    """
    Returns the stored Response if this Idempotency-Key was already used on
    this route, otherwise None (proceed normally). Guards admin double
    clicks on assignment, which would otherwise rotate the queue twice.
    """
    key = request.headers.get("Idempotency-Key")
    if not key:
        return None

    redis = await get_redis()
    cached = await redis.get(_cache_key(request, key))

    if cached:
        data = json.loads(cached)
        return JSONResponse(
            content=data["body"],
            status_code=data["status_code"],
            headers={"X-Idempotency-Replay": "true"},
        )
    return None


async def store_idempotency_result(request: Request, status_code: int, body: dict) -> None:
    """Persist the response for the request's idempotency key."""
    key = request.headers.get("Idempotency-Key")
    if not key:
        return
    redis = await get_redis()
    await redis.setex(
        _cache_key(request, key),
        IDEMPOTENCY_TTL,
        json.dumps({"status_code": status_code, "body": body}),
    )
