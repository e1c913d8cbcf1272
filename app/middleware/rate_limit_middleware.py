"""
Redis 기반 Rate Limiting 미들웨어
동일한 IP에서 고정 시간 윈도우 동안 과도한 요청을 제한
"""

import time
from typing import Callable

import redis
from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.exceptions import RateLimitException
from app.middleware.logging_middleware import get_client_ip
from app.utils.logging import get_logger

logger = get_logger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    고정 윈도우 Rate Limiting 미들웨어.
    Redis 를 사용할 수 없으면 제한 없이 통과시키고 경고를 남긴다.
    """

    key_prefix = "rate_limit"

    def __init__(self, app, redis_client: redis.Redis, max_requests: int = 60, time_window: int = 60):
        super().__init__(app)
        self.redis_client = redis_client
        self.max_requests = max_requests
        self.time_window = time_window

    def _increment(self, key: str) -> int:
        pipe = self.redis_client.pipeline()
        pipe.incr(key)
        pipe.expire(key, self.time_window)
        count, _ = pipe.execute()
        return int(count)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        client_ip = get_client_ip(request)
        window = int(time.time() // self.time_window)
        key = f"{self.key_prefix}:{client_ip}:{window}"

        try:
            count = await run_in_threadpool(self._increment, key)
        except redis.RedisError as e:
            logger.warning(f"Rate limit 확인 실패, 요청을 통과시킵니다: {e}")
            return await call_next(request)

        # Rate limit 확인
        if count > self.max_requests:
            logger.warning(f"Rate limit exceeded for IP: {client_ip}", extra={"ip": client_ip})
            raise RateLimitException(
                f"Rate limit exceeded. Max {self.max_requests} requests per {self.time_window} seconds.",
                details={"limit": self.max_requests, "window_seconds": self.time_window},
            )

        return await call_next(request)
