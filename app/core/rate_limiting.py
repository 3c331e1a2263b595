"""
rate_limiting.py

API 요청 횟수 제한(Rate Limit) 설정 (slowapi).

- 클라이언트 IP 기준으로 전체 API에 기본 제한 적용 (기본 15분당 100회)
- SlowAPIMiddleware 가 default_limits 를 모든 라우트에 적용
- 제한 초과 시 429 + 공통 에러 포맷

"""

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.config import settings


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
)


def rate_limit_exceeded_handler(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": "Too many requests, please try again later.",
        },
        headers={"Retry-After": "60"},
    )
