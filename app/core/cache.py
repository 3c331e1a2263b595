"""
cache.py

Redis 기반 캐시(Ephemeral State Cache) 클라이언트.

TTL이 있는 key-value 저장소로, 인증 서비스에서 다음 용도로 사용한다.
- 사용자 정보 read-through 캐시
- OTP 코드 임시 저장
- 로그아웃된 토큰 블랙리스트
- Firebase 공개키(JWKS) 캐시

설계 원칙:
- 값은 JSON 직렬화하여 저장 (문자열 / dict / list 모두 동일하게 처리)
- 모든 키는 CACHE_PREFIX 로 네임스페이스 분리
- 캐시는 최적화 계층: 블랙리스트 / OTP를 제외하면 언제든 DB로 재계산 가능

관련 파일:
- app.services.auth_state : 인증 도메인 키(OTP, 블랙리스트 등) 관리
- app.core.deps           : get_redis / get_cache 의존성

"""

import json
from typing import Any, Optional

import redis


def make_key(*parts: Any) -> str:
    return ":".join(str(p) for p in parts)


def create_redis_client(url: str) -> redis.Redis:
    return redis.Redis.from_url(url, decode_responses=True)


class RedisCache:
    def __init__(self, client: redis.Redis, prefix: str = ""):
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    def get(self, key: str) -> Optional[Any]:
        raw = self.client.get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        raw = json.dumps(value, default=str)
        if ttl_seconds:
            self.client.set(self._key(key), raw, ex=int(ttl_seconds))
        else:
            self.client.set(self._key(key), raw)

    def delete(self, *keys: str) -> None:
        if keys:
            self.client.delete(*(self._key(k) for k in keys))

    def exists(self, key: str) -> bool:
        return bool(self.client.exists(self._key(key)))

    def ttl(self, key: str) -> int:
        return self.client.ttl(self._key(key))
