"""
services/auth_state.py

인증 도메인 전용 캐시 키 관리.

RedisCache 위에서 인증 흐름에 필요한 임시 상태를
키 규칙과 TTL까지 포함하여 한 곳에서 관리한다.

관리 대상:
- OTP 코드           : otp:{type}:{email}           (TTL 10분)
- 토큰 블랙리스트     : blacklist:token:{token}       (TTL = 토큰 남은 수명)
- 비밀번호 재설정 허가 : reset:{email}                 (TTL 10분, verify-otp 성공 시 발급)
- 사용자 정보 캐시     : user:{id}                     (TTL 15분, /me 응답)
- 인증 미들웨어 캐시   : auth:user:{id}                (TTL 5분, 최소 사용자 정보)

설계 원칙:
- 블랙리스트와 OTP를 제외한 모든 값은 캐시 미스 시 DB에서 재계산 가능
- 사용자 정보가 변경되면 관련된 모든 사용자 캐시 키를 함께 삭제

"""

from typing import Optional

from app.core.cache import RedisCache, make_key
from app.core.config import Settings


class AuthStateCache:
    def __init__(self, cache: RedisCache, settings: Settings):
        self.cache = cache
        self.settings = settings

    # OTP

    def set_otp(self, email: str, otp_type: str, code: str) -> None:
        self.cache.set(make_key("otp", otp_type, email), code, self.settings.OTP_TTL_SECONDS)

    def get_otp(self, email: str, otp_type: str) -> Optional[str]:
        value = self.cache.get(make_key("otp", otp_type, email))
        return None if value is None else str(value)

    def delete_otp(self, email: str, otp_type: str) -> None:
        self.cache.delete(make_key("otp", otp_type, email))

    # 토큰 블랙리스트

    def blacklist_token(self, token: str, ttl_seconds: int) -> None:
        if ttl_seconds > 0:
            self.cache.set(make_key("blacklist", "token", token), "1", ttl_seconds)

    def is_token_blacklisted(self, token: str) -> bool:
        return self.cache.exists(make_key("blacklist", "token", token))

    # 비밀번호 재설정 허가

    def grant_password_reset(self, email: str) -> None:
        self.cache.set(make_key("reset", email), "1", self.settings.PASSWORD_RESET_TTL_SECONDS)

    def has_password_reset(self, email: str) -> bool:
        return self.cache.exists(make_key("reset", email))

    def revoke_password_reset(self, email: str) -> None:
        self.cache.delete(make_key("reset", email))

    # 사용자 캐시

    def get_user(self, user_id) -> Optional[dict]:
        return self.cache.get(make_key("user", user_id))

    def set_user(self, user_id, data: dict) -> None:
        self.cache.set(make_key("user", user_id), data, self.settings.USER_CACHE_TTL_SECONDS)

    def get_gate_user(self, user_id) -> Optional[dict]:
        return self.cache.get(make_key("auth", "user", user_id))

    def set_gate_user(self, user_id, data: dict) -> None:
        self.cache.set(make_key("auth", "user", user_id), data, self.settings.USER_GATE_CACHE_TTL_SECONDS)

    def invalidate_user(self, user_id) -> None:
        self.cache.delete(make_key("user", user_id), make_key("auth", "user", user_id))
