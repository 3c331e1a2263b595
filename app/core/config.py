"""
config.py

애플리케이션 전역 설정(Configuration) 관리 파일.

이 파일은 .env 환경 변수들을 Pydantic BaseSettings를 통해 로드하여
인증 서비스 전반에서 공통으로 사용하는 설정 값을 제공한다.

주요 설정 항목:
- 데이터베이스 / Redis 연결 정보
- JWT 인증 관련 시크릿 및 만료 정책
- OTP / 사용자 캐시 TTL
- 이메일 전송(Resend) 및 이메일 큐 옵션
- Firebase(Google) ID 토큰 검증 옵션
- 쿠키 보안 옵션, CORS, Rate Limit

설계 원칙:
- 모든 환경 변수는 이 파일을 통해서만 접근
- 비즈니스 로직(services)은 전역 settings를 직접 읽지 않고
  생성자로 전달받은 Settings 객체만 사용
- 설정 값은 런타임 중 변경되지 않는 불변 객체로 취급

관련 파일:
- app.main               : CORS / Rate Limit / 로깅 초기화 시 설정 사용
- app.core.deps          : 의존성 주입 시 get_settings() 사용
- app.db.session         : DATABASE_URL 사용

"""

from functools import lru_cache
from typing import List

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


# .env 파일에 정의된 환경 변수를 로드하는 설정 클래스
# extra="ignore" 옵션으로 정의되지 않은 환경 변수는 무시
class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DATABASE_URL: str
    TEST_DATABASE_URL: str | None = None

    SECRET_KEY: str
    REFRESH_SECRET_KEY: str  # access랑 분리
    ALGORITHM: str = "HS256"

    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 14

    # API 경로: {API_PREFIX}/{API_VERSION}/auth/...
    API_PREFIX: str = "/api"
    API_VERSION: str = "v1"

    # 쿠키/배포 옵션
    # - COOKIE_SECURE: HTTPS 환경에서만 True 권장
    # - COOKIE_SAMESITE: CSRF 완화를 위해 "lax" 기본값
    COOKIE_SECURE: bool = False
    COOKIE_SAMESITE: str = "lax"
    COOKIE_DOMAIN: str | None = None
    ACCESS_COOKIE_NAME: str = "access_token"

    # CORS 허용 도메인 (프론트엔드 주소)
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Redis (캐시 / OTP / 블랙리스트 / 이메일 큐)
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_PREFIX: str = "authsvc"

    USER_CACHE_TTL_SECONDS: int = 15 * 60
    USER_GATE_CACHE_TTL_SECONDS: int = 5 * 60
    OTP_TTL_SECONDS: int = 10 * 60
    PASSWORD_RESET_TTL_SECONDS: int = 10 * 60

    # 이메일 큐 / 워커
    EMAIL_QUEUE_NAME: str = "emailQueue"
    EMAIL_JOB_MAX_ATTEMPTS: int = 3
    EMAIL_JOB_BACKOFF_SECONDS: int = 5

    # 이메일 전송 (Resend HTTP API)
    RESEND_API_URL: str = "https://api.resend.com/emails"
    RESEND_API_KEY: SecretStr = SecretStr("")
    EMAIL_FROM: str = "noreply@example.com"
    EMAIL_TIMEOUT_SECONDS: float = 10.0

    # Firebase(Google) ID 토큰 검증
    FIREBASE_PROJECT_ID: str = ""
    FIREBASE_JWKS_URL: str = (
        "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
    )
    FIREBASE_JWKS_CACHE_SECONDS: int = 60 * 60
    FIREBASE_TIMEOUT_SECONDS: float = 10.0

    # Rate Limit (slowapi)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100 per 15 minutes"
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    LOG_LEVEL: str = "INFO"

    @property
    def API_BASE_PATH(self) -> str:
        return f"{self.API_PREFIX}/{self.API_VERSION}"


# 실행 시 한 번만 생성되는 Settings 인스턴스
# 테스트에서는 환경 변수를 먼저 세팅한 뒤 import 해야 함
@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
