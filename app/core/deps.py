"""
deps.py

FastAPI 의존성(Dependency) 모음 및 요청 게이트(Request Gate).

이 파일은 요청 단위 리소스(DB 세션, Redis, 서비스 객체) 조립과
보호된 API에 대한 인증 / 인가 검사를 담당한다.

주요 기능:
- get_db / get_redis / get_cache / get_state : 저장소 / 캐시 의존성
- get_auth_service : 요청마다 AuthService 조립
- get_current_user : Access Token 검증 후 최소 사용자 정보 반환
- optional_current_user : 같은 검사, 실패 시 None (익명 허용 API용)
- authorize(*roles) : 역할 기반 인가
- require_verified_email : 이메일 인증 사용자만 허용

인증 검사 순서:
1) Authorization: Bearer 헤더, 없으면 Access Token 쿠키
2) 블랙리스트(로그아웃된 토큰) 확인
3) 서명 / 만료 / type 클레임 검증
4) 사용자 정보 조회 (auth:user:{id} 5분 캐시 → DB)
5) 비활성 / 탈퇴 계정 403, 게스트가 아닌 이메일 미인증 계정 401

설계 원칙:
- 게이트는 사용자 정보를 읽기만 하고 절대 수정하지 않음
- 테스트에서는 dependency_overrides 로 get_db / get_redis / get_identity_verifier 교체

관련 파일:
- app.services.auth        : 인증 비즈니스 로직
- app.services.auth_state  : 블랙리스트 / 사용자 캐시
- app.routers.auth         : 인증 API

"""

import logging
from functools import lru_cache
from typing import Generator, Optional

import httpx
import redis
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.cache import RedisCache, create_redis_client
from app.core.config import Settings, get_settings
from app.core.errors import AppError, ForbiddenError, UnauthorizedError
from app.core.identity import FirebaseIdentityVerifier
from app.core.security import InvalidTokenError, TokenService
from app.db.session import SessionLocal
from app.models.user import Role, UserType
from app.repositories.user import UserRepository
from app.schemas.user import CurrentUser
from app.services.auth import AuthService
from app.services.auth_state import AuthStateCache
from app.services.notifications import EmailQueue

logger = logging.getLogger(__name__)

# Swagger Authorize에서 "Bearer 토큰" 입력받는 스키마
bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def _redis_client(url: str) -> redis.Redis:
    return create_redis_client(url)


def get_redis(settings: Settings = Depends(get_settings)) -> redis.Redis:
    return _redis_client(settings.REDIS_URL)


def get_cache(
    client: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> RedisCache:
    return RedisCache(client, prefix=settings.CACHE_PREFIX)


def get_state(
    cache: RedisCache = Depends(get_cache),
    settings: Settings = Depends(get_settings),
) -> AuthStateCache:
    return AuthStateCache(cache, settings)


def get_token_service(settings: Settings = Depends(get_settings)) -> TokenService:
    return TokenService(settings)


def get_email_queue(
    client: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> EmailQueue:
    return EmailQueue(client, settings)


@lru_cache
def _identity_http_client() -> httpx.Client:
    return httpx.Client(timeout=get_settings().FIREBASE_TIMEOUT_SECONDS)


"""
Firebase ID 토큰 검증기

- JWKS 조회용 httpx.Client는 프로세스 전체에서 하나만 사용
- 요청마다 새로 만드는 것은 캐시를 감싼 verifier 뿐
- 앱 종료 시 close_http_clients()로 정리

"""

def get_identity_verifier(
    cache: RedisCache = Depends(get_cache),
    settings: Settings = Depends(get_settings),
) -> FirebaseIdentityVerifier:
    return FirebaseIdentityVerifier(settings, cache, client=_identity_http_client())


def close_http_clients() -> None:
    if _identity_http_client.cache_info().currsize:
        _identity_http_client().close()
    _identity_http_client.cache_clear()


def get_user_repository(
    db: Session = Depends(get_db),
    state: AuthStateCache = Depends(get_state),
) -> UserRepository:
    return UserRepository(db, state)


def get_auth_service(
    users: UserRepository = Depends(get_user_repository),
    state: AuthStateCache = Depends(get_state),
    tokens: TokenService = Depends(get_token_service),
    identity: FirebaseIdentityVerifier = Depends(get_identity_verifier),
    emails: EmailQueue = Depends(get_email_queue),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(
        users=users,
        state=state,
        tokens=tokens,
        identity=identity,
        emails=emails,
        settings=settings,
    )


def extract_token(request: Request, cred: Optional[HTTPAuthorizationCredentials],
                  settings: Settings) -> Optional[str]:
    if cred is not None and cred.credentials:
        return cred.credentials
    return request.cookies.get(settings.ACCESS_COOKIE_NAME)


def _authenticate(request: Request, token: Optional[str], state: AuthStateCache,
                  tokens: TokenService, users: UserRepository) -> CurrentUser:
    if not token:
        raise UnauthorizedError("Access token is required")

    if state.is_token_blacklisted(token):
        raise UnauthorizedError("Token has been revoked")

    try:
        payload = tokens.verify_access(token)
    except InvalidTokenError as e:
        raise UnauthorizedError("Invalid or expired token") from e

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    data = state.get_gate_user(user_id)
    if data is None:
        user = users.find_by_id(user_id, include_deleted=True)
        if not user:
            raise UnauthorizedError("User not found")
        if user.is_deleted:
            raise ForbiddenError("Account is deactivated or deleted")
        data = CurrentUser.model_validate(user).model_dump(mode="json")
        state.set_gate_user(user.id, data)

    current = CurrentUser.model_validate(data)

    if not current.is_active:
        raise ForbiddenError("Account is deactivated or deleted")

    # 게스트는 이메일 인증 없이 사용 가능
    if current.user_type != UserType.GUEST and not current.is_email_verified:
        raise UnauthorizedError("Please verify your email to access this resource")

    request.state.user = current
    request.state.access_token = token
    return current


def get_current_user(
    request: Request,
    cred: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    state: AuthStateCache = Depends(get_state),
    tokens: TokenService = Depends(get_token_service),
    users: UserRepository = Depends(get_user_repository),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    token = extract_token(request, cred, settings)
    return _authenticate(request, token, state, tokens, users)


"""
선택 인증

- 토큰이 없거나 어떤 검사에서든 실패하면 None (요청은 그대로 진행)
- 캐시 / DB 장애도 같은 방식으로 익명 처리
- 로그인 여부에 따라 응답이 달라지는 API에서 사용

"""

def optional_current_user(
    request: Request,
    cred: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    state: AuthStateCache = Depends(get_state),
    tokens: TokenService = Depends(get_token_service),
    users: UserRepository = Depends(get_user_repository),
    settings: Settings = Depends(get_settings),
) -> Optional[CurrentUser]:
    token = extract_token(request, cred, settings)
    try:
        return _authenticate(request, token, state, tokens, users)
    except (AppError, redis.RedisError, SQLAlchemyError) as e:
        logger.debug("Optional auth skipped: %s", e)
        return None


def authorize(*roles: Role):
    allowed = set(roles)

    def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if allowed and current_user.role not in allowed:
            raise ForbiddenError("You do not have permission to perform this action")
        return current_user
    return _checker


def require_verified_email(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current_user.is_email_verified:
        raise ForbiddenError("Email verification required")
    return current_user
