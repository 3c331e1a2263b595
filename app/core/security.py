"""
security.py

비밀번호 해싱 및 JWT 토큰 생성/검증을 담당하는 보안 유틸리티 모음.

이 파일은 인증(auth) 로직에서 사용하는
저수준(low-level) 보안 기능만을 제공하며,
라우터나 비즈니스 로직은 포함하지 않는다.

주요 기능:
- 비밀번호 해싱 및 검증 (bcrypt)
- Access / Refresh Token 쌍 발급 (TokenService.issue)
- Access / Refresh Token 검증
- 로그아웃 시 블랙리스트 TTL 계산을 위한 만료 시각 추출

설계 원칙:
- Access Token과 Refresh Token은 서로 다른 시크릿과 type 클레임으로 분리
- 만료 / 형식 오류 / 서명 오류는 모두 InvalidTokenError 하나로 보고
  (클라이언트에 어떤 검증이 실패했는지 노출하지 않음)
- 토큰마다 jti(랜덤 ID)를 넣어 같은 초에 발급된 토큰도 서로 다르게 만듦
- 설정은 전역 settings가 아닌 생성자로 받은 Settings 사용

관련 파일:
- app.core.config        : JWT 시크릿 키 및 만료 설정
- app.core.deps          : 토큰을 실제로 검증하는 인증 의존성
- app.services.auth      : 로그인 / 재발급 / 로그아웃

"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from jose import jwt, JWTError
from passlib.context import CryptContext

from app.core.config import Settings


# bcrypt 기반 비밀번호 해싱 컨텍스트
# deprecated="auto"로 향후 알고리즘 교체 가능하도록 설정
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


"""
비밀번호 해싱 함수

- 평문 비밀번호를 bcrypt 해시로 변환
- DB에는 해시 값만 저장 (UserRepository가 쓰기 직전에 호출)

"""

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


"""
비밀번호 검증 함수

- 사용자가 입력한 평문 비밀번호와 DB에 저장된 해시 값을 비교
- 해시 형식이 잘못된 경우에도 예외 대신 False 반환

"""

def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


"""
존재하지 않는 사용자에 대한 더미 검증

- 로그인 시 사용자가 없더라도 해시 검증과 같은 시간을 소모하여
  응답 시간 차이로 계정 존재 여부가 드러나지 않도록 함

"""

def dummy_verify_password() -> None:
    pwd_context.dummy_verify()


class InvalidTokenError(Exception):
    """만료 / 형식 오류 / 서명 오류를 모두 포함하는 단일 토큰 오류"""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    def to_dict(self) -> dict:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


def remaining_seconds(payload: dict) -> int:
    exp = payload.get("exp")
    if exp is None:
        return 0
    return int(exp) - int(time.time())


class TokenService:
    def __init__(self, settings: Settings):
        self.settings = settings

    """
    JWT 토큰 생성 내부 공통 함수

    - sub: 사용자 식별자(user_id)
    - type: access 또는 refresh
    - iat / exp: 발급 / 만료 시각 (UTC timestamp)
    - jti: 토큰 고유 ID
    - extra: email / role

    """

    def _create_token(self, *, subject: str, token_type: Literal["access", "refresh"],
                      expires_delta: timedelta, secret: str, extra: Optional[dict] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + expires_delta).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        if extra:
            payload.update(extra)
        return jwt.encode(payload, secret, algorithm=self.settings.ALGORITHM)

    def create_access_token(self, subject: str, extra: Optional[dict] = None,
                            expires_delta: Optional[timedelta] = None) -> str:
        return self._create_token(
            subject=subject,
            token_type="access",
            expires_delta=expires_delta or timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            secret=self.settings.SECRET_KEY,
            extra=extra,
        )

    def create_refresh_token(self, subject: str, extra: Optional[dict] = None,
                             expires_delta: Optional[timedelta] = None) -> str:
        return self._create_token(
            subject=subject,
            token_type="refresh",
            expires_delta=expires_delta or timedelta(days=self.settings.REFRESH_TOKEN_EXPIRE_DAYS),
            secret=self.settings.REFRESH_SECRET_KEY,
            extra=extra,
        )

    """
    토큰 쌍 발급

    - payload: {"id", "email", "role"}
    - 두 토큰 모두 같은 클레임을 담지만 시크릿 / 만료 / type이 다름

    """

    def issue(self, payload: dict) -> TokenPair:
        subject = str(payload["id"])
        extra = {"email": payload.get("email"), "role": payload.get("role")}
        return TokenPair(
            access_token=self.create_access_token(subject, extra),
            refresh_token=self.create_refresh_token(subject, extra),
        )

    def _decode(self, token: str, *, secret: str, token_type: str, verify_exp: bool = True) -> dict:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.settings.ALGORITHM],
                options={"verify_exp": verify_exp},
            )
        except JWTError as e:
            raise InvalidTokenError(str(e)) from e
        if payload.get("type") != token_type:
            raise InvalidTokenError(f"Not an {token_type} token")
        return payload

    def verify_access(self, token: str) -> dict:
        return self._decode(token, secret=self.settings.SECRET_KEY, token_type="access")

    def verify_refresh(self, token: str) -> dict:
        return self._decode(token, secret=self.settings.REFRESH_SECRET_KEY, token_type="refresh")

    """
    만료된 Refresh Token 디코딩

    - 로그아웃 시 이미 만료된 토큰도 서명만 맞으면 클레임을 읽어야 함
    - 서명 / 형식 / type 검증은 그대로 수행

    """

    def decode_refresh_allow_expired(self, token: str) -> dict:
        return self._decode(
            token,
            secret=self.settings.REFRESH_SECRET_KEY,
            token_type="refresh",
            verify_exp=False,
        )

    def decode_access_allow_expired(self, token: str) -> dict:
        return self._decode(
            token,
            secret=self.settings.SECRET_KEY,
            token_type="access",
            verify_exp=False,
        )
