"""
identity.py

외부 ID 토큰(Google / Firebase) 검증 어댑터 (Identity Federation Adapter).

클라이언트가 Firebase Authentication으로 Google 로그인 후 받은 ID 토큰을
Google securetoken 공개키(JWKS)로 검증하고, 필요한 클레임만 추출한다.

검증 항목:
- RS256 서명 (JWKS 공개키)
- aud == FIREBASE_PROJECT_ID
- iss == https://securetoken.google.com/{FIREBASE_PROJECT_ID}
- exp (만료)
- sub (Firebase UID) 존재

설계 원칙:
- 네트워크 오류 / 만료 / 서명 오류 등 모든 실패는 UnauthorizedError 하나로 보고
- 공개키(JWKS)는 공유 캐시(Redis)에 일정 시간 저장하여 매 요청마다 받지 않음
- httpx.Client 주입 가능 (테스트에서는 MockTransport 사용)

관련 파일:
- app.services.auth   : google_auth 흐름
- app.core.cache      : JWKS 캐시

"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from jose import jwt, JWTError

from app.core.cache import RedisCache, make_key
from app.core.config import Settings
from app.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

JWKS_CACHE_KEY = make_key("firebase", "jwks")


@dataclass
class FederatedIdentity:
    uid: str
    email: str
    email_verified: bool
    name: Optional[str] = None
    picture: Optional[str] = None
    phone_number: Optional[str] = None


class FirebaseIdentityVerifier:
    def __init__(self, settings: Settings, cache: RedisCache, client: Optional[httpx.Client] = None):
        self.settings = settings
        self.cache = cache
        self.client = client or httpx.Client(timeout=settings.FIREBASE_TIMEOUT_SECONDS)

    def _get_jwks(self) -> dict:
        jwks = self.cache.get(JWKS_CACHE_KEY)
        if jwks:
            return jwks
        resp = self.client.get(self.settings.FIREBASE_JWKS_URL)
        resp.raise_for_status()
        jwks = resp.json()
        self.cache.set(JWKS_CACHE_KEY, jwks, self.settings.FIREBASE_JWKS_CACHE_SECONDS)
        return jwks

    def verify(self, id_token: str) -> FederatedIdentity:
        project_id = self.settings.FIREBASE_PROJECT_ID
        try:
            if not project_id:
                raise ValueError("FIREBASE_PROJECT_ID is not configured")
            claims = jwt.decode(
                id_token,
                self._get_jwks(),
                algorithms=["RS256"],
                audience=project_id,
                issuer=f"https://securetoken.google.com/{project_id}",
            )
            if not claims.get("sub"):
                raise ValueError("Missing sub claim")
        except (JWTError, httpx.HTTPError, ValueError) as e:
            logger.error("Firebase token verification failed: %s", e)
            raise UnauthorizedError("Invalid or expired Firebase token") from e

        return FederatedIdentity(
            uid=claims["sub"],
            email=claims.get("email") or "",
            email_verified=bool(claims.get("email_verified", False)),
            name=claims.get("name"),
            picture=claims.get("picture"),
            phone_number=claims.get("phone_number"),
        )
