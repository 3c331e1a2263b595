# tests/helpers.py
import time
import uuid
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.user import User

API = f"{settings.API_BASE_PATH}/auth"

DEFAULT_PASSWORD = "UserPassw0rd"


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:6]}@test.com"


def get_user(db: Session, user_id: str) -> User:
    # 다른 세션(API 요청)에서 커밋한 값을 다시 읽도록 캐시된 객체 만료
    db.expire_all()
    return db.scalar(select(User).where(User.id == uuid.UUID(str(user_id))))


def get_user_by_email(db: Session, email: str) -> User:
    db.expire_all()
    return db.scalar(select(User).where(User.email == email, User.is_deleted.is_(False)))


def signup(client, *, email: str, password: str = DEFAULT_PASSWORD, username: str = "tester", phone=None):
    body = {"username": username, "email": email, "password": password}
    if phone:
        body["phone"] = phone
    return client.post(f"{API}/signup", json=body)


def signup_and_verify(client, db: Session, *, email: str | None = None, password: str = DEFAULT_PASSWORD,
                      username: str = "tester") -> dict:
    """
    가입 + 이메일 OTP 인증까지 마친 사용자 세팅
    (user_id, email, password, access_token, refresh_token)
    """
    email = email or unique_email()
    reg = signup(client, email=email, password=password, username=username)
    assert reg.status_code == 201, reg.text

    otp = get_user_by_email(db, email).otp_code
    verify = client.post(f"{API}/verify-otp", json={"email": email, "otp": otp, "type": "emailVerification"})
    assert verify.status_code == 200, verify.text
    data = verify.json()["data"]

    return {
        "user_id": data["user"]["id"],
        "email": email,
        "password": password,
        "access_token": data["token"]["accessToken"],
        "refresh_token": data["token"]["refreshToken"],
    }


@dataclass
class FirebaseKeys:
    """Firebase securetoken 대신 사용하는 테스트용 RSA 키"""

    private_pem: str
    public_jwk: dict
    kid: str = "test-key"

    @classmethod
    def generate(cls) -> "FirebaseKeys":
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        private_pem = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode()
        public_pem = key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()
        return cls(private_pem=private_pem, public_jwk=jwk.construct(public_pem, "RS256").to_dict())

    def jwks(self) -> dict:
        return {"keys": [{**self.public_jwk, "kid": self.kid, "use": "sig"}]}

    def sign(self, **claims) -> str:
        project = settings.FIREBASE_PROJECT_ID
        now = int(time.time())
        payload = {
            "iss": f"https://securetoken.google.com/{project}",
            "aud": project,
            "iat": now,
            "exp": now + 3600,
            "sub": claims.pop("sub", uuid.uuid4().hex),
        }
        payload.update(claims)
        return jwt.encode(payload, self.private_pem, algorithm="RS256", headers={"kid": self.kid})
