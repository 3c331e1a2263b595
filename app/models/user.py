"""
user.py

사용자(User) 및 관련 Enum(Role, UserType, SignupMethod) 모델 정의 파일.

이 파일은 회원의 기본 정보와
권한(Role), 계정 유형(게스트/정회원), 가입 방식(이메일/구글),
탈퇴 상태(Soft Delete), 인증 관련 정보(OTP, Refresh Token)를 관리한다.

모든 인증 / 권한 기능의 기준이 되는 핵심 모델이다.

"""

import uuid
import datetime
from enum import Enum

from sqlalchemy import String, Boolean, DateTime, Index, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# SQLite 등 timezone을 보존하지 않는 DB에서 읽은 값은 UTC로 간주
def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


"""
사용자 권한(Role) 정의

- USER   : 일반 사용자
- ADMIN  : 관리자

"""

class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


"""
계정 유형(UserType) 정의

- GUEST      : 이메일 인증 없이 바로 사용하는 임시 계정
- REGISTERED : 이메일 / 구글로 가입한 정식 계정

"""

class UserType(str, Enum):
    GUEST = "GUEST"
    REGISTERED = "REGISTERED"


class SignupMethod(str, Enum):
    EMAIL = "EMAIL"
    GOOGLE = "GOOGLE"


"""
사용자(User) 모델

- email 은 탈퇴하지 않은 사용자 사이에서 고유 (partial unique index)
- phone 은 선택 값, 입력 시 탈퇴하지 않은 사용자 사이에서 고유
- password 는 항상 bcrypt 해시 (UserRepository가 저장 직전에 해싱)
- otp_code / otp_expires_at 은 캐시가 없을 때 사용하는 OTP 보조 저장소
- refresh_token 은 현재 유효한 Refresh Token 하나만 저장 (재발급 시 교체)
- is_deleted / deleted_at 으로 Soft Delete 지원

"""

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index(
            "uq_users_email_active",
            "email",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
        Index(
            "uq_users_phone_active",
            "phone",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    username: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    password: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[Role] = mapped_column(default=Role.USER)
    user_type: Mapped[UserType] = mapped_column(default=UserType.REGISTERED)
    signup_method: Mapped[SignupMethod] = mapped_column(default=SignupMethod.EMAIL)

    is_email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    deleted_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    otp_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    otp_expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    refresh_token: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    profile_picture: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
