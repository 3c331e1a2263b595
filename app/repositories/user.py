"""
repositories/user.py

사용자(User) 영속성 어댑터 (Credential Store Adapter).

인증 서비스가 사용자 레코드를 읽고 쓰는 유일한 통로이다.
서비스 계층은 SQLAlchemy 세션을 직접 다루지 않고 이 클래스만 사용한다.

주요 기능:
- 사용자 생성 / 조회 (id, email, phone)
- OTP, Refresh Token, 비밀번호, 프로필 필드 갱신
- Soft Delete (삭제 요청을 is_deleted=True 업데이트로 변환)

설계 원칙:
- 비밀번호는 쓰기 직전에 이 계층에서 해싱 (서비스는 평문만 전달)
- 고유값 충돌(IntegrityError)은 rollback 후 ConflictError로 변환
  (서비스의 사전 중복 체크는 최적화일 뿐, 최종 보장은 DB 제약)
- 쓰기가 끝나면 해당 사용자의 캐시를 무효화
- 트랜잭션은 쓰기 단위로 commit

관련 파일:
- app.models.user          : User 모델
- app.services.auth_state  : 사용자 캐시 무효화
- app.core.security        : 비밀번호 해싱

"""

import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, field_error
from app.core.security import get_password_hash
from app.models.user import User, utcnow
from app.services.auth_state import AuthStateCache


# 고유 제약 이름(PostgreSQL) 또는 "users.<컬럼>"(SQLite) → 충돌 필드
_UNIQUE_FIELDS = {
    "email": ("uq_users_email_active", "users.email"),
    "phone": ("uq_users_phone_active", "users.phone"),
}
_CONFLICT_MESSAGES = {
    "email": "Email already exists",
    "phone": "Phone number already exists",
}


def _conflict_from_integrity_error(exc: IntegrityError) -> Optional[ConflictError]:
    detail = str(exc.orig) if exc.orig is not None else str(exc)
    if "unique" not in detail.lower() and "duplicate" not in detail.lower():
        return None
    for field, markers in _UNIQUE_FIELDS.items():
        if any(marker in detail for marker in markers):
            message = _CONFLICT_MESSAGES[field]
            return ConflictError(message, field_error(field, message))
    return None


def _as_uuid(user_id) -> Optional[uuid.UUID]:
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except (TypeError, ValueError):
        return None


class UserRepository:
    def __init__(self, db: Session, state: AuthStateCache):
        self.db = db
        self.state = state

    # 조회

    def find_by_id(self, user_id, include_deleted: bool = False) -> Optional[User]:
        uid = _as_uuid(user_id)
        if uid is None:
            return None
        stmt = select(User).where(User.id == uid)
        if not include_deleted:
            stmt = stmt.where(User.is_deleted.is_(False))
        return self.db.scalar(stmt)

    def find_by_email(self, email: str, include_deleted: bool = False) -> Optional[User]:
        stmt = select(User).where(User.email == email)
        if not include_deleted:
            return self.db.scalar(stmt.where(User.is_deleted.is_(False)))
        # 활성 계정 우선, 없으면 가장 최근 탈퇴 계정
        return self.db.scalar(
            stmt.order_by(User.is_deleted.asc(), User.created_at.desc()).limit(1)
        )

    def find_by_phone(self, phone: str) -> Optional[User]:
        return self.db.scalar(
            select(User).where(User.phone == phone, User.is_deleted.is_(False))
        )

    # 쓰기

    def _commit(self, user: User) -> User:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            conflict = _conflict_from_integrity_error(e)
            if conflict is None:
                raise
            raise conflict from e
        self.db.refresh(user)
        self.state.invalidate_user(user.id)
        return user

    def create(self, *, username: str, email: str, password: str, **fields: Any) -> User:
        user = User(
            username=username,
            email=email,
            password=get_password_hash(password),
            **fields,
        )
        self.db.add(user)
        return self._commit(user)

    """
    공통 부분 업데이트

    - password 필드가 포함되면 해싱 후 저장
    - None 값도 그대로 반영 (필드 초기화 용도)

    """

    def update(self, user: User, **fields: Any) -> User:
        if "password" in fields and fields["password"] is not None:
            fields["password"] = get_password_hash(fields["password"])
        for name, value in fields.items():
            setattr(user, name, value)
        return self._commit(user)

    def update_otp(self, user: User, otp_code: str, otp_expires_at) -> User:
        return self.update(user, otp_code=otp_code, otp_expires_at=otp_expires_at)

    def clear_otp(self, user: User) -> User:
        return self.update(user, otp_code=None, otp_expires_at=None)

    def verify_email(self, user: User) -> User:
        return self.update(user, is_email_verified=True, otp_code=None, otp_expires_at=None)

    def update_password(self, user: User, password: str) -> User:
        return self.update(user, password=password, otp_code=None, otp_expires_at=None)

    def update_refresh_token(self, user: User, refresh_token: Optional[str]) -> User:
        return self.update(user, refresh_token=refresh_token)

    """
    Soft Delete

    - 실제 row는 삭제하지 않고 is_deleted / deleted_at 만 기록
    - 저장된 Refresh Token도 함께 제거

    """

    def delete(self, user: User) -> User:
        return self.update(user, is_deleted=True, deleted_at=utcnow(), refresh_token=None)
