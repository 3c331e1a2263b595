"""

ADMIN 초기 계정 생성 스크립트.

- 서버 최초 세팅 시 단 한 번 실행하는 용도
- .env에 정의된 ADMIN_* 환경 변수를 읽어
  이메일 인증이 완료된 ADMIN 계정을 생성한다.
- 이미 ADMIN 계정이 존재하면 생성하지 않고 종료한다.

환경 변수:
- ADMIN_EMAIL     (필수)
- ADMIN_PASSWORD  (필수)
- ADMIN_USERNAME  (기본값 admin)

사용 방법
- 가상환경 접속
- (.venv) ~\backend~$ python -m scripts.create_admin

"""

import os
from dotenv import load_dotenv
load_dotenv()

from sqlalchemy import select

from app.core.cache import RedisCache, create_redis_client
from app.core.config import settings
from app.db.session import SessionLocal
from app.models.user import Role, User, UserType
from app.repositories.user import UserRepository
from app.services.auth_state import AuthStateCache


def create_admin(users: UserRepository, *, email: str, password: str, username: str = "admin") -> tuple[User, bool]:
    exists = users.db.scalar(
        select(User).where(User.role == Role.ADMIN, User.is_deleted.is_(False))
    )
    if exists:
        return exists, False

    email = email.strip().lower()
    if users.find_by_email(email):
        raise RuntimeError("Email already exists but is not ADMIN")

    user = users.create(
        username=username,
        email=email,
        password=password,
        role=Role.ADMIN,
        user_type=UserType.REGISTERED,
        is_email_verified=True,
    )
    return user, True


def main():
    db = SessionLocal()
    state = AuthStateCache(RedisCache(create_redis_client(settings.REDIS_URL), settings.CACHE_PREFIX), settings)
    try:
        user, created = create_admin(
            UserRepository(db, state),
            email=os.environ["ADMIN_EMAIL"],
            password=os.environ["ADMIN_PASSWORD"],
            username=os.environ.get("ADMIN_USERNAME", "admin"),
        )
        if not created:
            print(f"✅ ADMIN already exists ({user.email}). Skip creation.")
            return

        print(f"🚀 ADMIN created: {user.email}")

    finally:
        db.close()


if __name__ == "__main__":
    main()
