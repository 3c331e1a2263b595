import os

# app 설정은 import 시점에 로드되므로 먼저 테스트용 환경 변수 세팅
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-access-secret")
os.environ.setdefault("REFRESH_SECRET_KEY", "test-refresh-secret")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("FIREBASE_PROJECT_ID", "test-project")

import fakeredis
import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app as fastapi_app
from app.core.cache import RedisCache
from app.core.config import settings
from app.core.deps import get_db, get_identity_verifier, get_redis
from app.core.identity import FirebaseIdentityVerifier
from app.db.base import Base
from app.repositories.user import UserRepository
from app.services.auth_state import AuthStateCache
from app.services.notifications import EmailQueue

# ✅ 모델 import (Base.metadata에 테이블 등록)
import app.models.user  # noqa: F401

from tests.helpers import FirebaseKeys


TEST_DB_URL = settings.TEST_DATABASE_URL or "sqlite://"

if TEST_DB_URL.startswith("sqlite"):
    # 인메모리 SQLite: 모든 세션이 같은 연결을 공유해야 데이터가 보임
    engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool)
else:
    engine = create_engine(TEST_DB_URL, pool_pre_ping=True)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """테스트 전체 시작/종료 때만 스키마 생성/삭제"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    """각 테스트마다 데이터 초기화 (테이블은 유지, row만 삭제)"""
    with engine.begin() as conn:
        conn.execute(text("DELETE FROM users"))


@pytest.fixture()
def db():
    """테스트에서 직접 DB 조작할 때 쓰는 세션"""
    session = TestingSessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def redis_client():
    """테스트마다 새 인메모리 Redis"""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def cache(redis_client):
    return RedisCache(redis_client, prefix=settings.CACHE_PREFIX)


@pytest.fixture()
def state(cache):
    return AuthStateCache(cache, settings)


@pytest.fixture()
def users(db, state):
    return UserRepository(db, state)


@pytest.fixture()
def email_queue(redis_client):
    return EmailQueue(redis_client, settings)


@pytest.fixture(scope="session")
def firebase_keys():
    return FirebaseKeys.generate()


@pytest.fixture()
def jwks_requests():
    """JWKS 엔드포인트 호출 기록"""
    return []


@pytest.fixture()
def identity_verifier(cache, firebase_keys, jwks_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        jwks_requests.append(str(request.url))
        return httpx.Response(200, json=firebase_keys.jwks())

    http = httpx.Client(transport=httpx.MockTransport(handler))
    return FirebaseIdentityVerifier(settings, cache, client=http)


@pytest.fixture()
def client(redis_client, identity_verifier):
    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_redis] = lambda: redis_client
    fastapi_app.dependency_overrides[get_identity_verifier] = lambda: identity_verifier
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()
