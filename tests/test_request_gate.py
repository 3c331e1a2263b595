# tests/test_request_gate.py
from datetime import timedelta

import fakeredis
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.deps import (
    authorize,
    get_redis,
    optional_current_user,
    require_verified_email,
)
from app.core.errors import AppError, ForbiddenError
from app.core.security import TokenService
from app.main import app as fastapi_app, app_error_handler
from app.models.user import Role, UserType
from app.schemas.user import CurrentUser
from tests.helpers import API, auth_header, get_user, get_user_by_email, signup, signup_and_verify, unique_email


@pytest.fixture()
def gate_client(client):
    """게이트 의존성만 붙인 작은 앱"""
    gate_app = FastAPI()
    gate_app.add_exception_handler(AppError, app_error_handler)

    @gate_app.get("/whoami")
    def whoami(user: CurrentUser | None = Depends(optional_current_user)):
        return {"user": user.username if user else None}

    @gate_app.get("/admin-only")
    def admin_only(user: CurrentUser = Depends(authorize(Role.ADMIN))):
        return {"user": user.username}

    @gate_app.get("/members")
    def members(user: CurrentUser = Depends(authorize(Role.USER, Role.ADMIN))):
        return {"user": user.username}

    # client 픽스처가 메인 앱에 설정한 DB / Redis override 재사용
    gate_app.dependency_overrides.update(fastapi_app.dependency_overrides)
    with TestClient(gate_app) as c:
        yield c


def test_missing_token_rejected(client):
    client.cookies.clear()
    r = client.get(f"{API}/me")
    assert r.status_code == 401
    assert r.json() == {"success": False, "message": "Access token is required"}


def test_invalid_tokens_rejected(client, db):
    user = signup_and_verify(client, db)
    client.cookies.clear()

    assert client.get(f"{API}/me", headers=auth_header("garbage")).status_code == 401
    # Refresh Token은 Access Token으로 사용할 수 없음
    assert client.get(f"{API}/me", headers=auth_header(user["refresh_token"])).status_code == 401

    expired = TokenService(settings).create_access_token(user["user_id"], expires_delta=timedelta(seconds=-10))
    r = client.get(f"{API}/me", headers=auth_header(expired))
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid or expired token"


def test_token_for_unknown_user_rejected(client):
    client.cookies.clear()
    token = TokenService(settings).create_access_token("00000000-0000-0000-0000-000000000000")
    r = client.get(f"{API}/me", headers=auth_header(token))
    assert r.status_code == 401
    assert r.json()["message"] == "User not found"


def test_cookie_fallback(client, db):
    user = signup_and_verify(client, db)
    client.cookies.clear()

    login = client.post(f"{API}/login", json={"email": user["email"], "password": user["password"]})
    assert login.status_code == 200
    assert client.cookies.get(settings.ACCESS_COOKIE_NAME) == login.json()["data"]["token"]["accessToken"]

    me = client.get(f"{API}/me")
    assert me.status_code == 200, me.text
    assert me.json()["data"]["user"]["email"] == user["email"]


def test_unverified_user_rejected(client, db):
    email = unique_email()
    assert signup(client, email=email).status_code == 201
    row = get_user_by_email(db, email)
    token = TokenService(settings).create_access_token(str(row.id))

    r = client.get(f"{API}/me", headers=auth_header(token))
    assert r.status_code == 401


def test_deactivated_and_deleted_users_forbidden(client, db, users, state):
    user = signup_and_verify(client, db)
    client.cookies.clear()
    headers = auth_header(user["access_token"])

    assert client.get(f"{API}/me", headers=headers).status_code == 200
    # 게이트 캐시에 최소 사용자 정보 저장
    cached = state.get_gate_user(user["user_id"])
    assert cached["email"] == user["email"]
    assert set(cached) == {"id", "username", "email", "role", "user_type", "is_email_verified", "is_active"}

    users.update(get_user(db, user["user_id"]), is_active=False)
    assert client.get(f"{API}/me", headers=headers).status_code == 403

    users.update(get_user(db, user["user_id"]), is_active=True)
    users.delete(get_user(db, user["user_id"]))
    assert client.get(f"{API}/me", headers=headers).status_code == 403


def test_optional_current_user(gate_client, client, db):
    user = signup_and_verify(client, db, username="optional_user")

    assert gate_client.get("/whoami").json() == {"user": None}
    assert gate_client.get("/whoami", headers=auth_header("garbage")).json() == {"user": None}

    r = gate_client.get("/whoami", headers=auth_header(user["access_token"]))
    assert r.status_code == 200
    assert r.json() == {"user": "optional_user"}


def test_optional_current_user_ignores_rejected_tokens(gate_client, client, db, users, state):
    revoked = signup_and_verify(client, db, username="revoked_user")
    state.blacklist_token(revoked["access_token"], 60)
    assert gate_client.get("/whoami", headers=auth_header(revoked["access_token"])).json() == {"user": None}

    inactive = signup_and_verify(client, db, username="inactive_user")
    users.update(get_user(db, inactive["user_id"]), is_active=False)
    assert gate_client.get("/whoami", headers=auth_header(inactive["access_token"])).json() == {"user": None}

    email = unique_email()
    assert signup(client, email=email).status_code == 201
    unverified = TokenService(settings).create_access_token(str(get_user_by_email(db, email).id))
    assert gate_client.get("/whoami", headers=auth_header(unverified)).json() == {"user": None}


def test_optional_current_user_when_cache_is_down(gate_client, client, db):
    user = signup_and_verify(client, db)

    server = fakeredis.FakeServer()
    server.connected = False
    gate_client.app.dependency_overrides[get_redis] = lambda: fakeredis.FakeRedis(server=server, decode_responses=True)

    r = gate_client.get("/whoami", headers=auth_header(user["access_token"]))
    assert r.status_code == 200
    assert r.json() == {"user": None}


def test_authorize_roles(gate_client, client, db, users):
    user = signup_and_verify(client, db, username="plain_user")
    headers = auth_header(user["access_token"])

    assert gate_client.get("/members", headers=headers).status_code == 200

    denied = gate_client.get("/admin-only", headers=headers)
    assert denied.status_code == 403
    assert denied.json()["success"] is False

    users.update(get_user(db, user["user_id"]), role=Role.ADMIN)
    allowed = gate_client.get("/admin-only", headers=headers)
    assert allowed.status_code == 200, allowed.text

    assert gate_client.get("/admin-only").status_code == 401


def test_require_verified_email():
    verified = CurrentUser(
        id="00000000-0000-0000-0000-000000000001",
        username="v",
        email="v@test.com",
        role=Role.USER,
        user_type=UserType.REGISTERED,
        is_email_verified=True,
        is_active=True,
    )
    assert require_verified_email(verified) is verified

    with pytest.raises(ForbiddenError):
        require_verified_email(verified.model_copy(update={"is_email_verified": False}))
