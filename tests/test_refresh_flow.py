# tests/test_refresh_flow.py
from datetime import timedelta

from app.core.config import settings
from app.core.security import TokenService
from tests.helpers import API, auth_header, get_user, signup_and_verify


def test_refresh_token_rotation_and_revocation(client, db):
    user = signup_and_verify(client, db)
    refresh1 = user["refresh_token"]

    r1 = client.post(f"{API}/refresh-token", json={"refreshToken": refresh1})
    assert r1.status_code == 200, r1.text
    tokens = r1.json()["data"]["token"]
    access2, refresh2 = tokens["accessToken"], tokens["refreshToken"]
    assert access2
    assert refresh2 and refresh2 != refresh1
    assert get_user(db, user["user_id"]).refresh_token == refresh2

    # 이미 교체된 Refresh Token 재사용 불가
    r_old = client.post(f"{API}/refresh-token", json={"refreshToken": refresh1})
    assert r_old.status_code == 401
    assert r_old.json()["message"] == "Invalid refresh token"

    logout = client.post(f"{API}/logout", json={"refreshToken": refresh2}, headers=auth_header(access2))
    assert logout.status_code == 200, logout.text
    assert logout.json()["success"] is True
    assert get_user(db, user["user_id"]).refresh_token is None

    # 로그아웃된 Refresh Token은 블랙리스트
    r_after = client.post(f"{API}/refresh-token", json={"refreshToken": refresh2})
    assert r_after.status_code == 401
    assert r_after.json()["message"] == "Token has been revoked"


def test_logout_revokes_access_token(client, db, state):
    user = signup_and_verify(client, db)
    client.cookies.clear()
    headers = auth_header(user["access_token"])

    assert client.get(f"{API}/me", headers=headers).status_code == 200

    logout = client.post(f"{API}/logout", json={"refreshToken": user["refresh_token"]}, headers=headers)
    assert logout.status_code == 200, logout.text
    assert state.is_token_blacklisted(user["refresh_token"])
    assert state.is_token_blacklisted(user["access_token"])

    me = client.get(f"{API}/me", headers=headers)
    assert me.status_code == 401
    assert me.json()["message"] == "Token has been revoked"


def test_logout_rejects_refresh_token_of_another_user(client, db):
    alice = signup_and_verify(client, db, username="alice")
    bob = signup_and_verify(client, db, username="bob")

    r = client.post(f"{API}/logout", json={"refreshToken": bob["refresh_token"]}, headers=auth_header(alice["access_token"]))
    assert r.status_code == 401
    assert get_user(db, bob["user_id"]).refresh_token == bob["refresh_token"]


def test_logout_requires_authentication(client, db):
    user = signup_and_verify(client, db)
    client.cookies.clear()

    r = client.post(f"{API}/logout", json={"refreshToken": user["refresh_token"]})
    assert r.status_code == 401


def test_refresh_rejects_access_token_and_garbage(client, db):
    user = signup_and_verify(client, db)

    wrong_type = client.post(f"{API}/refresh-token", json={"refreshToken": user["access_token"]})
    assert wrong_type.status_code == 401

    garbage = client.post(f"{API}/refresh-token", json={"refreshToken": "not-a-jwt"})
    assert garbage.status_code == 401
    assert garbage.json()["message"] == "Invalid or expired refresh token"


def test_refresh_deactivated_user_forbidden(client, db, users):
    user = signup_and_verify(client, db)
    users.update(get_user(db, user["user_id"]), is_active=False)

    r = client.post(f"{API}/refresh-token", json={"refreshToken": user["refresh_token"]})
    assert r.status_code == 403


def test_logout_with_expired_refresh_token_does_not_blacklist(client, db, state):
    user = signup_and_verify(client, db)
    expired = TokenService(settings).create_refresh_token(user["user_id"], expires_delta=timedelta(seconds=-10))

    r = client.post(f"{API}/logout", json={"refreshToken": expired}, headers=auth_header(user["access_token"]))
    assert r.status_code == 200, r.text
    assert state.is_token_blacklisted(expired) is False
    assert get_user(db, user["user_id"]).refresh_token is None
