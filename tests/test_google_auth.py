# tests/test_google_auth.py
import httpx

from app.core.config import settings
from app.core.deps import close_http_clients, get_identity_verifier
from app.main import app as fastapi_app
from tests.helpers import API, FirebaseKeys, get_user, signup_and_verify, unique_email


def test_google_auth_creates_user(client, db, firebase_keys):
    email = unique_email("google")
    id_token = firebase_keys.sign(
        email=email,
        email_verified=True,
        name="Jane Doe",
        picture="https://lh3.googleusercontent.com/jane.png",
    )

    r = client.post(f"{API}/google", json={"idToken": id_token})
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    user = data["user"]
    assert user["email"] == email
    assert user["signupMethod"] == "GOOGLE"
    assert user["userType"] == "REGISTERED"
    assert user["isEmailVerified"] is True
    assert user["username"] == "Jane Doe"
    assert user["profilePicture"] == "https://lh3.googleusercontent.com/jane.png"
    assert get_user(db, user["id"]).refresh_token == data["token"]["refreshToken"]


def test_google_auth_existing_google_user_syncs_profile(client, db, firebase_keys, jwks_requests):
    email = unique_email("google")
    uid = "firebase-uid-1"

    first = client.post(f"{API}/google", json={"idToken": firebase_keys.sign(sub=uid, email=email, email_verified=False)})
    assert first.status_code == 200, first.text
    user = first.json()["data"]["user"]
    assert user["username"] == email.split("@")[0]
    assert user["isEmailVerified"] is False

    second = client.post(
        f"{API}/google",
        json={"idToken": firebase_keys.sign(
            sub=uid,
            email=email,
            email_verified=True,
            name="Synced Name",
            picture="https://lh3.googleusercontent.com/new.png",
        )},
    )
    assert second.status_code == 200, second.text
    synced = second.json()["data"]["user"]
    assert synced["id"] == user["id"]
    assert synced["username"] == "Synced Name"
    assert synced["isEmailVerified"] is True
    assert synced["profilePicture"] == "https://lh3.googleusercontent.com/new.png"

    # 공개키는 캐시되어 한 번만 조회
    assert len(jwks_requests) == 1


def test_google_auth_keeps_custom_username(client, db, firebase_keys):
    email = unique_email("google")
    first = client.post(f"{API}/google", json={"idToken": firebase_keys.sign(email=email, email_verified=True), "username": "custom_name"})
    assert first.status_code == 200, first.text

    second = client.post(f"{API}/google", json={"idToken": firebase_keys.sign(email=email, email_verified=True, name="Other Name")})
    assert second.status_code == 200, second.text
    assert second.json()["data"]["user"]["username"] == "custom_name"


def test_google_auth_conflicts_with_email_signup(client, db, firebase_keys):
    user = signup_and_verify(client, db)

    r = client.post(f"{API}/google", json={"idToken": firebase_keys.sign(email=user["email"], email_verified=True)})
    assert r.status_code == 409, r.text
    assert r.json()["errors"][0]["field"] == "email"


def test_google_auth_rejects_invalid_token(client):
    other_keys = FirebaseKeys.generate()
    forged = other_keys.sign(email=unique_email("google"), email_verified=True)

    r = client.post(f"{API}/google", json={"idToken": forged})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid or expired Firebase token"

    garbage = client.post(f"{API}/google", json={"idToken": "not-a-token"})
    assert garbage.status_code == 401


def test_google_auth_rejects_wrong_audience(client, firebase_keys):
    token = firebase_keys.sign(email=unique_email("google"), email_verified=True, aud="another-project")

    r = client.post(f"{API}/google", json={"idToken": token})
    assert r.status_code == 401


def test_google_auth_requires_email(client, firebase_keys):
    r = client.post(f"{API}/google", json={"idToken": firebase_keys.sign(email_verified=False)})
    assert r.status_code == 400, r.text
    assert r.json()["errors"][0]["field"] == "idToken"


def test_google_auth_deactivated_user_forbidden(client, db, firebase_keys, users):
    email = unique_email("google")
    first = client.post(f"{API}/google", json={"idToken": firebase_keys.sign(email=email, email_verified=True)})
    assert first.status_code == 200, first.text
    users.update(get_user(db, first.json()["data"]["user"]["id"]), is_active=False)

    r = client.post(f"{API}/google", json={"idToken": firebase_keys.sign(email=email, email_verified=True)})
    assert r.status_code == 403


def test_google_auth_reuses_phone_of_deleted_user(client, db, firebase_keys, users):
    old = users.create(username="old_user", email=unique_email(), password="UserPassw0rd", phone="+15550001111")
    users.delete(old)

    email = unique_email("google")
    id_token = firebase_keys.sign(email=email, email_verified=True, phone_number="+15550001111")
    r = client.post(f"{API}/google", json={"idToken": id_token})
    assert r.status_code == 200, r.text
    assert r.json()["data"]["user"]["phone"] == "+15550001111"


def test_google_auth_drops_phone_held_by_active_user(client, db, firebase_keys, users):
    users.create(username="holder", email=unique_email(), password="UserPassw0rd", phone="+15550002222")

    id_token = firebase_keys.sign(email=unique_email("google"), email_verified=True, phone_number="+15550002222")
    r = client.post(f"{API}/google", json={"idToken": id_token})
    assert r.status_code == 200, r.text
    assert r.json()["data"]["user"]["phone"] is None


def test_identity_verifier_shares_http_client(cache):
    close_http_clients()

    first = get_identity_verifier(cache, settings)
    second = get_identity_verifier(cache, settings)
    assert first is not second
    assert first.client is second.client

    close_http_clients()
    assert first.client.is_closed
    assert get_identity_verifier(cache, settings).client is not first.client
    close_http_clients()


def test_auth_requests_do_not_open_http_clients(client, monkeypatch):
    # 실제 get_identity_verifier 사용
    fastapi_app.dependency_overrides.pop(get_identity_verifier)
    close_http_clients()

    created = []
    original_init = httpx.Client.__init__

    def counting_init(self, *args, **kwargs):
        created.append(self)
        original_init(self, *args, **kwargs)

    monkeypatch.setattr(httpx.Client, "__init__", counting_init)

    for _ in range(5):
        r = client.post(f"{API}/login", json={"email": unique_email(), "password": "UserPassw0rd"})
        assert r.status_code == 401

    assert len(created) <= 1
    close_http_clients()
    assert all(c.is_closed for c in created)
