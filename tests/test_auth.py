from fastapi.testclient import TestClient

from src.studio.api.main import app
from src.studio.security import auth

from .utils import sign_up


def test_signup_sets_session_cookie_and_me():
    client = TestClient(app)
    res = client.post("/auth/signup", json={"email": "Dev@Example.com", "password": "secret123"})
    assert res.status_code == 200
    assert res.json() == {"type": "success", "message": "Signed up successfully"}
    assert auth.session_cookie_name() in res.cookies

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["email"] == "dev@example.com"
    assert me.json()["type"] == "regular"


def test_signup_duplicate_email_rejected():
    client = TestClient(app)
    sign_up(client, "dup@example.com")
    res = client.post("/auth/signup", json={"email": "dup@example.com", "password": "secret123"})
    assert res.status_code == 400
    assert res.json()["message"] == "User already registered"


def test_signup_validates_password_length():
    client = TestClient(app)
    res = client.post("/auth/signup", json={"email": "short@example.com", "password": "123"})
    assert res.status_code == 400
    assert "password" in res.json()["message"]


def test_signin_success_and_failure():
    client = TestClient(app)
    sign_up(client, "login@example.com")

    fresh = TestClient(app)
    bad = fresh.post("/auth/signin", json={"email": "login@example.com", "password": "wrong-pass"})
    assert bad.status_code == 400
    assert bad.json()["message"] == "Invalid login credentials"

    ok = fresh.post("/auth/signin", json={"email": "login@example.com", "password": "secret123"})
    assert ok.status_code == 200
    assert fresh.get("/auth/me").status_code == 200


def test_me_requires_session():
    res = TestClient(app).get("/auth/me")
    assert res.status_code == 401
    assert res.json()["message"] == "Authentication required"


def test_signout_clears_cookie():
    client = TestClient(app)
    sign_up(client, "bye@example.com")
    res = client.post("/auth/signout")
    assert res.status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_bearer_token_is_accepted():
    user = auth.register_user("bearer@example.com", "secret123")
    token = auth.create_session_token(user)
    res = TestClient(app).get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert res.json()["id"] == user.id


def test_guest_prefix_sets_user_type():
    assert auth.get_user_type("guest-123@example.com") == "guest"
    assert auth.get_user_type("someone@example.com") == "regular"
    assert auth.get_user_type(None) == "guest"


def test_expired_and_tampered_tokens_are_ignored():
    user = auth.register_user("exp@example.com", "secret123")
    expired = auth.create_session_token(user, auth.JwtConfig(secret="dev-secret-change-me", expires_min=-1))
    assert auth.decode_token(expired) is None
    assert auth.decode_token("not-a-token") is None


def test_password_hash_round_trip():
    encoded = auth.hash_password("pa55word")
    assert encoded.startswith("pbkdf2_sha256$")
    assert auth.verify_password("pa55word", encoded)
    assert not auth.verify_password("other", encoded)
    assert not auth.verify_password("pa55word", "garbage")
