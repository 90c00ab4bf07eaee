"""
Tests for the /api/auth endpoints.
"""
from app.db.models import RefreshToken, User

SIGNUP = {
    "email": "test_signup@example.com",
    "password": "testpass123",
    "first_name": "Test",
    "last_name": "User",
    "user_type": "candidate",
}


def signup(client, **overrides):
    return client.post("/api/auth/register", json={**SIGNUP, **overrides})


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def test_signup_success(client, db, notifier):
    """Test successful user registration."""
    response = signup(client)

    assert response.status_code == 201
    data = response.json()
    assert data["access"] and data["refresh"]
    assert data["user"]["email"] == "test_signup@example.com"
    assert data["user"]["plan"] == "free"
    assert data["user"]["username"].startswith("test-user-")
    assert data["user"]["membership_config"] is None
    assert "password_hash" not in data["user"]

    user = db.query(User).filter(User.email == "test_signup@example.com").first()
    assert user is not None
    assert notifier.sent == [("welcome", "test_signup@example.com")]


def test_signup_duplicate_email(client):
    """Test signup with duplicate email returns 409."""
    signup(client)
    response = signup(client, email="TEST_SIGNUP@example.com")
    assert response.status_code == 409
    assert response.json() == {"error": "Email already registered"}


def test_signup_validation_errors_are_400(client):
    response = signup(client, password="short")
    assert response.status_code == 400
    body = response.json()
    assert "Password must be at least 8 characters" in body["error"]
    assert body["details"][0]["field"] == "password"

    assert signup(client, email="not-an-email").status_code == 400
    assert signup(client, user_type="admin").status_code == 400


def test_login_success(client):
    signup(client)
    response = client.post("/api/auth/login", json={"email": SIGNUP["email"], "password": SIGNUP["password"]})
    assert response.status_code == 200
    assert response.json()["user"]["user_type"] == "candidate"


def test_login_wrong_password(client):
    signup(client)
    response = client.post("/api/auth/login", json={"email": SIGNUP["email"], "password": "wrongpass"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password"}


def test_login_nonexistent_user(client):
    response = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "whatever1"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password"}


def test_refresh_rotates_and_old_token_dies(client):
    tokens = signup(client).json()

    first = client.post("/api/auth/refresh", json={"refresh": tokens["refresh"]})
    assert first.status_code == 200
    assert set(first.json()) == {"access", "refresh"}

    replay = client.post("/api/auth/refresh", json={"refresh": tokens["refresh"]})
    assert replay.status_code == 401


def test_refresh_with_garbage_token(client):
    response = client.post("/api/auth/refresh", json={"refresh": "garbage"})
    assert response.status_code == 401


def test_verify_returns_current_user(client):
    tokens = signup(client).json()
    response = client.get("/api/auth/verify", headers=auth_header(tokens["access"]))
    assert response.status_code == 200
    assert response.json()["user"]["id"] == tokens["user"]["id"]


def test_verify_requires_token(client):
    assert client.get("/api/auth/verify").status_code == 401
    response = client.get("/api/auth/verify", headers=auth_header("bad.token.here"))
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or expired token"}


def test_refresh_token_is_not_an_access_token(client):
    tokens = signup(client).json()
    response = client.get("/api/auth/verify", headers=auth_header(tokens["refresh"]))
    assert response.status_code == 401


def test_logout_revokes_refresh_token(client, db):
    tokens = signup(client).json()
    headers = auth_header(tokens["access"])

    assert client.post("/api/auth/logout", json={"refresh": tokens["refresh"]}, headers=headers).status_code == 200
    # Second logout is a no-op, not an error
    assert client.post("/api/auth/logout", json={"refresh": tokens["refresh"]}, headers=headers).status_code == 200
    assert client.post("/api/auth/logout", headers=headers).status_code == 200

    row = db.query(RefreshToken).filter(RefreshToken.token == tokens["refresh"]).first()
    assert row.revoked is True
    assert client.post("/api/auth/refresh", json={"refresh": tokens["refresh"]}).status_code == 401


def test_delete_account(client, db):
    tokens = signup(client).json()
    response = client.delete("/api/auth/account", headers=auth_header(tokens["access"]))
    assert response.status_code == 200
    assert db.query(User).count() == 0
    assert db.query(RefreshToken).count() == 0

    # Access token outlives the account but no longer resolves to a user
    assert client.get("/api/auth/verify", headers=auth_header(tokens["access"])).status_code == 401


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["database"] == "connected"


def test_signup_accepts_camel_case_fields(client):
    response = client.post("/api/auth/register", json={
        "email": "camel@example.com",
        "password": "testpass123",
        "firstName": "Cam",
        "lastName": "Case",
        "userType": "vendor",
    })
    assert response.status_code == 201
    user = response.json()["user"]
    assert user["user_type"] == "vendor"
    assert user["first_name"] == "Cam"
    assert user["username"].startswith("cam-case-")


def test_signup_camel_case_role_is_validated(client):
    response = client.post("/api/auth/register", json={
        "email": "camel@example.com", "password": "testpass123", "userType": "admin",
    })
    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "userType"
