from conftest import auth_headers
from models import Role


def test_register(client):
    response = client.post(
        "/api/auth/register",
        json={
            "email": "test@example.com",
            "password": "testpass123",
            "name": "Test User",
            "role": "client",
            "contactPhone": "0712345678"
        }
    )
    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "test@example.com"
    assert data["role"] == "client"
    assert data["contactPhone"] == "254712345678"
    assert "passwordHash" not in data


def test_register_duplicate_email(client, make_user):
    make_user("taken@example.com")
    response = client.post(
        "/api/auth/register",
        json={"email": "taken@example.com", "password": "testpass123", "name": "Again"}
    )
    assert response.status_code == 409
    assert response.json() == {"error": "Email already registered"}


def test_register_admin_forbidden(client):
    response = client.post(
        "/api/auth/register",
        json={"email": "boss@example.com", "password": "testpass123", "name": "Boss", "role": "admin"}
    )
    assert response.status_code == 403


def test_register_validation_error(client):
    response = client.post("/api/auth/register", json={"email": "not-an-email", "password": "x"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert body["details"]


def test_login(client):
    client.post(
        "/api/auth/register",
        json={
            "email": "testlogin@example.com",
            "password": "testpass123",
            "name": "Test User",
            "role": "service_provider"
        }
    )

    response = client.post(
        "/api/auth/login",
        json={"email": "testlogin@example.com", "password": "testpass123"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["tokenType"] == "bearer"
    assert data["user"]["role"] == "service_provider"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['accessToken']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "testlogin@example.com"


def test_login_wrong_password(client, make_user):
    make_user("client@example.com")
    response = client.post(
        "/api/auth/login",
        json={"email": "client@example.com", "password": "wrong-password"}
    )
    assert response.status_code == 401
    assert response.json()["error"] == "Incorrect email or password"


def test_missing_token(client):
    response = client.get("/api/client/requests")
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


def test_invalid_token(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_role_guard(client, make_user):
    provider = make_user("provider@example.com", Role.SERVICE_PROVIDER)
    response = client.get("/api/client/requests", headers=auth_headers(provider))
    assert response.status_code == 403
    assert response.json() == {"error": "Insufficient permissions"}

    client_user = make_user("client@example.com")
    response = client.get("/api/admin/products", headers=auth_headers(client_user))
    assert response.status_code == 403


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
