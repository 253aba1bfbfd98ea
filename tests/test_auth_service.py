import pytest

from services.auth_service import (
    EmailAlreadyRegistered,
    authenticate_user,
    create_access_token,
    create_user,
    get_password_hash,
    verify_password,
)


def test_password_hashing():
    hashed = get_password_hash("testpassword")
    assert hashed != "testpassword"
    assert verify_password("testpassword", hashed)
    assert not verify_password("wrongpassword", hashed)


def test_create_and_authenticate_user(db_session):
    user = create_user(db_session, "testuser", "TestUser@Example.com", "testpassword")

    assert user.email == "testuser@example.com"
    assert authenticate_user(db_session, "testuser@example.com", "testpassword").id == user.id
    assert authenticate_user(db_session, "testuser@example.com", "nope") is None
    assert authenticate_user(db_session, "missing@example.com", "testpassword") is None


def test_duplicate_email_rejected(db_session):
    create_user(db_session, "testuser", "testuser@example.com", "testpassword")
    with pytest.raises(EmailAlreadyRegistered):
        create_user(db_session, "other", "TESTUSER@example.com", "testpassword")


def test_register_user(client):
    response = client.post("/api/auth/register", json={
        "name": "testuser", "email": "testuser@example.com", "password": "testpassword",
    })
    assert response.status_code == 200
    assert "access_token" in response.json()
    assert response.json()["token_type"] == "bearer"


def test_register_validation(client):
    short = client.post("/api/auth/register", json={
        "name": "testuser", "email": "testuser@example.com", "password": "short",
    })
    mismatch = client.post("/api/auth/register", json={
        "name": "testuser", "email": "testuser@example.com", "password": "testpassword",
        "password_confirmation": "different1",
    })
    assert short.status_code == 422
    assert mismatch.status_code == 422


def test_register_duplicate_email(client, auth_headers):
    response = client.post("/api/auth/register", json={
        "name": "again", "email": "testuser@example.com", "password": "testpassword",
    })
    assert response.status_code == 422


def test_login_user(client, auth_headers):
    response = client.post("/api/auth/login", data={"username": "testuser@example.com", "password": "testpassword"})
    assert response.status_code == 200
    assert "access_token" in response.json()

    wrong = client.post("/api/auth/login", data={"username": "testuser@example.com", "password": "wrong"})
    assert wrong.status_code == 401


def test_get_current_user(client, auth_headers):
    response = client.get("/api/auth/user", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["name"] == "Test User"
    assert response.json()["email"] == "testuser@example.com"


def test_token_in_query_parameter(client, auth_headers):
    token = auth_headers["Authorization"].split(" ", 1)[1]
    response = client.get(f"/api/auth/user?token={token}")
    assert response.status_code == 200


def test_invalid_token(client):
    response = client.get("/api/auth/user", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert client.get("/api/auth/user").status_code == 401


def test_token_for_unknown_user(client):
    token = create_access_token({"sub": "ghost@example.com"})
    response = client.get("/api/auth/user", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
