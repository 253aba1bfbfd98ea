import os
import tempfile

# Environment must be in place before application modules read it
_TMP_DIR = tempfile.mkdtemp(prefix="allergen_check_tests_")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["LLM_API_KEY"] = ""
os.environ["LOG_FILE"] = os.path.join(_TMP_DIR, "test.log")
os.environ["UPLOADED_IMAGES_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ.pop("SCHEDULER_NODE", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db import models
from db.database import Base, create_db_engine, get_db


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def client(session_factory):
    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    response = client.post("/api/auth/register", json={
        "name": "Test User",
        "email": "testuser@example.com",
        "password": "testpassword",
        "password_confirmation": "testpassword",
    })
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
