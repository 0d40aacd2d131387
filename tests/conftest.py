import pytest
from fastapi.testclient import TestClient

from urlshort.config import Settings
from urlshort.database import Database
from urlshort.main import create_app

BASE_URL = "http://short.test/"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret="test-secret",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        app_url=BASE_URL,
        bcrypt_rounds=4,
        log_level="WARNING",
    )


@pytest.fixture
def database(settings):
    database = Database(settings)
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def register(client, name="Ada", email="ada@example.com", password="secret1"):
    response = client.post(
        "/api/auth/register", json={"name": name, "email": email, "password": password}
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def auth_headers(client):
    data = register(client)
    return {"Authorization": f"Bearer {data['token']}"}
