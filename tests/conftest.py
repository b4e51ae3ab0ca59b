# tests/conftest.py

import os

# Point the app at a private in-memory database before anything imports app.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("AUTH_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from app.client.sync import TaskSyncCore
from app.db import config as db_config
from app.db.init import init_db
from app.main import app
from app.realtime.broadcaster import task_change_broadcaster

from .fakes import FakeGateway, FakeSubscriber


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def subscriber() -> FakeSubscriber:
    return FakeSubscriber()


@pytest.fixture()
def core(gateway: FakeGateway, subscriber: FakeSubscriber) -> TaskSyncCore:
    """Sync Core wired with in-memory fakes."""
    return TaskSyncCore(gateway, subscriber)


@pytest.fixture()
def api():
    """
    TestClient over a fresh database.

    Every test starts from empty tables and no open feed connections.
    """
    SQLModel.metadata.drop_all(db_config.engine)
    init_db()
    task_change_broadcaster.user_connections.clear()
    with TestClient(app) as client:
        yield client


def register(client: TestClient, email: str = "ana@example.com", password: str = "secret123"):
    """Register an account and return (auth headers, user)."""
    response = client.post("/auth/sign-up", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    body = response.json()
    return {"Authorization": f"Bearer {body['token']}"}, body["user"]


@pytest.fixture()
def sign_up(api):
    """Callable registering an account on the test API."""
    def _sign_up(email: str = "ana@example.com", password: str = "secret123"):
        return register(api, email, password)
    return _sign_up


@pytest.fixture()
def auth_headers(sign_up):
    headers, _ = sign_up()
    return headers
