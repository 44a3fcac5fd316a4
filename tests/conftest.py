import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main


@pytest.fixture
def mock_db(monkeypatch):
    test_db = mongomock.MongoClient()["studentrecords_test"]
    database.ensure_indexes(test_db)
    monkeypatch.setattr(main, "db", test_db)
    return test_db


@pytest.fixture
def client(mock_db):
    return TestClient(main.app)


def register(client, username="admin", password="secret123", email=None):
    body = {"username": username, "password": password}
    if email:
        body["email"] = email
    res = client.post("/api/auth/register", json=body)
    assert res.status_code == 201, res.text
    return res.json()


@pytest.fixture
def auth(client):
    token = register(client, email="admin@example.com")["token"]
    return {"Authorization": f"Bearer {token}"}
