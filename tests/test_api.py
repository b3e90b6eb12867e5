"""
Tests for the HTTP surface.
"""

import pytest
from fastapi.testclient import TestClient

from orderdesk.main import app
from orderdesk.ordering import messages as msg

API_KEY = {"X-Api-Key": "test-key"}


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def _token(client, identity, name="Ana"):
    resp = client.post("/auth/token", json={"identity": identity, "name": name}, headers=API_KEY)
    assert resp.status_code == 200
    return resp.json()["token"]


def _chat(client, token, text):
    return client.post("/chat", json={"message": text}, headers={"Authorization": f"Bearer {token}"})


class TestHealth:

    def test_root(self, client):
        assert client.get("/").json() == {"ok": True, "service": "orderdesk"}


class TestAuth:

    def test_token_needs_api_key(self, client):
        resp = client.post("/auth/token", json={"identity": "api-1", "name": "Ana"})
        assert resp.status_code == 401

    def test_chat_needs_bearer(self, client):
        assert client.post("/chat", json={"message": "hola"}).status_code == 401

    def test_chat_rejects_bad_token(self, client):
        resp = client.post("/chat", json={"message": "hola"}, headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestChat:

    def test_conversation_over_http(self, client):
        token = _token(client, "api-chat-1")

        first = _chat(client, token, "hola").json()
        assert first == {"replies": [msg.MAIN_MENU], "step": "inicio"}

        second = _chat(client, token, "1").json()
        assert second["step"] == "nombre"
        assert second["replies"] == [msg.ASK_CUSTOMER]

        reset = _chat(client, token, "000").json()
        assert reset["step"] == "inicio"

    def test_ended_session_reports_no_step(self, client):
        token = _token(client, "api-chat-2", name="Nadie Todavia")
        _chat(client, token, "hola")
        body = _chat(client, token, "2").json()
        assert body == {"replies": [msg.NO_ORDERS], "step": None}


class TestCatalog:

    def test_list(self, client):
        items = client.get("/catalog").json()
        assert len(items) == 20
        assert items[0]["code"] == "MOIL15W40"

    def test_search(self, client):
        results = client.get("/catalog/search", params={"q": "mobil 15w40"}).json()
        assert results[0]["item"]["code"] == "MOIL15W40"
        scores = [r["score"] for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_reload(self, client):
        assert client.post("/catalog/reload").status_code == 401
        body = client.post("/catalog/reload", headers=API_KEY).json()
        assert body == {"ok": True, "items": 20, "addresses": 3}
