import os
import tempfile
import uuid
from dataclasses import dataclass

import pytest

# must be set before chat_service.config is imported
DB_PATH = os.path.join(tempfile.gettempdir(), f"wasa_chat_test_{os.getpid()}.db")
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["LOG_LEVEL"] = "WARNING"

from fastapi.testclient import TestClient  # noqa: E402


@dataclass
class ChatUser:
    id: str
    name: str

    @property
    def headers(self):
        return {"Authorization": f"Bearer {self.id}"}


@pytest.fixture(scope="session")
def client():
    if os.path.exists(DB_PATH):
        os.remove(DB_PATH)
    from chat_service.main import app

    with TestClient(app) as test_client:
        yield test_client
    if os.path.exists(DB_PATH):
        os.remove(DB_PATH)


@pytest.fixture
def make_user(client):
    def _make(name=None) -> ChatUser:
        name = name or "u" + uuid.uuid4().hex[:8]
        resp = client.post("/session", json={"name": name})
        assert resp.status_code == 201, resp.text
        return ChatUser(id=resp.json()["identifier"], name=name)

    return _make


@pytest.fixture
def direct_chat(client):
    """Start (or fetch) the direct conversation between two users, return its id."""

    def _start(owner: ChatUser, other: ChatUser) -> str:
        resp = client.post("/conversations", json={"userId": other.id}, headers=owner.headers)
        assert resp.status_code in (200, 201), resp.text
        return resp.json()["id"]

    return _start


@pytest.fixture
def send(client):
    def _send(sender: ChatUser, conversation_id: str, text="hello", **extra):
        body = {"contentType": "text", "text": text, **extra}
        resp = client.post(
            f"/conversations/{conversation_id}/messages", json=body, headers=sender.headers
        )
        assert resp.status_code in (200, 201), resp.text
        return resp.json()

    return _send


@pytest.fixture
def status_of(client):
    """Status of a message as its sender sees it when opening the conversation."""

    def _status(viewer: ChatUser, conversation_id: str, message_id: str) -> str:
        resp = client.get(f"/conversations/{conversation_id}", headers=viewer.headers)
        assert resp.status_code == 200, resp.text
        for message in resp.json()["messages"]:
            if message["id"] == message_id:
                return message["status"]
        raise AssertionError(f"message {message_id} not in conversation")

    return _status
