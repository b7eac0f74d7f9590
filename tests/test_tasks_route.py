import json

import httpx
import pytest
from fastapi.testclient import TestClient

from deckproxy.api.routes.tasks import get_upstream
from deckproxy.main import app
from deckproxy.services.upstream import UpstreamClient


class FakeAPI:
    def __init__(self, handler):
        self.handler = handler
        self.seen = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.seen.append(request)
        return self.handler(request)


@pytest.fixture
def api_client():
    def make(handler):
        fake = FakeAPI(handler)
        upstream = UpstreamClient("https://api.test/v1", transport=httpx.MockTransport(fake))
        app.dependency_overrides[get_upstream] = lambda: upstream
        return TestClient(app), fake
    yield make
    app.dependency_overrides.clear()


def test_create_task_forwards_defaults_and_bearer(api_client):
    client, fake = api_client(lambda req: httpx.Response(200, json={"id": "t_1"}))

    r = client.post("/api/create-task", json={"api_key": "k", "prompt": "make slides"})
    assert r.status_code == 200
    assert r.json() == {"id": "t_1"}

    (req,) = fake.seen
    assert req.method == "POST"
    assert str(req.url) == "https://api.test/v1/tasks"
    assert req.headers["authorization"] == "Bearer k"
    assert json.loads(req.content) == {
        "prompt": "make slides",
        "agent_profile": "manus-1.6-max",
        "task_mode": "agent",
    }


def test_create_task_requires_key_and_prompt(api_client):
    client, fake = api_client(lambda req: httpx.Response(200, json={}))
    assert client.post("/api/create-task", json={"prompt": "x"}).status_code == 400
    r = client.post("/api/create-task", json={"api_key": "k"})
    assert r.status_code == 400
    assert "error" in r.json()
    assert fake.seen == []


def test_upstream_error_status_and_message_are_forwarded(api_client):
    client, _ = api_client(lambda req: httpx.Response(401, json={"error": {"message": "bad key"}}))
    r = client.post("/api/get-task/t_9", json={"api_key": "nope"})
    assert r.status_code == 401
    assert r.json() == {"error": "bad key"}


def test_transport_error_is_500(api_client):
    def boom(req):
        raise httpx.ConnectError("down", request=req)

    client, _ = api_client(boom)
    r = client.post("/api/list-files", json={"api_key": "k"})
    assert r.status_code == 500
    assert "down" in r.json()["error"]


def test_upload_file(api_client):
    client, fake = api_client(lambda req: httpx.Response(200, json={"id": "file_7"}))
    r = client.post(
        "/api/upload-file",
        data={"api_key": "k"},
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert r.status_code == 200
    assert r.json() == {"file_id": "file_7", "filename": "notes.txt"}
    (req,) = fake.seen
    assert str(req.url) == "https://api.test/v1/files"
    assert b"hello" in req.content


def test_upload_file_requires_file(api_client):
    client, _ = api_client(lambda req: httpx.Response(200, json={}))
    r = client.post("/api/upload-file", data={"api_key": "k"})
    assert r.status_code == 400
    assert r.json() == {"error": "Missing file"}


def test_delete_file(api_client):
    client, fake = api_client(lambda req: httpx.Response(204))
    r = client.request("DELETE", "/api/delete-file/file_7", json={"api_key": "k"})
    assert r.status_code == 200
    assert r.json() == {"success": True}
    assert fake.seen[0].method == "DELETE"
    assert str(fake.seen[0].url) == "https://api.test/v1/files/file_7"


def test_non_json_success_body_is_500_error(api_client):
    client, _ = api_client(lambda req: httpx.Response(200, text="<html>ok</html>"))
    r = client.post("/api/list-files", json={"api_key": "k"})
    assert r.status_code == 500
    assert r.headers["content-type"].startswith("application/json")
    assert "invalid upstream response" in r.json()["error"]
