import json

import pytest
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from starlette.requests import Request

from coachgate.config.settings import settings
from coachgate.core import dispatcher as dispatcher_module
from coachgate.core import gateway


def _build_request(path: str, method: str) -> Request:
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "query_string": b"",
        "headers": [(b"origin", b"capacitor://localhost")],
        "client": ("10.0.0.5", 50000),
        "server": ("testserver", 80),
    }

    async def receive() -> dict:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


async def _must_not_run(_request: Request):
    raise AssertionError("preflight must be answered by the middleware")


async def _allow_next(_request: Request):
    return JSONResponse(status_code=404, content={"detail": "Not Found"})


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/chat", "/anything/else"])
async def test_options_answers_preflight_for_any_path(path):
    response = await gateway.cors_middleware(_build_request(path, "OPTIONS"), _must_not_run)

    assert response.status_code == 200
    assert json.loads(response.body.decode("utf-8")) == {"ok": True}
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"


@pytest.mark.asyncio
async def test_non_preflight_responses_gain_allow_origin():
    response = await gateway.cors_middleware(_build_request("/missing", "GET"), _allow_next)

    assert response.status_code == 404
    assert response.headers["access-control-allow-origin"] == "*"


def test_health():
    assert gateway.health() == {"status": "ok"}


@pytest.fixture
def client():
    return TestClient(gateway.app)


def test_post_reaches_chat_route(monkeypatch, client):
    async def fake_forward_json(url, payload, headers, client=None):
        return 200, json.dumps({"output_text": "hello"})

    monkeypatch.setattr(dispatcher_module, "_forward_json", fake_forward_json)
    original_key = settings.openai_api_key
    settings.openai_api_key = "sk-test"
    try:
        response = client.post(settings.chat_path, json={"messages": [{"role": "user", "text": "hi"}]})
    finally:
        settings.openai_api_key = original_key

    assert response.status_code == 200
    assert response.json() == {"reply": "hello"}
    assert response.headers["access-control-allow-origin"] == "*"


@pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE", "TRACE", "PROPFIND"])
def test_other_methods_on_chat_path_return_use_post(client, method):
    response = client.request(method, settings.chat_path)

    assert response.status_code == 405
    assert response.json() == {"error": "Use POST"}
    assert response.headers["access-control-allow-origin"] == "*"


def test_head_on_chat_path_is_not_allowed(client):
    response = client.head(settings.chat_path)

    assert response.status_code == 405


def test_options_through_app_returns_ok(client):
    response = client.options(settings.chat_path)

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_health_through_app(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["access-control-allow-origin"] == "*"
