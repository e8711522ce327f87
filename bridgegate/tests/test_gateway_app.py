import json
import uuid

import httpx
import pytest
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from starlette.requests import Request

from bridgegate.config.settings import Settings
from bridgegate.core import gateway

BACKEND_OK = {
    "id": "abc",
    "model": "m",
    "choices": [{"message": {"content": "hello"}, "finish_reason": "length"}],
    "usage": {"prompt_tokens": 3, "completion_tokens": 1},
}
MESSAGES_PAYLOAD = {"model": "m", "messages": [{"role": "user", "content": "hi"}]}


def _config(**overrides) -> Settings:
    values = {"provider_name": "Z.AI", "base_url": "https://api.example.com/v4", "provider_token": "sk-backend"}
    values.update(overrides)
    return Settings(**values)


def _client(config: Settings, calls: list | None = None) -> TestClient:
    def backend(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(json.loads(request.content))
        return httpx.Response(200, json=BACKEND_OK)

    return TestClient(gateway.create_app(config, transport=httpx.MockTransport(backend)))


def test_health_without_auth():
    with _client(_config()) as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "provider": "Z.AI"}


def test_health_is_exempt_from_auth():
    with _client(_config(auth_required=True, proxy_auth_token="T")) as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_messages_round_trip_through_app():
    calls: list = []
    with _client(_config(), calls) as client:
        response = client.post("/v1/messages", json=MESSAGES_PAYLOAD)
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == "msg_abc"
    assert body["stop_reason"] == "max_tokens"
    assert calls == [{"model": "m", "messages": [{"role": "user", "content": "hi"}]}]


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer wrong"},
        {"Authorization": "T"},
        {"Authorization": "bearer T"},
    ],
)
def test_auth_rejections_are_uniform(headers):
    calls: list = []
    with _client(_config(auth_required=True, proxy_auth_token="T"), calls) as client:
        response = client.post("/v1/messages", json=MESSAGES_PAYLOAD, headers=headers)
    assert response.status_code == 401
    body = response.json()
    assert body["error"]["type"] == "authentication_error"
    assert body["error"]["message"] == "invalid or missing proxy credentials"
    assert response.headers["x-request-id"]
    assert calls == []


def test_auth_accepts_matching_bearer():
    with _client(_config(auth_required=True, proxy_auth_token="T")) as client:
        response = client.post("/v1/messages", json=MESSAGES_PAYLOAD, headers={"Authorization": "Bearer T"})
    assert response.status_code == 200


def test_auth_required_without_token_stays_open():
    with _client(_config(auth_required=True, proxy_auth_token="")) as client:
        response = client.post("/v1/messages", json=MESSAGES_PAYLOAD)
    assert response.status_code == 200


def test_wrong_method_is_405():
    with _client(_config()) as client:
        response = client.get("/v1/messages")
    assert response.status_code == 405
    assert response.headers["allow"] == "POST"
    assert response.json()["error"]["code"] == "method_not_allowed"


def test_wrong_method_checks_auth_first():
    with _client(_config(auth_required=True, proxy_auth_token="T")) as client:
        response = client.get("/v1/messages")
    assert response.status_code == 401


def test_request_id_is_echoed():
    with _client(_config()) as client:
        response = client.post("/v1/messages", json=MESSAGES_PAYLOAD, headers={"X-Request-ID": "trace-42"})
    assert response.headers["x-request-id"] == "trace-42"


def test_request_id_is_generated_and_matches_error_body():
    with _client(_config()) as client:
        response = client.post("/v1/messages", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    generated = response.headers["x-request-id"]
    assert str(uuid.UUID(generated)) == generated
    assert response.json()["request_id"] == generated


def test_resolve_request_id_sanitizes_input():
    assert gateway.resolve_request_id("abc-123_x.y:z") == "abc-123_x.y:z"
    assert gateway.resolve_request_id("  padded  ") == "padded"
    for raw in (None, "", "has space", "bad\nvalue", "x" * 129):
        generated = gateway.resolve_request_id(raw)
        assert generated != raw
        uuid.UUID(generated)


def _build_request(headers: dict[str, str] | None = None) -> Request:
    raw_headers = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()]
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/v1/messages",
        "raw_path": b"/v1/messages",
        "query_string": b"",
        "headers": raw_headers,
        "client": ("127.0.0.1", 54321),
        "server": ("testserver", 80),
    }

    async def receive() -> dict:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


@pytest.mark.asyncio
async def test_correlation_middleware_exposes_id_to_inner_handlers():
    seen: dict = {}

    async def call_next(request: Request):
        seen["request_id"] = request.state.request_id
        return JSONResponse(status_code=200, content={"ok": True})

    middleware = gateway.CorrelationIdMiddleware(_config())
    response = await middleware(_build_request({"X-Request-ID": "abc"}), call_next)
    assert seen["request_id"] == "abc"
    assert response.headers["X-Request-ID"] == "abc"
