"""Unit tests for the correlation ID middleware."""

import pytest
import structlog
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from callguard.gateway.middleware.correlation import (
    REQUEST_ID_HEADER,
    CorrelationIdMiddleware,
    _generate_request_id,
    _sanitize_request_id,
)


class TestGenerateRequestId:
    """Tests for the _generate_request_id helper."""

    def test_format(self):
        rid = _generate_request_id()
        # "req_" (4) + 32 hex chars
        assert rid.startswith("req_")
        assert len(rid) == 36

    def test_is_unique(self):
        assert len({_generate_request_id() for _ in range(100)}) == 100


class TestCorrelationIdMiddleware:
    """Tests for CorrelationIdMiddleware."""

    @pytest.fixture
    def captured(self):
        return {}

    @pytest.fixture
    def client(self, captured):
        app = FastAPI()

        @app.get("/v1/audio/probe")
        async def probe(request: Request):
            captured.update(structlog.contextvars.get_contextvars())
            captured["state_request_id"] = getattr(request.state, "request_id", None)
            return {"ok": True}

        app.add_middleware(CorrelationIdMiddleware)
        return TestClient(app)

    def test_generates_request_id(self, client, captured):
        response = client.get("/v1/audio/probe")

        rid = response.headers[REQUEST_ID_HEADER]
        assert rid.startswith("req_")
        assert captured["request_id"] == rid
        assert captured["state_request_id"] == rid

    def test_uses_client_request_id(self, client, captured):
        response = client.get("/v1/audio/probe", headers={REQUEST_ID_HEADER: "trace-456"})

        assert response.headers[REQUEST_ID_HEADER] == "trace-456"
        assert captured["request_id"] == "trace-456"

    def test_clears_stale_context(self, client, captured):
        structlog.contextvars.bind_contextvars(call_id="stale")

        client.get("/v1/audio/probe")

        assert "call_id" not in captured

    def test_rejects_invalid_request_id(self, client):
        response = client.get(
            "/v1/audio/probe", headers={REQUEST_ID_HEADER: "has spaces & <script>"}
        )
        assert response.headers[REQUEST_ID_HEADER].startswith("req_")


class TestSanitizeRequestId:
    """Tests for _sanitize_request_id validation."""

    @pytest.mark.parametrize("value", ["abc123", "req_abc-123.456", "a" * 128])
    def test_accepts_valid(self, value):
        assert _sanitize_request_id(value) == value

    @pytest.mark.parametrize(
        "value", [None, "", "has space", "<script>alert(1)</script>", "a" * 129]
    )
    def test_replaces_invalid(self, value):
        assert _sanitize_request_id(value).startswith("req_")
