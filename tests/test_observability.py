import pytest
from fastapi.testclient import TestClient

from material_validator.main import app, create_app
from material_validator.observability.request_logger import resolve_trace_id


class TestResolveTraceId:
    def test_accepts_caller_value(self):
        assert resolve_trace_id("req-2024.10_abc") == "req-2024.10_abc"

    @pytest.mark.parametrize("header", [None, "", "has spaces", "x" * 65, "bad\nheader"])
    def test_generates_new_id_for_missing_or_unsafe_value(self, header):
        trace_id = resolve_trace_id(header)

        assert trace_id != header
        assert len(trace_id) == 32


class TestMiddlewares:
    def test_response_headers(self):
        with TestClient(app) as client:
            resp = client.post("/validate/syntax", json={"content": "no code"})

        assert resp.status_code == 200
        assert len(resp.headers["X-Trace-ID"]) == 32
        assert int(resp.headers["X-Duration-Ms"]) >= 0

    def test_request_metrics_use_route_template(self):
        with TestClient(app) as client:
            client.post("/validate/syntax", json={"content": "no code"})
            client.get("/no/such/path")
            exposition = client.get("/metrics/").text

        assert 'endpoint="/validate/syntax"' in exposition
        assert 'endpoint="unmatched"' in exposition
        assert "/no/such/path" not in exposition


def test_unhandled_error_returns_json_500():
    application = create_app()

    @application.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    with TestClient(application, raise_server_exceptions=False) as client:
        resp = client.get("/boom")

    assert resp.status_code == 500
    assert resp.json()["success"] is False
    assert "kaboom" not in resp.text
