import json

import httpx
import redis
from starlette.requests import Request

from easycal.errors import (
    AppError,
    ErrorCode,
    GHLAPIError,
    get_error_message,
    unhandled_exception_handler,
    validation_error,
)


def make_request(path="/api/anything"):
    return Request(
        {
            "type": "http",
            "method": "GET",
            "scheme": "http",
            "server": ("testserver", 80),
            "path": path,
            "query_string": b"",
            "headers": [],
        }
    )


class TestErrors:
    def test_app_error_dict(self):
        error = AppError("Boom", ErrorCode.DB_QUERY_FAILED, 503, {"table": "jobs"}, "Jobs")
        body = error.to_dict()
        assert body["success"] is False
        assert body["error"]["code"] == "DB_QUERY_FAILED"
        assert body["error"]["statusCode"] == 503
        assert body["error"]["details"] == {"table": "jobs"}
        assert body["error"]["timestamp"].endswith("Z")

    def test_validation_error_helper(self):
        error = validation_error("Bad input")
        assert (error.status_code, error.code, error.context) == (400, ErrorCode.VALIDATION_FAILED, "Validation")
        assert "details" not in error.to_dict()["error"]

    def test_ghl_error_maps_status(self):
        response = httpx.Response(429, json={"message": "Too many requests"})
        error = GHLAPIError(response, "List calendars")
        assert error.code == ErrorCode.API_RATE_LIMITED
        assert error.status_code == 429
        assert error.message == "API request failed: 429 Too Many Requests"
        assert error.upstream_message() == "Too many requests"

    def test_ghl_error_prefers_oauth_description(self):
        response = httpx.Response(400, json={"error": "invalid_grant", "error_description": "Code expired"})
        assert GHLAPIError(response, "OAuth").upstream_message() == "Code expired"

    def test_ghl_error_plain_text(self):
        error = GHLAPIError(httpx.Response(502, text="Bad Gateway upstream"), "Get calendar")
        assert error.code == ErrorCode.API_ERROR
        assert error.upstream_message() == "Bad Gateway upstream"

    def test_error_messages(self):
        assert get_error_message(AppError("app")) == "app"
        assert get_error_message(ValueError("value")) == "value"
        assert get_error_message(KeyError()) == "KeyError"
        assert get_error_message("text") == "text"
        assert get_error_message(None) == "Unknown error occurred"

    async def test_unhandled_exception_is_json_500(self):
        response = await unhandled_exception_handler(make_request(), RuntimeError("kaboom"))
        assert response.status_code == 500
        assert json.loads(response.body) == {"error": "Internal server error", "message": "kaboom"}


class TestApp:
    def test_root_and_health(self, client):
        assert client.get("/").json() == {"message": "EasyCal API is running"}
        assert client.get("/health").json() == {"status": "healthy"}

    def test_redis_health(self, client):
        body = client.get("/health/redis").json()
        assert body["status"] == "healthy"
        assert body["redis"]["version"] == "7.0-fake"

    def test_redis_health_reports_failure(self, client, fake_redis, monkeypatch):
        def down():
            raise redis.ConnectionError("connection refused")

        monkeypatch.setattr(fake_redis, "ping", down)
        body = client.get("/health/redis").json()
        assert body == {"status": "unhealthy", "redis": {"connected": False, "error": "connection refused"}}

    def test_security_headers(self, client):
        response = client.get("/api/brand-config", params={"locationId": "loc_1"})
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Frame-Options" not in response.headers
        csp = response.headers["Content-Security-Policy"]
        assert "frame-ancestors 'self' https://easycal.test https://app.gohighlevel.com" in csp
        assert "https://*.leadconnectorhq.com" in csp
        assert response.headers["Cache-Control"] == "no-store, no-cache, must-revalidate"

    def test_health_skips_security_headers(self, client):
        assert "Content-Security-Policy" not in client.get("/health").headers

    def test_request_validation_shape(self, client):
        response = client.get("/api/jobs")
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert body["errors"] == ["query.tenantId: Field required"]
