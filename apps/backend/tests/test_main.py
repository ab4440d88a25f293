"""
Tests for the main module: root, health, CORS and correlation ids.
"""

from main import validate_cors_origins


def test_read_root(client):
    """Test the root endpoint returns the expected response."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "JobRelay API"}


class TestHealthCheck:
    """Tests for basic health check endpoint."""

    def test_health_check_returns_success(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["status"] == "healthy"
        assert "JobRelay" in data["data"]["message"]
        assert data["message"] == "Health check successful"

    def test_health_reports_live_sessions(self, client):
        client.post(
            "/api/v1/sessions",
            json={"url": "https://media.licdn.com/dms/image/photo.jpg"},
        )

        data = client.get("/api/v1/health").json()["data"]

        assert data["active_sessions"] == 1
        assert data["active_subscriptions"] == 1


class TestCORSConfiguration:
    """Test CORS configuration adheres to security requirements."""

    def test_cors_preflight_request(self, client):
        response = client.options(
            "/api/v1/health",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
        assert response.headers["Access-Control-Allow-Credentials"] == "true"

    def test_cors_request_from_disallowed_origin(self, client):
        response = client.get(
            "/api/v1/health",
            headers={"Origin": "http://malicious-site.com"},
        )

        assert response.status_code == 200
        assert "Access-Control-Allow-Origin" not in response.headers

    def test_validate_cors_origins_drops_invalid_entries(self):
        origins = ["http://localhost:3000", "not-a-url", "ftp://files.example.com"]

        assert validate_cors_origins(origins) == ["http://localhost:3000"]


class TestCorrelationId:
    def test_generated_when_absent(self, client):
        response = client.get("/api/v1/health")

        assert len(response.headers["X-Correlation-ID"]) == 36

    def test_well_formed_incoming_id_is_echoed(self, client):
        response = client.get(
            "/api/v1/health", headers={"X-Correlation-ID": "req-1234.abc"}
        )

        assert response.headers["X-Correlation-ID"] == "req-1234.abc"

    def test_malformed_incoming_id_is_replaced(self, client):
        response = client.get(
            "/api/v1/health", headers={"X-Correlation-ID": "bad id with spaces"}
        )

        assert response.headers["X-Correlation-ID"] != "bad id with spaces"

    def test_error_body_carries_correlation_id(self, client):
        response = client.get(
            "/api/v1/sessions/missing", headers={"X-Correlation-ID": "trace-42"}
        )

        assert response.status_code == 404
        assert response.json()["error"]["correlation_id"] == "trace-42"
