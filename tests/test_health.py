"""
Tests for health checks, metrics exposition and the global envelope handlers.
"""

from app.storage import Base, engine
from conftest import submit


class TestHealth:

    def test_live(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_schema(self, client):
        Base.metadata.drop_all(bind=engine)

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_ready_without_api_key(self, client, monkeypatch):
        from app import main as main_module
        monkeypatch.setattr(main_module.settings, "GEMINI_API_KEY", "")

        response = client.get("/health/ready")

        assert response.status_code == 200

    def test_request_id_header(self, client):
        first = client.get("/health/live")
        second = client.get("/health/live")

        assert first.headers["X-Request-ID"]
        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]


class TestMetrics:

    def test_metrics_exposition(self, client):
        submit(client)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
        assert 'submissions_total{result="created"}' in response.text


class TestEnvelopeHandlers:

    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/api/does-not-exist")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_persistence_failure_is_generic_500(self, client):
        Base.metadata.drop_all(bind=engine)

        response = client.get("/api/submissions", params={"name": "Ann"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Ошибка при получении отправок"}

    def test_submit_persistence_failure_is_generic_500(self, client):
        Base.metadata.drop_all(bind=engine)

        response = submit(client)

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Ошибка при сохранении отправки"}

    def test_usage_persistence_failure_is_generic_500(self, client):
        Base.metadata.drop_all(bind=engine)

        response = client.get("/api/ai/usage", params={"name": "Ann"})

        assert response.status_code == 500
        assert "no such table" not in response.text
