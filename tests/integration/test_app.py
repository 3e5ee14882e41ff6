"""App wiring: startup, error pages, security headers, rate limiting, health."""

import pytest
from sqlalchemy.exc import OperationalError

from cartracker.app import create_app
from cartracker.config import DEFAULT_SECRET, ProductionConfig, TestingConfig
from cartracker.services.middleware import SECURITY_HEADERS


class TestStartup:
    def test_unreachable_store_refuses_to_start(self, tmp_path):
        missing = tmp_path / "no" / "such" / "dir" / "cars.db"
        with pytest.raises(RuntimeError, match="Cannot reach the database"):
            create_app(TestingConfig, SQLALCHEMY_DATABASE_URI=f"sqlite:///{missing}")

    def test_production_needs_a_secret(self):
        with pytest.raises(RuntimeError, match="SESSION_SECRET"):
            create_app(ProductionConfig, SECRET_KEY=DEFAULT_SECRET)

    def test_file_database(self, tmp_path):
        app = create_app(TestingConfig, SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'cars.db'}")
        assert app.test_client().get("/healthz").get_json() == {"status": "ok"}


class TestErrorPages:
    def test_unknown_route(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.data == b"Not found"
        assert response.mimetype == "text/plain"

    def test_wrong_method(self, client):
        response = client.get("/login")
        assert response.status_code == 404
        assert response.data == b"Not found"

    def test_database_error_is_generic(self, client, services, monkeypatch):
        def broken(owner_id):
            raise OperationalError("SELECT", {}, Exception("disk I/O error at /var/db"))

        monkeypatch.setattr(services.cars.repository, "list_for_owner", broken)
        response = client.get("/data")
        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error."}
        assert b"disk" not in response.data


class TestSecurityHeaders:
    @pytest.mark.parametrize("path", ["/", "/nope", "/data"])
    def test_headers_on_every_response(self, client, path):
        response = client.get(path)
        for header, value in SECURITY_HEADERS.items():
            assert response.headers[header] == value

    def test_no_content_security_policy(self, client):
        assert "Content-Security-Policy" not in client.get("/").headers


class TestRateLimit:
    @pytest.fixture
    def limited_app(self):
        return create_app(TestingConfig, RATE_LIMIT_MAX=3, RATE_LIMIT_WINDOW_SECONDS=60)

    def test_limit_applies_to_all_routes(self, limited_app):
        client = limited_app.test_client()
        statuses = [client.get(path).status_code for path in ("/", "/nope", "/data", "/")]
        assert statuses == [200, 404, 200, 429]

    def test_rejection_details(self, limited_app):
        client = limited_app.test_client()
        for _ in range(3):
            ok = client.get("/")
        assert ok.headers["X-RateLimit-Limit"] == "3"
        assert ok.headers["X-RateLimit-Remaining"] == "0"

        response = client.get("/")
        assert response.status_code == 429
        assert response.data == b"Too many requests, please try again later."
        assert int(response.headers["Retry-After"]) >= 1

    def test_per_remote_address(self, limited_app):
        client = limited_app.test_client()
        for _ in range(3):
            client.get("/")
        assert client.get("/").status_code == 429
        other = client.get("/", environ_base={"REMOTE_ADDR": "10.0.0.2"})
        assert other.status_code == 200

    def test_health_is_exempt(self, limited_app):
        client = limited_app.test_client()
        statuses = [client.get("/healthz").status_code for _ in range(5)]
        assert statuses == [200] * 5


class TestHealth:
    def test_ok(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.get_json() == {"status": "ok"}

    def test_init_db_command(self, app):
        result = app.test_cli_runner().invoke(args=["init-db"])
        assert "Database initialized." in result.output
