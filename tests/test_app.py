"""
Tests for the application factory, error responses and metrics endpoint
"""
import pytest

from watchvault.exceptions import (
    AuthenticationException,
    LocalStorageException,
    NotFoundException,
    ProviderFetchException,
    RemoteWriteException,
    ValidationException,
)


class TestErrorHandlers:
    """Typed exceptions map to JSON error responses"""

    @pytest.mark.parametrize("error,status,code", [
        (ValidationException("bad name"), 400, "VALIDATION_ERROR"),
        (LocalStorageException("disk full"), 500, "LOCAL_STORAGE_ERROR"),
        (RemoteWriteException("timeout"), 502, "REMOTE_WRITE_ERROR"),
        (ProviderFetchException("offline", offline=True), 503, "PROVIDER_FETCH_ERROR"),
        (ProviderFetchException("bad gateway"), 502, "PROVIDER_FETCH_ERROR"),
        (NotFoundException("no list"), 404, "NOT_FOUND"),
        (AuthenticationException(), 401, "AUTH_ERROR"),
    ])
    def test_status_codes(self, app, error, status, code):
        @app.route("/boom")
        def boom():
            raise error

        response = app.test_client().get("/boom")

        assert response.status_code == status
        assert response.get_json() == {"error": True, "code": code, "message": error.message}


class TestMetricsEndpoint:
    def test_exposes_ledger_gauge(self, app, ledger, fight_club, breaking_bad):
        ledger.mark_seen(fight_club)
        ledger.skip(breaking_bad)

        response = app.test_client().get("/api/metrics")

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'watchvault_ledger_records{direction="seen"} 1.0' in body
        assert 'watchvault_ledger_records{direction="skipped"} 1.0' in body
        assert "watchvault_ledger_writes_total" in body


class TestCreateApp:
    def test_config_overrides_settings(self, app):
        assert app.config["SQLALCHEMY_DATABASE_URI"] == "sqlite:///:memory:"
        assert app.config["WATCHVAULT_SETTINGS"]["remote"]["backend"] == "memory"
