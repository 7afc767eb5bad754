"""Tests for configuration loading and error payloads."""

import pytest
from pydantic import ValidationError

from roadmapflow.config import (
    AppConfig,
    LogLevel,
    StorageBackend,
    get_config,
    get_development_config,
    get_testing_config,
    reset_config,
    validate_config,
)
from roadmapflow.core.exceptions import RunConflictError, create_error_response


class TestAppConfig:
    """Test cases for AppConfig."""

    def test_defaults(self, monkeypatch):
        for key in ("GEMINI_API_KEY", "API_KEY", "ROADMAPFLOW_GEMINI_API_KEY"):
            monkeypatch.delenv(key, raising=False)
        config = AppConfig.from_env()

        assert config.storage_backend == StorageBackend.SQL
        assert config.max_retries == 3
        assert config.node_pacing_ms == 0
        assert config.gemini_api_key is None

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ROADMAPFLOW_PORT", "9000")
        monkeypatch.setenv("ROADMAPFLOW_DEBUG", "yes")
        monkeypatch.setenv("ROADMAPFLOW_STORAGE_BACKEND", "MEMORY")
        monkeypatch.setenv("ROADMAPFLOW_LOG_LEVEL", "debug")
        monkeypatch.setenv("ROADMAPFLOW_CORS_ORIGINS", "http://a.test, http://b.test")
        monkeypatch.setenv("ROADMAPFLOW_NODE_PACING_MS", "1200")
        config = AppConfig.from_env()

        assert config.port == 9000
        assert config.debug is True
        assert config.storage_backend == StorageBackend.MEMORY
        assert config.log_level == LogLevel.DEBUG
        assert config.cors_origins == ["http://a.test", "http://b.test"]
        assert config.node_pacing_ms == 1200

    def test_api_key_fallbacks(self, monkeypatch):
        monkeypatch.delenv("ROADMAPFLOW_GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("API_KEY", "plain-key")
        assert AppConfig.from_env().gemini_api_key == "plain-key"

        monkeypatch.setenv("ROADMAPFLOW_GEMINI_API_KEY", "prefixed-key")
        assert AppConfig.from_env().gemini_api_key == "prefixed-key"

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            AppConfig(port=70000)
        with pytest.raises(ValidationError):
            AppConfig(database_url="oracle://db")
        with pytest.raises(ValidationError):
            AppConfig(max_retries=-1)
        with pytest.raises(ValidationError):
            AppConfig(request_timeout_ms=0)

    def test_validate_config(self):
        validate_config(get_testing_config())

        with pytest.raises(ValueError) as exc_info:
            validate_config(AppConfig(retry_base_delay_ms=5000, retry_max_delay_ms=100))
        assert "retry_base_delay_ms" in str(exc_info.value)

    def test_global_config_is_cached_until_reset(self, monkeypatch):
        monkeypatch.setenv("ROADMAPFLOW_PORT", "9100")
        reset_config()
        try:
            first = get_config()
            monkeypatch.setenv("ROADMAPFLOW_PORT", "9200")
            assert get_config() is first

            reset_config()
            assert get_config().port == 9200
        finally:
            reset_config()

    def test_presets(self):
        assert get_testing_config().storage_backend == StorageBackend.MEMORY
        development = get_development_config()
        assert development.reload is True
        assert development.get_uvicorn_config()["log_level"] == "debug"

    def test_uvicorn_config(self):
        config = AppConfig(port=8100, log_level=LogLevel.WARNING)
        assert config.get_uvicorn_config() == {
            "host": "0.0.0.0",
            "port": 8100,
            "reload": False,
            "log_level": "warning",
            "access_log": False,
        }


class TestErrorResponse:
    """Test cases for the standard error payload."""

    def test_create_error_response(self):
        error = RunConflictError("session-1", "run-1")
        response = create_error_response(error)

        assert response["error"] == "RunConflictError"
        assert response["details"]["recoverable"] is True
        assert response["details"]["category"] == "execution"
        assert response["context"] == {"run_id": "run-1", "session_id": "session-1"}
