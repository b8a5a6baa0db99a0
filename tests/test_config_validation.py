"""
Unit tests for configuration loading and validation (pydantic schema)

Tests cover:
- Defaults and range validation
- JSON file layering (default_config.json, <environment>.json)
- Environment variable overrides
- Environment detection
"""
import json

import pytest

from tidalvoice.config import ConfigManager
from tidalvoice.config_schema import AppSettings, RetrySettings, validate_config_dict


@pytest.fixture
def config_root(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "default_config.json").write_text(json.dumps({
        "cache": {"default_ttl": 120},
        "retry": {"max_retries": 4},
    }), encoding="utf-8")
    (config_dir / "production.json").write_text(json.dumps({
        "log_level": "warning",
        "storage": {"backend": "dynamodb"},
    }), encoding="utf-8")
    return tmp_path


class TestSchema:

    def test_defaults(self):
        settings = AppSettings()

        assert settings.retry.max_retries == 3
        assert settings.retry.base_delay_ms == 1000
        assert settings.retry.max_delay_ms == 10000
        assert settings.cache.default_ttl == 300
        assert settings.storage.backend == "memory"
        assert settings.playback.stream_url_validity_seconds == 900

    def test_delay_cap_below_base_is_rejected(self):
        with pytest.raises(ValueError):
            RetrySettings(base_delay_ms=5000, max_delay_ms=1000)

    @pytest.mark.parametrize("section,values", [
        ("retry", {"max_retries": 0}),
        ("cache", {"max_size": 0}),
        ("tidal", {"country_code": "usa"}),
        ("tidal", {"api_url": "ftp://example.com"}),
        ("storage", {"backend": "redis"}),
    ])
    def test_invalid_values(self, section, values):
        with pytest.raises(ValueError):
            validate_config_dict({section: values})

    def test_log_level_is_normalised(self):
        assert AppSettings(log_level="debug").log_level == "DEBUG"

    def test_api_url_trailing_slash_is_dropped(self):
        assert AppSettings(tidal={"api_url": "https://api.example.com/v2/"}).tidal.api_url == "https://api.example.com/v2"

    def test_redacted_hides_secret(self):
        settings = AppSettings(tidal={"client_id": "id", "client_secret": "secret"})

        assert settings.redacted()["tidal"]["client_secret"] == "[REDACTED]"
        assert settings.tidal.client_secret == "secret"

    def test_missing_client_id_warns_outside_development(self):
        _, warnings = validate_config_dict({"environment": "production"})

        assert any("client_id" in warning for warning in warnings)


class TestConfigManager:

    def test_default_file_is_applied(self, config_root):
        settings = ConfigManager(str(config_root), environ={}).load_settings()

        assert settings.environment == "development"
        assert settings.cache.default_ttl == 120
        assert settings.retry.max_retries == 4
        assert settings.retry.base_delay_ms == 1000

    def test_environment_file_is_layered(self, config_root):
        settings = ConfigManager(str(config_root), environ={"TIDALVOICE_ENV": "production"}).load_settings()

        assert settings.is_production()
        assert settings.log_level == "WARNING"
        assert settings.storage.backend == "dynamodb"
        assert settings.cache.default_ttl == 120

    def test_env_overrides_win(self, config_root):
        environ = {
            "MAX_RETRIES": "5",
            "CACHE_ENABLED": "false",
            "TIDAL_CLIENT_ID": "cid",
            "RETRY_BASE_DELAY_MS": "250",
        }

        settings = ConfigManager(str(config_root), environ=environ).load_settings()

        assert settings.retry.max_retries == 5
        assert settings.retry.base_delay_ms == 250
        assert settings.cache.enabled is False
        assert settings.tidal.client_id == "cid"

    def test_invalid_env_value_is_ignored(self, config_root):
        settings = ConfigManager(str(config_root), environ={"MAX_RETRIES": "many"}).load_settings()

        assert settings.retry.max_retries == 4

    def test_lambda_runtime_means_production(self, config_root):
        manager = ConfigManager(str(config_root), environ={"AWS_LAMBDA_FUNCTION_NAME": "skill"})

        assert manager.environment == "production"

    def test_missing_config_dir(self, tmp_path):
        manager = ConfigManager(str(tmp_path), environ={})

        assert manager.list_available_configs() == []
        assert manager.load_settings().cache.default_ttl == 300

    def test_broken_json_is_ignored(self, config_root):
        (config_root / "config" / "default_config.json").write_text("{oops", encoding="utf-8")

        settings = ConfigManager(str(config_root), environ={}).load_settings()

        assert settings.cache.default_ttl == 300

    def test_list_available_configs(self, config_root):
        assert ConfigManager(str(config_root), environ={}).list_available_configs() == [
            "default_config", "production",
        ]
