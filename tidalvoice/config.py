"""
Centralized configuration management for TidalVoice
Merges built-in defaults, JSON config files and environment variables,
then validates the result against the pydantic schema.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .config_schema import AppSettings, validate_config_dict

logger = logging.getLogger(__name__)

# (section, key, env var, caster)
_ENV_OVERRIDES = [
    (None, "environment", "TIDALVOICE_ENV", str),
    (None, "debug", "TIDALVOICE_DEBUG", "bool"),
    (None, "log_level", "LOG_LEVEL", str),
    ("tidal", "client_id", "TIDAL_CLIENT_ID", str),
    ("tidal", "client_secret", "TIDAL_CLIENT_SECRET", str),
    ("tidal", "api_url", "TIDAL_API_URL", str),
    ("tidal", "auth_url", "TIDAL_AUTH_URL", str),
    ("tidal", "country_code", "TIDAL_COUNTRY_CODE", str),
    ("tidal", "sound_quality", "TIDAL_SOUND_QUALITY", str),
    ("tidal", "stream_url_ttl", "TIDAL_STREAM_URL_TTL", int),
    ("cache", "enabled", "CACHE_ENABLED", "bool"),
    ("cache", "default_ttl", "CACHE_DEFAULT_TTL", int),
    ("cache", "max_size", "CACHE_MAX_SIZE", int),
    ("cache", "cleanup_interval", "CACHE_CLEANUP_INTERVAL", float),
    ("retry", "max_retries", "MAX_RETRIES", int),
    ("retry", "base_delay_ms", "RETRY_BASE_DELAY_MS", int),
    ("retry", "max_delay_ms", "RETRY_MAX_DELAY_MS", int),
    ("retry", "timeout_seconds", "TIDAL_API_TIMEOUT_SECONDS", float),
    ("storage", "backend", "TIDALVOICE_STORAGE", str),
    ("storage", "token_table", "TOKEN_TABLE", str),
    ("storage", "playback_table", "PLAYBACK_TABLE", str),
    ("storage", "endpoint", "DYNAMODB_ENDPOINT", str),
    ("storage", "region", "AWS_REGION", str),
    ("storage", "json_path", "TIDALVOICE_STORAGE_FILE", str),
    ("storage", "ttl_seconds", "DYNAMODB_TTL_SECONDS", int),
    ("playback", "stream_url_validity_seconds", "PLAYBACK_URL_VALIDITY_SECONDS", int),
]


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base`` one section deep."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Manages configuration loading and validation"""

    def __init__(self, base_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        self.base_path = Path(base_path) if base_path else Path(__file__).parent.parent
        self.config_dir = self.base_path / "config"
        self._environ = environ
        self.environment = self._detect_environment()

    def _env(self) -> Dict[str, str]:
        return self._environ if self._environ is not None else dict(os.environ)

    def _detect_environment(self) -> str:
        """Explicit environment variable wins, AWS runtime means production."""
        env = self._env()
        env_var = env.get("TIDALVOICE_ENV") or env.get("ENVIRONMENT")
        if env_var:
            return env_var
        if env.get("AWS_LAMBDA_FUNCTION_NAME"):
            return "production"
        return "development"

    def _read_json(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Could not load config file %s: %s", path, e)
            return {}

    def _env_overrides(self) -> Dict[str, Any]:
        env = self._env()
        overrides: Dict[str, Any] = {}
        for section, key, env_name, caster in _ENV_OVERRIDES:
            raw = env.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                value = _parse_bool(raw) if caster == "bool" else caster(raw)
            except ValueError:
                logger.warning("Invalid %s=%s; ignoring", env_name, raw)
                continue
            if section is None:
                overrides[key] = value
            else:
                overrides.setdefault(section, {})[key] = value
        return overrides

    def load_settings(self, config_name: Optional[str] = None) -> AppSettings:
        """
        Load configuration for the current environment

        Args:
            config_name: Specific config file name (without .json)
                        If None, uses environment-based config

        Returns:
            Validated settings model
        """
        if config_name is None:
            config_name = self.environment

        config: Dict[str, Any] = {"environment": self.environment}
        config = _deep_merge(config, self._read_json(self.config_dir / "default_config.json"))
        config = _deep_merge(config, self._read_json(self.config_dir / f"{config_name}.json"))
        config = _deep_merge(config, self._env_overrides())

        settings, warnings = validate_config_dict(config)
        for warning in warnings:
            logger.warning(f"Config validation warning: {warning}")

        if settings.environment == "development":
            logger.debug("Configuration loaded: %s", json.dumps(settings.redacted(), sort_keys=True))
        return settings

    def list_available_configs(self) -> list[str]:
        """List all available configuration files"""
        if not self.config_dir.exists():
            return []
        return sorted(config_file.stem for config_file in self.config_dir.glob("*.json"))


def load_settings(base_path: Optional[str] = None, *, use_dotenv: bool = True) -> AppSettings:
    """Load settings, reading ``~/.tidalvoice/.env`` and a project ``.env`` first."""
    if use_dotenv:
        app_name = os.getenv("TIDALVOICE_APP_NAME", "tidalvoice")
        home_env = os.path.join(os.path.expanduser(f"~/.{app_name}"), ".env")
        if os.path.exists(home_env):
            load_dotenv(dotenv_path=home_env)
        load_dotenv()
    return ConfigManager(base_path).load_settings()
