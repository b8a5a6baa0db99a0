"""
Pydantic models for TidalVoice configuration validation

This module provides type-safe configuration schemas with automatic validation,
preventing runtime errors from malformed config files or environment values.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class CacheSettings(BaseModel):
    """In-memory TTL cache settings."""

    enabled: bool = Field(default=True, description="Disable to make every lookup a miss")
    default_ttl: int = Field(default=300, ge=1, le=86400, description="Default entry TTL in seconds")
    max_size: int = Field(default=1000, ge=1, le=100000, description="Maximum entries per namespace")
    cleanup_interval: float = Field(default=60.0, gt=0, le=3600, description="Sweep interval in seconds")


class RetrySettings(BaseModel):
    """Resilient client retry/backoff settings."""

    max_retries: int = Field(default=3, ge=1, le=10, description="Total attempts per logical call")
    base_delay_ms: int = Field(default=1000, ge=0, le=60000, description="Backoff base delay")
    max_delay_ms: int = Field(default=10000, ge=0, le=300000, description="Backoff cap")
    timeout_seconds: float = Field(default=10.0, gt=0, le=120, description="Per-attempt timeout")

    @model_validator(mode='after')
    def validate_delay_bounds(self) -> 'RetrySettings':
        """The cap must not be below the base delay."""
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        return self


class TidalSettings(BaseModel):
    """TIDAL catalog/streaming service settings."""

    client_id: str = Field(default="", description="OAuth2 client identifier")
    client_secret: str = Field(default="", description="OAuth2 client secret")
    api_url: str = Field(default="https://openapi.tidal.com/v2", description="Catalog API base URL")
    auth_url: str = Field(default="https://auth.tidal.com/v1/oauth2/token", description="OAuth2 token endpoint")
    country_code: str = Field(default="US", pattern=r"^[A-Z]{2}$", description="ISO country code for catalog lookups")
    sound_quality: str = Field(default="HIGH", pattern=r"^(LOW|HIGH|LOSSLESS|HI_RES)$")
    stream_url_ttl: int = Field(default=1800, ge=60, le=86400, description="Stream URL cache TTL in seconds")

    @field_validator('api_url', 'auth_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only absolute http(s) URLs are accepted; trailing slashes are dropped."""
        if not v.startswith(("https://", "http://")):
            raise ValueError(f"Invalid URL: {v}. Must start with http:// or https://")
        return v.rstrip("/")


class StorageSettings(BaseModel):
    """Durable store settings."""

    backend: str = Field(default="memory", pattern=r"^(memory|json|dynamodb)$")
    token_table: str = Field(default="TidalTokens")
    playback_table: str = Field(default="TidalPlaybackState")
    endpoint: Optional[str] = Field(default=None, description="Custom DynamoDB endpoint (local testing)")
    region: str = Field(default="us-east-1")
    json_path: str = Field(default=".local-storage.json", description="File used by the json backend")
    ttl_seconds: int = Field(default=86400, ge=60, description="Playback snapshot lifetime")
    token_lookaside_size: int = Field(default=1000, ge=0, description="Access token -> refresh token memo size")


class PlaybackSettings(BaseModel):
    """Playback state machine settings."""

    stream_url_validity_seconds: int = Field(
        default=900, ge=0, le=86400,
        description="Stored stream URLs younger than this are reused on resume",
    )
    prefetch_on_nearly_finished: bool = Field(default=True)


class AppSettings(BaseModel):
    """Complete TidalVoice configuration schema.

    Example:
        >>> settings = AppSettings(**{"retry": {"max_retries": 5}})
        >>> settings.retry.max_retries
        5
    """

    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    cache: CacheSettings = Field(default_factory=CacheSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    tidal: TidalSettings = Field(default_factory=TidalSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    playback: PlaybackSettings = Field(default_factory=PlaybackSettings)

    model_config = {
        "extra": "allow",  # Forward compatibility with newer config files
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @field_validator('log_level', mode='before')
    @classmethod
    def normalise_log_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    def is_production(self) -> bool:
        return self.environment == "production"

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json')

    def redacted(self) -> Dict[str, Any]:
        """Dictionary form with secrets masked, safe for logging."""
        data = self.to_dict()
        if data["tidal"].get("client_secret"):
            data["tidal"]["client_secret"] = "[REDACTED]"
        return data


def validate_config_dict(config_dict: Dict[str, Any]) -> tuple[AppSettings, list[str]]:
    """Validate a config dictionary against the schema.

    Args:
        config_dict: Raw configuration dictionary (files merged with env)

    Returns:
        Tuple of (validated_settings, warnings_list)

    Raises:
        ValueError: If config is invalid with detailed error messages
    """
    warnings = []

    try:
        validated = AppSettings(**config_dict)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {str(e)}")

    if validated.environment != "development" and not validated.tidal.client_id:
        warnings.append("TIDAL client_id is not configured")
    if validated.environment != "development" and not validated.tidal.client_secret:
        warnings.append("TIDAL client_secret is not configured")

    return validated, warnings
