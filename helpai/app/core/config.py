import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    # Prefer JSON, but tolerate bare hosts and comma lists.
    if raw.startswith(("[", '"')):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()
            if not raw or raw == "[]":
                return []
            if raw == "*":
                return ["*"]

    origins: list[str] = []
    for part in (p for p in re.split(r"[,\s]+", raw) if p):
        if part == "*":
            return ["*"]
        if "://" in part:
            origins.append(part)
            continue
        # Browsers send the scheme in the Origin header.
        origins.append(f"http://{part}")
        origins.append(f"https://{part}")

    return list(dict.fromkeys(origins))


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    Millisecond-valued fields mirror the deployment's existing env names;
    use the ``*_seconds`` properties in code.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # OpenAI provider
    openai_api_key: str = ""
    openai_base_url: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_timeout_ms: int = 55_000

    # Provider quotas (deliberately conservative defaults)
    openai_rpm_limit: int = 3
    openai_tpm_limit: int = 12_000

    # Admission gate
    llm_min_gap_ms: int = 800
    llm_cooldown_fallback_seconds: float = 30.0
    llm_vision_token_surcharge: int = 1000

    # Retry policy for transient provider failures (never 429)
    llm_retry_max: int = 2
    llm_retry_base_delay_ms: int = 800
    llm_retry_max_delay_ms: int = 10_000
    llm_retry_jitter_ms: int = 250

    # Serialization mutex
    llm_mutex_wait_ceiling_ms: int = 8_000
    llm_mutex_poll_ms: int = 120

    # Use the in-process mock provider instead of OpenAI
    mock_provider: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json
    llm_log_prompt_chars: int = 200

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator("openai_rpm_limit", "openai_tpm_limit")
    @classmethod
    def validate_limits_positive(cls, v: int) -> int:
        """Validate quota ceilings are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("openai_timeout_ms", "llm_mutex_wait_ceiling_ms", "llm_mutex_poll_ms")
    @classmethod
    def validate_timeout_positive(cls, v: int) -> int:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator(
        "llm_min_gap_ms",
        "llm_retry_max",
        "llm_retry_base_delay_ms",
        "llm_retry_max_delay_ms",
        "llm_retry_jitter_ms",
        "llm_vision_token_surcharge",
    )
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    @field_validator("llm_cooldown_fallback_seconds")
    @classmethod
    def validate_cooldown_fallback(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("llm_cooldown_fallback_seconds must be positive")
        return v

    @property
    def openai_timeout_seconds(self) -> float:
        return self.openai_timeout_ms / 1000

    @property
    def llm_min_gap_seconds(self) -> float:
        return self.llm_min_gap_ms / 1000

    @property
    def has_api_key(self) -> bool:
        return bool(self.openai_api_key.strip())

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
