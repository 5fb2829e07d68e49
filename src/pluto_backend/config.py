from __future__ import annotations

import os

from pydantic import BaseModel, Field

from .credentials import CredentialPool, load_encrypted_keys
from .errors import ConfigurationError
from .sanitize import DEFAULT_BOILERPLATE
from .tiering import ModelTiers


DEFAULT_COMPLETION_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_MODELS = "llama-3.3-70b-versatile,llama-3.1-70b-versatile,llama-3.1-8b-instant"


def _parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def _boilerplate_from_env() -> list[str]:
    raw = os.getenv("PLUTO_BOILERPLATE")
    if not raw:
        return list(DEFAULT_BOILERPLATE)
    return [p.strip() for p in raw.split("|") if p.strip()]


class PlutoConfig(BaseModel):
    # Completion endpoint
    completion_api_url: str = Field(default_factory=lambda: os.getenv("LLAMA_API_URL", DEFAULT_COMPLETION_URL))
    completion_api_keys: list[str] = Field(
        default_factory=lambda: _parse_csv(_first_env("LLAMA_API_KEYS", "LLAMA_API_KEY"))
    )
    completion_models: list[str] = Field(
        default_factory=lambda: _parse_csv(_first_env("LLAMA_MODELS", "LLAMA_MODEL") or DEFAULT_MODELS)
    )

    # Optional encrypted key file, appended to the env pool
    credentials_path: str | None = Field(default_factory=lambda: os.getenv("PLUTO_CREDENTIALS_PATH"))
    fernet_key: str | None = Field(default_factory=lambda: os.getenv("CREDENTIALS_FERNET_KEY"))

    # Sampling
    chat_temperature: float = Field(default_factory=lambda: float(os.getenv("CHAT_TEMPERATURE", "1.0")))
    json_temperature: float = Field(default_factory=lambda: float(os.getenv("JSON_TEMPERATURE", "0.2")))
    top_p: float = Field(default_factory=lambda: float(os.getenv("TOP_P", "1.0")))
    max_output_tokens: int = Field(default_factory=lambda: int(os.getenv("MAX_OUTPUT_TOKENS", "8192")))
    json_response_format: bool = Field(default_factory=lambda: _env_bool("JSON_RESPONSE_FORMAT", "false"))

    # Dispatch behavior
    upstream_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "60"))
    )
    dispatch_rotation_delay_seconds: float = Field(
        default_factory=lambda: float(os.getenv("DISPATCH_ROTATION_DELAY_SECONDS", "0"))
    )

    # Browser
    browser_executable_path: str | None = Field(
        default_factory=lambda: _first_env("BROWSER_EXECUTABLE_PATH", "PUPPETEER_EXECUTABLE_PATH")
    )
    browser_headless: bool = Field(default_factory=lambda: _env_bool("BROWSER_HEADLESS", "true"))
    block_heavy_resources: bool = Field(default_factory=lambda: _env_bool("BLOCK_HEAVY_RESOURCES", "true"))

    # Extraction
    extraction_concurrency: int = Field(default_factory=lambda: int(os.getenv("EXTRACTION_CONCURRENCY", "1")))
    link_extraction_concurrency: int = Field(
        default_factory=lambda: int(os.getenv("LINK_EXTRACTION_CONCURRENCY", "1"))
    )
    navigation_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("NAVIGATION_TIMEOUT_SECONDS", "60"))
    )
    selector_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("SELECTOR_TIMEOUT_SECONDS", "15"))
    )
    wait_until: str = Field(default_factory=lambda: os.getenv("NAVIGATION_WAIT_UNTIL", "domcontentloaded"))
    settle_delay_seconds: float = Field(default_factory=lambda: float(os.getenv("SETTLE_DELAY_SECONDS", "2")))
    scroll_max_rounds: int = Field(default_factory=lambda: int(os.getenv("SCROLL_MAX_ROUNDS", "20")))
    scroll_interval_seconds: float = Field(
        default_factory=lambda: float(os.getenv("SCROLL_INTERVAL_SECONDS", "0.5"))
    )
    min_block_chars: int = Field(default_factory=lambda: int(os.getenv("MIN_BLOCK_CHARS", "30")))
    max_source_chars: int = Field(default_factory=lambda: int(os.getenv("MAX_SOURCE_CHARS", "15000")))
    min_source_chars: int = Field(default_factory=lambda: int(os.getenv("MIN_SOURCE_CHARS", "100")))
    min_combined_chars: int = Field(default_factory=lambda: int(os.getenv("MIN_COMBINED_CHARS", "200")))
    boilerplate_phrases: list[str] = Field(default_factory=_boilerplate_from_env)

    # Conversation
    chat_history_window: int = Field(default_factory=lambda: int(os.getenv("CHAT_HISTORY_WINDOW", "40")))

    # Observability
    enable_metrics: bool = Field(default_factory=lambda: _env_bool("ENABLE_METRICS", "false"))
    metrics_bind: str = Field(default_factory=lambda: os.getenv("METRICS_BIND", "127.0.0.1"))
    metrics_port: int = Field(default_factory=lambda: int(os.getenv("METRICS_PORT", "9109")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = Field(default_factory=lambda: os.getenv("LOG_FORMAT", "json"))

    # Server hardening
    enable_api_docs: bool = Field(default_factory=lambda: _env_bool("ENABLE_API_DOCS", "false"))
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: _parse_csv(os.getenv("CORS_ALLOW_ORIGINS", "*"))
    )
    cors_allow_credentials: bool = Field(default_factory=lambda: _env_bool("CORS_ALLOW_CREDENTIALS", "false"))
    max_request_body_bytes: int = Field(
        default_factory=lambda: int(os.getenv("MAX_REQUEST_BODY_BYTES", str(1024 * 1024)))
    )
    max_inflight_requests: int = Field(default_factory=lambda: int(os.getenv("MAX_INFLIGHT_REQUESTS", "32")))

    def secrets(self) -> list[str]:
        return [s for s in (*self.completion_api_keys, self.fernet_key) if s]

    def build_credential_pool(self) -> CredentialPool:
        keys = list(self.completion_api_keys)
        if self.credentials_path:
            if not self.fernet_key:
                raise ConfigurationError("CREDENTIALS_FERNET_KEY is required to read PLUTO_CREDENTIALS_PATH.")
            keys.extend(load_encrypted_keys(self.credentials_path, self.fernet_key))
        return CredentialPool(keys)

    def build_model_tiers(self) -> ModelTiers:
        return ModelTiers(self.completion_models)
