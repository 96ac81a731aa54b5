from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Optional, Tuple

from .exceptions import ConfigurationError

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_ENDPOINT_HOST = "api.anthropic.com"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 1024

@dataclass(frozen=True)
class ApiConfig:
    api_key: str
    default_model: str = DEFAULT_MODEL
    default_max_tokens: int = DEFAULT_MAX_TOKENS
    endpoint_host: str = DEFAULT_ENDPOINT_HOST  # hostname only, no scheme or path
    anthropic_version: str = ANTHROPIC_VERSION
    scheme: str = "https"

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigurationError("An API key is required")
        if "/" in self.endpoint_host:
            raise ConfigurationError(f"endpoint_host must be a bare hostname, got '{self.endpoint_host}'")

    @classmethod
    def from_env(cls, **overrides) -> "ApiConfig":
        api_key = overrides.pop("api_key", None) or os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise ConfigurationError("API key not provided and ANTHROPIC_API_KEY environment variable not set")
        model = os.environ.get("ANTHROPIC_MODEL")
        if model and "default_model" not in overrides:
            overrides["default_model"] = model
        return cls(api_key=api_key, **overrides)

@dataclass(frozen=True)
class TransportConfig:
    timeout: Optional[float] = 60.0   # seconds; forwarded to requests
    max_attempts: int = 3             # total attempts per call, first one included
    default_retry_delay: float = 1.0  # used when the provider sends no retry-after
    rate_limit_statuses: Tuple[int, ...] = (420, 429, 529)
    # Tracing
    enable_tracing: bool = False
    tracer_name: str = "convo_hub"
