"""
Configuration for the visual notes pipeline.
"""
import logging
import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

from .errors import ConfigurationError
from .renderer import DEFAULT_IMAGE_MODEL, DEFAULT_IMAGEN_BASE_URL
from .scheduler import RENDER_CHUNK_SIZE
from .splitter import MIN_SEGMENT_CHARS


T = TypeVar("T")

TEXT_PROVIDERS = ("openai", "gemini")


@dataclass(frozen=True)
class PipelineConfig:
    """Pipeline configuration loaded from environment variables"""

    # Text completion
    text_provider: str = "openai"
    openai_api_key: str = ""
    text_model: str = "gpt-4o-mini"
    text_temperature: float = 0.7
    gemini_api_key: str = ""
    gemini_text_model: str = "gemini-2.0-flash"

    # Image generation
    image_model: str = DEFAULT_IMAGE_MODEL
    imagen_base_url: str = DEFAULT_IMAGEN_BASE_URL

    # Timeouts (seconds)
    request_timeout_seconds: float = 120.0
    image_timeout_seconds: float = 180.0

    # Retry / batching
    render_max_attempts: int = 3
    render_backoff_seconds: float = 1.0
    render_chunk_size: int = RENDER_CHUNK_SIZE
    min_segment_chars: int = MIN_SEGMENT_CHARS

    # Logging
    log_level: str = "INFO"


def load_config(env: Optional[Mapping[str, str]] = None) -> PipelineConfig:
    """Load configuration from environment variables"""
    env = os.environ if env is None else env

    text_provider = env.get("TEXT_PROVIDER", "openai").strip().lower()
    if text_provider not in TEXT_PROVIDERS:
        raise ConfigurationError(
            f"TEXT_PROVIDER must be one of {', '.join(TEXT_PROVIDERS)}, got {text_provider!r}"
        )

    config = PipelineConfig(
        text_provider=text_provider,
        openai_api_key=env.get("OPENAI_API_KEY", ""),
        text_model=env.get("TEXT_MODEL", "gpt-4o-mini"),
        text_temperature=_number(env, "TEXT_TEMPERATURE", "0.7", float),
        # API_KEY is accepted for setups that share one Google key.
        gemini_api_key=env.get("GEMINI_API_KEY") or env.get("API_KEY", ""),
        gemini_text_model=env.get("GEMINI_TEXT_MODEL", "gemini-2.0-flash"),
        image_model=env.get("IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
        imagen_base_url=env.get("IMAGEN_BASE_URL", DEFAULT_IMAGEN_BASE_URL),
        request_timeout_seconds=_number(env, "REQUEST_TIMEOUT_SECONDS", "120", float),
        image_timeout_seconds=_number(env, "IMAGE_TIMEOUT_SECONDS", "180", float),
        render_max_attempts=_number(env, "RENDER_MAX_ATTEMPTS", "3", int),
        render_backoff_seconds=_number(env, "RENDER_BACKOFF_SECONDS", "1.0", float),
        render_chunk_size=_number(env, "RENDER_CHUNK_SIZE", str(RENDER_CHUNK_SIZE), int),
        min_segment_chars=_number(env, "MIN_SEGMENT_CHARS", str(MIN_SEGMENT_CHARS), int),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
    _validate(config)
    return config


def _validate(config: PipelineConfig) -> None:
    for name in ("render_max_attempts", "render_chunk_size", "min_segment_chars"):
        if getattr(config, name) < 1:
            raise ConfigurationError(f"{name.upper()} must be at least 1, got {getattr(config, name)}")
    if not isinstance(logging.getLevelName(config.log_level), int):
        raise ConfigurationError(f"LOG_LEVEL {config.log_level!r} is not a logging level")


def _number(env: Mapping[str, str], name: str, default: str, cast: Callable[[str], T]) -> T:
    raw = env.get(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
