"""Configuration dataclasses and factory functions for translation backends."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from seamless.translation.base import TranslationBackend
    from seamless.translation.local import LocalBackend
    from seamless.translation.web import WebBackend

ENV_PREFIX = "SEAMLESS_"

SUPPORTED_LANGUAGES = [
    "English",
    "Vietnamese",
    "Chinese",
    "Japanese",
    "Korean",
    "French",
    "German",
    "Spanish",
    "Portuguese",
    "Italian",
    "Russian",
    "Thai",
    "Indonesian",
]


class BackendMode(Enum):
    """Which backend serves generation requests."""

    WEB = "web"
    LOCAL = "local"

    @property
    def label(self) -> str:
        labels = {
            "web": "Web API",
            "local": "Local Model",
        }
        return labels[self.value]


@dataclass
class WebConfig:
    """Configuration for the OpenAI-compatible web API backend."""

    api_url: str = "http://localhost:1234/v1"
    api_port: str | None = None
    api_key: str | None = None
    model: str = "local-model"
    timeout: float = 60.0
    max_retries: int = 2


@dataclass
class LocalConfig:
    """Configuration for the local inference server backend."""

    host: str = "http://localhost:11434"
    model_id: str = "llama3.2:1b"
    timeout: float = 120.0
    max_new_tokens: int = 500


@dataclass
class TranslationConfig:
    """Top-level translation configuration."""

    mode: BackendMode = BackendMode.WEB
    web: WebConfig = field(default_factory=WebConfig)
    local: LocalConfig = field(default_factory=LocalConfig)
    source_language: str = "English"
    target_language: str = "Vietnamese"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> TranslationConfig:
        """Build a configuration from defaults overlaid with ``SEAMLESS_*`` variables.

        Raises:
            ValueError: If ``SEAMLESS_MODE`` is not a known backend mode.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        config = cls()
        if (mode := get("MODE")) is not None:
            config.mode = BackendMode(mode.lower())

        config.web = replace(
            config.web,
            api_url=get("API_URL") or config.web.api_url,
            api_port=get("API_PORT") or config.web.api_port,
            api_key=get("API_KEY") or config.web.api_key,
            model=get("MODEL") or config.web.model,
        )
        config.local = replace(
            config.local,
            host=get("LOCAL_HOST") or config.local.host,
            model_id=get("LOCAL_MODEL") or config.local.model_id,
        )
        config.source_language = get("SOURCE_LANGUAGE") or config.source_language
        config.target_language = get("TARGET_LANGUAGE") or config.target_language
        return config


def build_backends(config: TranslationConfig | None = None) -> tuple[WebBackend, LocalBackend]:
    """Create the web and local backends described by ``config``."""
    # Import here to avoid circular imports
    from seamless.translation.local import LocalBackend
    from seamless.translation.web import WebBackend

    if config is None:
        config = TranslationConfig()

    return WebBackend(config.web), LocalBackend(config.local)


def get_backend(
    mode: BackendMode,
    web: TranslationBackend,
    local: TranslationBackend,
) -> TranslationBackend:
    """Return the backend serving ``mode``.

    Raises:
        ValueError: If the mode is unknown.
    """
    if mode == BackendMode.WEB:
        return web
    elif mode == BackendMode.LOCAL:
        return local

    raise ValueError(f"Unknown backend mode: {mode}")
