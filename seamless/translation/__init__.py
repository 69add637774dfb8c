"""Translation backends: Strategy pattern for swappable web and local providers."""

from seamless.translation.base import GenerationKind, RequestParameters, TranslationBackend
from seamless.translation.config import (
    SUPPORTED_LANGUAGES,
    BackendMode,
    LocalConfig,
    TranslationConfig,
    WebConfig,
    build_backends,
    get_backend,
)
from seamless.translation.limits import LOCAL_TEXT_LIMIT, WEB_TEXT_LIMIT, TextLimit
from seamless.translation.local import LocalBackend
from seamless.translation.web import WebBackend

__all__ = [
    "BackendMode",
    "GenerationKind",
    "LOCAL_TEXT_LIMIT",
    "LocalBackend",
    "LocalConfig",
    "RequestParameters",
    "SUPPORTED_LANGUAGES",
    "TextLimit",
    "TranslationBackend",
    "TranslationConfig",
    "WEB_TEXT_LIMIT",
    "WebBackend",
    "WebConfig",
    "build_backends",
    "get_backend",
]
