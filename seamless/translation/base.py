"""Abstract base class for translation backends (Strategy pattern)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from seamless.translation.limits import TextLimit

if TYPE_CHECKING:
    from seamless.translation.config import TranslationConfig


class GenerationKind(Enum):
    """What a generation request asks the model to do."""

    TRANSLATE = "translate"
    REPHRASE = "rephrase"

    @property
    def label(self) -> str:
        labels = {
            "translate": "Translation",
            "rephrase": "Rephrasing",
        }
        return labels[self.value]

    @property
    def progress_message(self) -> str:
        messages = {
            "translate": "Translating...",
            "rephrase": "Rephrasing...",
        }
        return messages[self.value]


@dataclass(frozen=True)
class RequestParameters:
    """Immutable inputs of a single backend call.

    ``source_language`` and ``target_language`` are only read for
    translations.
    """

    text: str
    model_name: str
    api_url: str
    api_port: str | None = None
    source_language: str = "English"
    target_language: str = "Vietnamese"

    @property
    def endpoint(self) -> str:
        """Base address of the chat completions API, port included."""
        if self.api_port:
            return f"{self.api_url}:{self.api_port}"
        return self.api_url

    @classmethod
    def from_config(cls, config: TranslationConfig, text: str) -> RequestParameters:
        return cls(
            text=text,
            model_name=config.web.model,
            api_url=config.web.api_url,
            api_port=config.web.api_port,
            source_language=config.source_language,
            target_language=config.target_language,
        )


class TranslationBackend(ABC):
    """Interface shared by the web and local backends.

    Backends that cannot stream only implement :meth:`generate`; the default
    :meth:`generate_stream` wraps its result in a one-chunk stream so callers
    have a single code path.
    """

    text_limit: TextLimit

    @abstractmethod
    async def test_connection(self, params: RequestParameters) -> bool:
        """Check that the backend answers.

        Raises:
            ConnectivityError: On network or authentication failure.
        """
        ...

    @abstractmethod
    async def generate(self, kind: GenerationKind, params: RequestParameters) -> str:
        """Return the full translated or rephrased text.

        Raises:
            BackendError: If the backend fails to produce text.
        """
        ...

    async def generate_stream(
        self, kind: GenerationKind, params: RequestParameters
    ) -> AsyncIterator[str]:
        """Yield the output as ordered text chunks. Not restartable."""
        text = await self.generate(kind, params)
        if text:
            yield text

    def supports_streaming(self) -> bool:
        return False

    @property
    def credential(self) -> str | None:
        return None

    def set_credential(self, value: str) -> None:
        """Store a credential for later calls. No-op unless overridden."""

    async def aclose(self) -> None:
        """Release network resources held by the backend."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this backend."""
        ...
