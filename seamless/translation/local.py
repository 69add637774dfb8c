"""Local translation backend served by an on-device Ollama server.

The backend owns the "materialise a model" step: check whether the model is
on disk, pull it with progress reporting if not, then warm it into memory.
The load is cooperatively cancellable through :meth:`LocalBackend.cancel`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing

from seamless.cancellation import CancellationToken
from seamless.errors import (
    BackendError,
    BackendUnavailable,
    ConnectivityError,
    LoadFailure,
    ModelLoadCancelled,
)
from seamless.translation.base import GenerationKind, RequestParameters, TranslationBackend
from seamless.translation.config import LocalConfig
from seamless.translation.limits import LOCAL_TEXT_LIMIT
from seamless.translation.ollama import OllamaClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

TRANSLATE_SYSTEM_PROMPT = "You are a helpful assistant."
TRANSLATE_PROMPT = (
    "You must translate the following text from {source_language} to {target_language}, "
    "must only respond with the translated text, do not add anything else.\n"
    '"{text}"'
)

REPHRASE_SYSTEM_PROMPT = "You are a helpful assistant that rephrases text."
REPHRASE_PROMPT = (
    "Rephrase the following text, only respond with the rephrased text. "
    "Do not add anything else.\n"
    '"{text}"'
)


def build_local_messages(kind: GenerationKind, params: RequestParameters) -> list[dict[str, str]]:
    if kind == GenerationKind.TRANSLATE:
        system = TRANSLATE_SYSTEM_PROMPT
        prompt = TRANSLATE_PROMPT.format(
            source_language=params.source_language,
            target_language=params.target_language,
            text=params.text,
        )
    else:
        system = REPHRASE_SYSTEM_PROMPT
        prompt = REPHRASE_PROMPT.format(text=params.text)

    return [
        {"role": "system", "content": system},
        {"role": "user", "content": prompt},
    ]


def _is_present(model_id: str, available: set[str]) -> bool:
    if model_id in available:
        return True
    # Ollama lists untagged models with an explicit ":latest" suffix.
    return ":" not in model_id and f"{model_id}:latest" in available


class LocalBackend(TranslationBackend):
    """Backend that generates text with a model loaded into a local server."""

    text_limit = LOCAL_TEXT_LIMIT

    def __init__(
        self,
        config: LocalConfig | None = None,
        client: OllamaClient | None = None,
    ) -> None:
        self._config = config or LocalConfig()
        self._client = client or OllamaClient(self._config.host, timeout=self._config.timeout)
        self._model_id: str | None = None
        self._load_token: CancellationToken | None = None

    @property
    def loaded_model(self) -> str | None:
        return self._model_id

    async def load(self, model_id: str, progress: ProgressCallback | None = None) -> None:
        """Make ``model_id`` ready for generation, downloading it if needed.

        ``progress`` receives download fractions in ``[0, 1]`` and is called on
        the event loop running this coroutine.

        Raises:
            ModelLoadCancelled: If :meth:`cancel` was called before completion.
            LoadFailure: If the server cannot provide the model.
        """
        token = CancellationToken()
        self._load_token = token
        start_time = time.perf_counter()
        logger.info("Loading local model %s", model_id)

        try:
            available = await self._client.list_models()
            token.raise_if_cancelled(ModelLoadCancelled)

            if not _is_present(model_id, available):
                await self._pull(model_id, token, progress)

            token.raise_if_cancelled(ModelLoadCancelled)
            await self._client.warm(model_id)
            token.raise_if_cancelled(ModelLoadCancelled)
        except (ConnectivityError, BackendError) as exc:
            raise LoadFailure(str(exc)) from exc
        finally:
            if self._load_token is token:
                self._load_token = None

        self._model_id = model_id
        logger.info("Local model %s ready in %.2fs", model_id, time.perf_counter() - start_time)

    async def _pull(
        self,
        model_id: str,
        token: CancellationToken,
        progress: ProgressCallback | None,
    ) -> None:
        logger.info("Model %s not found locally, downloading", model_id)
        async with aclosing(self._client.pull(model_id)) as events:
            async for event in events:
                token.raise_if_cancelled(ModelLoadCancelled)
                total = event.get("total")
                completed = event.get("completed")
                if progress is not None and total and completed is not None:
                    progress(min(max(completed / total, 0.0), 1.0))

    def cancel(self) -> None:
        """Ask the in-flight :meth:`load` to stop at its next checkpoint."""
        if self._load_token is not None:
            logger.info("Cancelling local model load")
            self._load_token.cancel()

    def _require_model(self) -> str:
        if self._model_id is None:
            raise BackendUnavailable("No local model is loaded")
        return self._model_id

    async def test_connection(self, params: RequestParameters) -> bool:
        """True when a model is loaded and the server answers.

        Raises:
            ConnectivityError: If a model is loaded but the server is unreachable.
        """
        if self._model_id is None:
            return False
        try:
            await self._client.version()
        except BackendError as exc:
            raise ConnectivityError(exc.reason) from exc
        return True

    async def generate(self, kind: GenerationKind, params: RequestParameters) -> str:
        model_id = self._require_model()
        text = await self._client.chat(
            model_id,
            build_local_messages(kind, params),
            options={"num_predict": self._config.max_new_tokens},
        )
        return text.strip()

    async def generate_stream(
        self, kind: GenerationKind, params: RequestParameters
    ) -> AsyncIterator[str]:
        model_id = self._require_model()
        chunks = self._client.chat_stream(
            model_id,
            build_local_messages(kind, params),
            options={"num_predict": self._config.max_new_tokens},
        )
        async with aclosing(chunks):
            async for chunk in chunks:
                yield chunk

    def supports_streaming(self) -> bool:
        return self._model_id is not None

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def name(self) -> str:
        return "local"
