"""Web translation backend using an OpenAI-compatible chat completions API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import httpx
import openai
from openai import AsyncOpenAI

from seamless.errors import BackendError, ConnectivityError
from seamless.translation.base import GenerationKind, RequestParameters, TranslationBackend
from seamless.translation.config import WebConfig
from seamless.translation.limits import WEB_TEXT_LIMIT

logger = logging.getLogger(__name__)

CONNECTION_TEST_PROMPT = "what llm are you"

TRANSLATE_SYSTEM_PROMPT = "You are a helpful assistant that translates text."
TRANSLATE_PROMPT = (
    "Translate the following text from {source_language} to {target_language}: "
    "{text}. Only respond with the translated text."
)

REPHRASE_SYSTEM_PROMPT = "You are a helpful assistant that rephrases text."
REPHRASE_PROMPT = "Rephrase the following text: {text}. Only respond with the rephrased text."


def build_messages(kind: GenerationKind, params: RequestParameters) -> list[dict[str, str]]:
    """Chat messages for a translate or rephrase request."""
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


class WebBackend(TranslationBackend):
    """Backend that calls a remote ``/chat/completions`` endpoint."""

    text_limit = WEB_TEXT_LIMIT

    def __init__(
        self,
        config: WebConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or WebConfig()
        self._api_key = self._config.api_key
        self._owns_http_client = http_client is None
        self._http_client = http_client or openai.DefaultAsyncHttpxClient(timeout=self._config.timeout)
        self._client: AsyncOpenAI | None = None
        self._client_key: tuple[str, str | None] | None = None

    def _client_for(self, params: RequestParameters) -> AsyncOpenAI:
        """The API client for the endpoint and credential of ``params``.

        Only the latest client is kept. Every client wraps the same
        ``httpx`` pool, so replacing one leaves no connections behind.
        """
        key = (params.endpoint, self._api_key)
        if self._client is None or self._client_key != key:
            # An empty key makes the client omit the Authorization header.
            self._client = AsyncOpenAI(
                base_url=params.endpoint,
                api_key=self._api_key or "",
                timeout=self._config.timeout,
                max_retries=self._config.max_retries,
                http_client=self._http_client,
            )
            self._client_key = key
        return self._client

    async def test_connection(self, params: RequestParameters) -> bool:
        """Send a tiny completion request and report whether it succeeded.

        Raises:
            ConnectivityError: If the endpoint is unreachable or rejects the request.
        """
        client = self._client_for(params)
        try:
            await client.chat.completions.create(
                model=params.model_name,
                messages=[{"role": "user", "content": CONNECTION_TEST_PROMPT}],
            )
        except openai.APIError as exc:
            logger.warning("Connection test against %s failed: %s", params.endpoint, exc)
            raise ConnectivityError(_describe(exc)) from exc
        return True

    async def generate(self, kind: GenerationKind, params: RequestParameters) -> str:
        """Run one chat completion and return its trimmed content.

        Raises:
            ConnectivityError: If the endpoint cannot be reached.
            BackendError: If the API returns an error or an empty message.
        """
        client = self._client_for(params)
        try:
            response = await client.chat.completions.create(
                model=params.model_name,
                messages=build_messages(kind, params),
                max_tokens=self.text_limit.word_limit,
            )
        except openai.APIError as exc:
            raise _to_backend_error(exc) from exc

        if not response.choices or response.choices[0].message.content is None:
            raise BackendError("the API returned an empty response")

        return response.choices[0].message.content.strip()

    async def generate_stream(
        self, kind: GenerationKind, params: RequestParameters
    ) -> AsyncIterator[str]:
        """Stream completion deltas as they arrive.

        Closing the generator early closes the underlying HTTP response.
        """
        client = self._client_for(params)
        try:
            stream = await client.chat.completions.create(
                model=params.model_name,
                messages=build_messages(kind, params),
                max_tokens=self.text_limit.word_limit,
                stream=True,
            )
        except openai.APIError as exc:
            raise _to_backend_error(exc) from exc

        try:
            async for event in stream:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    yield delta
        except openai.APIError as exc:
            raise _to_backend_error(exc) from exc
        finally:
            await stream.close()

    def supports_streaming(self) -> bool:
        return True

    @property
    def credential(self) -> str | None:
        return self._api_key

    def set_credential(self, value: str) -> None:
        self._api_key = value or None
        logger.info("Web API credential updated")

    async def aclose(self) -> None:
        """Close the connection pool unless it was supplied by the caller."""
        self._client = None
        self._client_key = None
        if self._owns_http_client:
            await self._http_client.aclose()

    @property
    def name(self) -> str:
        return "web"


def _describe(exc: openai.APIError) -> str:
    if isinstance(exc, openai.APIStatusError):
        return f"HTTP {exc.status_code}: {exc.message}"
    return exc.message


def _to_backend_error(exc: openai.APIError) -> BackendError | ConnectivityError:
    if isinstance(exc, (openai.APIConnectionError, openai.AuthenticationError)):
        return ConnectivityError(_describe(exc))
    return BackendError(_describe(exc))
