"""Minimal async client for the Ollama local inference server.

Only the endpoints the local backend needs are wrapped:

- ``GET  /api/version``: liveness check
- ``GET  /api/tags``: models already on disk
- ``POST /api/pull``: download a model, newline-delimited JSON progress
- ``POST /api/generate``: warm a model into memory (empty prompt)
- ``POST /api/chat``: chat completion, optionally streamed as NDJSON

httpx errors are translated into :mod:`seamless.errors` types here so the
backend never sees transport exceptions.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

import httpx

from seamless.errors import BackendError, ConnectivityError

logger = logging.getLogger(__name__)

INVALID_RESPONSE_MESSAGE = "invalid JSON from server"


class OllamaClient:
    """Thin wrapper around an ``httpx.AsyncClient`` bound to one Ollama host."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = http_client or httpx.AsyncClient(base_url=host, timeout=timeout)

    async def version(self) -> str:
        data = await self._request_json("GET", "/api/version")
        return str(data.get("version", ""))

    async def list_models(self) -> set[str]:
        """Names of the models already available locally."""
        data = await self._request_json("GET", "/api/tags")
        names: set[str] = set()
        for entry in data.get("models") or []:
            if not isinstance(entry, dict):
                continue
            for key in ("name", "model"):
                if entry.get(key):
                    names.add(entry[key])
        return names

    async def pull(self, model: str) -> AsyncIterator[dict[str, Any]]:
        """Yield pull progress events until the download completes.

        Events carry ``status`` and, while layers download, ``total`` and
        ``completed`` byte counts.
        """
        payload = {"model": model, "stream": True}
        async with aclosing(self._stream_ndjson("/api/pull", payload)) as events:
            async for event in events:
                yield event

    async def warm(self, model: str) -> None:
        """Load ``model`` into memory without generating anything."""
        await self._request_json(
            "POST", "/api/generate", json={"model": model, "prompt": "", "stream": False}
        )

    async def chat(
        self,
        model: str,
        messages: list[dict[str, str]],
        options: dict[str, Any] | None = None,
    ) -> str:
        data = await self._request_json(
            "POST",
            "/api/chat",
            json={"model": model, "messages": messages, "stream": False, "options": options or {}},
        )
        return _message_content(data)

    async def chat_stream(
        self,
        model: str,
        messages: list[dict[str, str]],
        options: dict[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        payload = {"model": model, "messages": messages, "stream": True, "options": options or {}}
        async with aclosing(self._stream_ndjson("/api/chat", payload)) as events:
            async for event in events:
                content = _message_content(event)
                if content:
                    yield content
                if event.get("done"):
                    break

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ConnectivityError(f"Ollama server unreachable: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise BackendError(_status_reason(exc.response)) from exc
        except httpx.HTTPError as exc:
            raise ConnectivityError(str(exc)) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise BackendError(INVALID_RESPONSE_MESSAGE) from exc
        if not isinstance(data, dict):
            raise BackendError(INVALID_RESPONSE_MESSAGE)
        if data.get("error"):
            raise BackendError(str(data["error"]))
        return data

    async def _stream_ndjson(
        self, path: str, payload: dict[str, Any]
    ) -> AsyncIterator[dict[str, Any]]:
        try:
            async with self._client.stream("POST", path, json=payload) as response:
                if response.is_error:
                    await response.aread()
                    raise BackendError(_status_reason(response))
                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        event = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Skipping non-JSON line from %s: %r", path, line)
                        continue
                    if not isinstance(event, dict):
                        logger.debug("Skipping non-object event from %s: %r", path, line)
                        continue
                    if event.get("error"):
                        raise BackendError(str(event["error"]))
                    yield event
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ConnectivityError(f"Ollama server unreachable: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ConnectivityError(str(exc)) from exc


def _status_reason(response: httpx.Response) -> str:
    try:
        detail = response.json().get("error")
    except (ValueError, AttributeError):
        detail = None
    return f"HTTP {response.status_code}: {detail or response.reason_phrase}"


def _message_content(payload: dict[str, Any]) -> str:
    message = payload.get("message") or {}
    if not isinstance(message, dict):
        raise BackendError(INVALID_RESPONSE_MESSAGE)
    return str(message.get("content") or "")
