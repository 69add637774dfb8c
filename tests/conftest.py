"""Shared fakes for the engine tests.

The fakes are driven from the test body through asyncio primitives, so every
interleaving (late progress, cancel mid-stream, superseded loads) can be
produced deterministically without timers.
"""

import asyncio

import pytest

from seamless.translation.base import GenerationKind, RequestParameters, TranslationBackend
from seamless.translation.limits import LOCAL_TEXT_LIMIT, WEB_TEXT_LIMIT


async def settle(rounds: int = 10) -> None:
    """Let every ready task run until it blocks again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeModelSource:
    """Model source whose loads block until the test opens their gate.

    With ``stubborn=True`` a load ignores asyncio cancellation and keeps
    waiting, like an engine that cannot be interrupted.
    """

    def __init__(self, stubborn: bool = False) -> None:
        self.stubborn = stubborn
        self.calls: list[str] = []
        self.cancel_calls = 0
        self.progress: dict[str, object] = {}
        self.failures: dict[str, Exception] = {}
        self._gates: dict[str, asyncio.Event] = {}

    def gate(self, model_id: str) -> asyncio.Event:
        if model_id not in self._gates:
            self._gates[model_id] = asyncio.Event()
        return self._gates[model_id]

    def finish(self, model_id: str) -> None:
        self.gate(model_id).set()

    def fail(self, model_id: str, error: Exception) -> None:
        self.failures[model_id] = error
        self.gate(model_id).set()

    async def load(self, model_id, progress=None):
        self.calls.append(model_id)
        self.progress[model_id] = progress
        gate = self.gate(model_id)
        try:
            await gate.wait()
        except asyncio.CancelledError:
            if not self.stubborn:
                raise
            await gate.wait()
        if model_id in self.failures:
            raise self.failures[model_id]

    def cancel(self) -> None:
        self.cancel_calls += 1


class QueueBackend(TranslationBackend):
    """Backend fed from a queue: push strings, ``None`` to end, or an exception."""

    text_limit = WEB_TEXT_LIMIT

    def __init__(self, streaming: bool = True, name: str = "queue") -> None:
        self.streaming = streaming
        self.queue: asyncio.Queue = asyncio.Queue()
        self.stream_closed = False
        self.requests: list[tuple[GenerationKind, RequestParameters]] = []
        self.connection_result: bool | Exception = True
        self._credential: str | None = None
        self._name = name

    async def test_connection(self, params):
        if isinstance(self.connection_result, Exception):
            raise self.connection_result
        return self.connection_result

    async def generate(self, kind, params):
        self.requests.append((kind, params))
        item = await self.queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def generate_stream(self, kind, params):
        self.requests.append((kind, params))
        try:
            while True:
                item = await self.queue.get()
                if item is None:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.stream_closed = True

    def supports_streaming(self) -> bool:
        return self.streaming

    @property
    def credential(self):
        return self._credential

    def set_credential(self, value):
        self._credential = value

    @property
    def name(self) -> str:
        return self._name


class FakeLocalBackend(FakeModelSource, TranslationBackend):
    """Local backend: gated loads plus a fixed streamed answer once loaded."""

    text_limit = LOCAL_TEXT_LIMIT

    def __init__(self, chunks=("Xin ", "chào"), stubborn: bool = False) -> None:
        super().__init__(stubborn=stubborn)
        self.chunks = list(chunks)
        self.loaded_model = None
        self.closed = False

    async def load(self, model_id, progress=None):
        await super().load(model_id, progress)
        self.loaded_model = model_id

    async def test_connection(self, params):
        return self.loaded_model is not None

    async def generate(self, kind, params):
        return "".join(self.chunks)

    async def generate_stream(self, kind, params):
        for chunk in self.chunks:
            yield chunk

    def supports_streaming(self) -> bool:
        return self.loaded_model is not None

    async def aclose(self) -> None:
        self.closed = True

    @property
    def name(self) -> str:
        return "fake-local"


@pytest.fixture
def params() -> RequestParameters:
    return RequestParameters(
        text="Good morning",
        model_name="test-model",
        api_url="http://translator.test/v1",
        source_language="English",
        target_language="Vietnamese",
    )
