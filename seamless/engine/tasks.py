"""Single-flight execution of translate/rephrase requests.

At most one generation runs per controller. Starting a new one cancels the
previous task and discards whatever it would still produce. Each task gets a
:class:`CancellationToken` that is checked before any output is applied, and
its asyncio task is cancelled too so a hung backend call is interrupted.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from functools import partial

from seamless.cancellation import CancellationToken
from seamless.engine.state import SessionState
from seamless.errors import BackendError, OperationCancelled, TranslatorError
from seamless.translation.base import GenerationKind, RequestParameters, TranslationBackend

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Operation cancelled"

Operation = Callable[[CancellationToken], Awaitable[None]]


@dataclass
class GenerationTask:
    """Handle on one in-flight generation."""

    task_id: int
    token: CancellationToken
    kind: GenerationKind | None = None
    _task: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self._task is None or self._task.done()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        self.token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        """Wait until the task has finished, however it finished."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task


class GenerationController:
    """Runs generations one at a time and publishes their output to a :class:`SessionState`."""

    def __init__(self, state: SessionState) -> None:
        self._state = state
        self._root = CancellationToken()
        self._current: GenerationTask | None = None
        self._last_task_id = 0

    @property
    def current(self) -> GenerationTask | None:
        """The active task, or None when nothing is running."""
        if self._current is not None and self._current.done:
            return None
        return self._current

    def start(self, operation: Operation, kind: GenerationKind | None = None) -> GenerationTask:
        """Cancel the running task, if any, then launch ``operation``.

        ``operation`` receives the new task's token and must check it before
        committing any result.
        """
        self._discard_current()

        self._last_task_id += 1
        handle = GenerationTask(task_id=self._last_task_id, token=self._root.child(), kind=kind)
        handle._task = asyncio.get_running_loop().create_task(
            operation(handle.token),
            name=f"generation-{handle.task_id}",
        )
        self._current = handle
        return handle

    def run(
        self,
        kind: GenerationKind,
        backend: TranslationBackend,
        params: RequestParameters,
    ) -> GenerationTask:
        """Start a translate/rephrase request against ``backend``."""
        self._discard_current()
        self._state.update(output="", status=kind.progress_message, in_progress=True)
        logger.info("%s started with backend %s", kind.label, backend.name)
        return self.start(partial(self._generate, kind, backend, params), kind)

    def cancel(self) -> bool:
        """Cancel the active task. Returns False when nothing was running."""
        handle = self.current
        self._current = None
        if handle is None:
            return False

        handle.cancel()
        logger.info("Generation %d cancelled", handle.task_id)
        self._state.update(in_progress=False, status=CANCELLED_MESSAGE)
        return True

    def shutdown(self) -> None:
        """Cancel every task started by this controller."""
        self._root.cancel()
        if self._current is not None:
            self._current.cancel()
            self._current = None

    def _discard_current(self) -> None:
        handle = self._current
        self._current = None
        if handle is not None and not handle.done:
            logger.debug("Superseding generation %d", handle.task_id)
            handle.cancel()

    async def _generate(
        self,
        kind: GenerationKind,
        backend: TranslationBackend,
        params: RequestParameters,
        token: CancellationToken,
    ) -> None:
        start_time = time.perf_counter()
        try:
            if backend.supports_streaming():
                await self._consume_stream(kind, backend, params, token)
            else:
                text = await backend.generate(kind, params)
                if token.cancelled:
                    logger.debug("Discarding %s result of a cancelled task", kind.value)
                    return
                self._state.update(output=text, status=None)
        except OperationCancelled:
            logger.debug("%s stopped by cancellation", kind.label)
            if not token.cancelled:
                self._state.update(status=CANCELLED_MESSAGE)
        except TranslatorError as exc:
            if not token.cancelled:
                logger.warning("%s failed: %s", kind.label, exc)
                self._state.update(status=f"{kind.label} failed: {_reason(exc)}")
        except Exception as exc:
            if not token.cancelled:
                logger.exception("%s failed unexpectedly", kind.label)
                self._state.update(status=f"{kind.label} failed: {exc}")
        else:
            if not token.cancelled:
                logger.info("%s finished in %.2fs", kind.label, time.perf_counter() - start_time)
        finally:
            if not token.cancelled:
                self._state.update(in_progress=False)

    async def _consume_stream(
        self,
        kind: GenerationKind,
        backend: TranslationBackend,
        params: RequestParameters,
        token: CancellationToken,
    ) -> None:
        async with aclosing(backend.generate_stream(kind, params)) as chunks:
            async for chunk in chunks:
                if token.cancelled:
                    logger.debug("Stopping %s stream after cancellation", kind.value)
                    break
                self._state.append_output(chunk)
                self._state.update(status=None)


def _reason(exc: TranslatorError) -> str:
    if isinstance(exc, BackendError):
        return exc.reason
    return str(exc)
