"""Local model loading state machine.

States and the only transitions allowed between them::

    Idle ──load──▶ Loading ──progress──▶ Downloading(p) ──progress──▶ Downloading(p')
    Loading | Downloading ──success──▶ Loaded
    Loading | Downloading ──cancel───▶ Cancelled
    Loading | Downloading ──failure──▶ Error(msg)
    Loaded | Cancelled | Error ──load──▶ Loading

A new ``load`` while Loading/Downloading supersedes the in-flight attempt and
re-enters Loading.

Every attempt gets a monotonically increasing id. Progress, success and
failure reports carry the id of the attempt that produced them and are
dropped unless it is still the current attempt, so a slow superseded
download can never overwrite the state of a newer one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from seamless.cancellation import CancellationToken
from seamless.errors import InvalidTransition, LoadFailure, OperationCancelled

logger = logging.getLogger(__name__)

# Two Downloading states closer than this compare equal.
PROGRESS_TOLERANCE = 0.01

# Delay before acquisition starts; a cancel inside it never reaches the backend.
LOAD_CANCEL_GRACE_SECONDS = 0.05


class LoadStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    DOWNLOADING = "downloading"
    LOADED = "loaded"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def color(self) -> str:
        colors = {
            "idle": "#9E9E9E",
            "loading": "#1976D2",
            "downloading": "#7B1FA2",
            "loaded": "#388E3C",
            "cancelled": "#F57C00",
            "error": "#D32F2F",
        }
        return colors.get(self.value, "#9E9E9E")

    def is_in_flight(self) -> bool:
        return self in (LoadStatus.LOADING, LoadStatus.DOWNLOADING)

    def is_terminal(self) -> bool:
        return self in (LoadStatus.LOADED, LoadStatus.CANCELLED, LoadStatus.ERROR)


_TRANSITIONS: dict[LoadStatus, frozenset[LoadStatus]] = {
    LoadStatus.IDLE: frozenset({LoadStatus.LOADING}),
    LoadStatus.LOADING: frozenset(
        {
            LoadStatus.LOADING,
            LoadStatus.DOWNLOADING,
            LoadStatus.LOADED,
            LoadStatus.CANCELLED,
            LoadStatus.ERROR,
        }
    ),
    LoadStatus.DOWNLOADING: frozenset(
        {
            LoadStatus.LOADING,
            LoadStatus.DOWNLOADING,
            LoadStatus.LOADED,
            LoadStatus.CANCELLED,
            LoadStatus.ERROR,
        }
    ),
    LoadStatus.LOADED: frozenset({LoadStatus.LOADING}),
    LoadStatus.CANCELLED: frozenset({LoadStatus.LOADING}),
    LoadStatus.ERROR: frozenset({LoadStatus.LOADING}),
}


@dataclass(frozen=True, eq=False)
class ModelLoadState:
    """Current phase of local model acquisition.

    Equality is by status, except that ``Downloading`` values are equal when
    their progress differs by less than :data:`PROGRESS_TOLERANCE` and
    ``Error`` values also compare their message. The tolerance rule is not
    transitive; it only exists to suppress redundant change notifications.
    """

    status: LoadStatus
    progress: float = 0.0
    message: str = ""

    @classmethod
    def idle(cls) -> ModelLoadState:
        return cls(LoadStatus.IDLE)

    @classmethod
    def loading(cls) -> ModelLoadState:
        return cls(LoadStatus.LOADING)

    @classmethod
    def downloading(cls, progress: float) -> ModelLoadState:
        return cls(LoadStatus.DOWNLOADING, progress=min(max(progress, 0.0), 1.0))

    @classmethod
    def loaded(cls) -> ModelLoadState:
        return cls(LoadStatus.LOADED)

    @classmethod
    def cancelled(cls) -> ModelLoadState:
        return cls(LoadStatus.CANCELLED)

    @classmethod
    def error(cls, message: str) -> ModelLoadState:
        return cls(LoadStatus.ERROR, message=message)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModelLoadState):
            return NotImplemented
        if self.status != other.status:
            return False
        if self.status == LoadStatus.DOWNLOADING:
            return abs(self.progress - other.progress) < PROGRESS_TOLERANCE
        if self.status == LoadStatus.ERROR:
            return self.message == other.message
        return True

    def __hash__(self) -> int:
        if self.status == LoadStatus.ERROR:
            return hash((self.status, self.message))
        return hash(self.status)

    @property
    def in_flight(self) -> bool:
        return self.status.is_in_flight()

    @property
    def label(self) -> str:
        if self.status == LoadStatus.DOWNLOADING:
            return f"Downloading model: {int(self.progress * 100)}%"
        if self.status == LoadStatus.ERROR:
            return f"Error loading model: {self.message}"
        labels = {
            LoadStatus.IDLE: "Model not loaded",
            LoadStatus.LOADING: "Loading model...",
            LoadStatus.LOADED: "Model loaded successfully",
            LoadStatus.CANCELLED: "Download cancelled",
        }
        return labels[self.status]

    def __repr__(self) -> str:
        if self.status == LoadStatus.DOWNLOADING:
            return f"ModelLoadState.downloading({self.progress:.3f})"
        if self.status == LoadStatus.ERROR:
            return f"ModelLoadState.error({self.message!r})"
        return f"ModelLoadState.{self.status.value}()"


@dataclass(frozen=True)
class LoadAttempt:
    """Identity of one ``load`` invocation."""

    attempt_id: int
    model_id: str


class ModelSource(Protocol):
    """What the state machine needs from the local backend."""

    async def load(self, model_id: str, progress: Callable[[float], None] | None = None) -> None: ...

    def cancel(self) -> None: ...


StateListener = Callable[[ModelLoadState], None]


class ModelLoader:
    """Drives a :class:`ModelSource` through the load state machine.

    Must be used from a single event loop; every state write happens on it.
    """

    def __init__(
        self,
        source: ModelSource,
        grace_period: float = LOAD_CANCEL_GRACE_SECONDS,
    ) -> None:
        self._source = source
        self._grace_period = grace_period
        self._state = ModelLoadState.idle()
        self._attempt: LoadAttempt | None = None
        self._last_attempt_id = 0
        self._token: CancellationToken | None = None
        self._task: asyncio.Task[None] | None = None
        self._loaded_model: str | None = None
        self._listeners: list[StateListener] = []

    # ── Observation ──────────────────────────────────────────────────────

    @property
    def state(self) -> ModelLoadState:
        return self._state

    @property
    def current_attempt(self) -> LoadAttempt | None:
        return self._attempt

    @property
    def loaded_model(self) -> str | None:
        """Model id of the attempt that last reached ``Loaded``."""
        return self._loaded_model

    @property
    def is_loaded(self) -> bool:
        return self._state.status == LoadStatus.LOADED

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── Commands ─────────────────────────────────────────────────────────

    def load(self, model_id: str) -> LoadAttempt:
        """Start a new attempt for ``model_id``, superseding any in-flight one.

        Requires a running event loop.
        """
        self._supersede()

        self._last_attempt_id += 1
        attempt = LoadAttempt(self._last_attempt_id, model_id)
        token = CancellationToken()
        self._attempt = attempt
        self._token = token
        self._transition(ModelLoadState.loading())

        logger.info("Load attempt %d started for %s", attempt.attempt_id, model_id)
        self._task = asyncio.get_running_loop().create_task(
            self._acquire(attempt, token),
            name=f"model-load-{attempt.attempt_id}",
        )
        return attempt

    def cancel_load(self) -> None:
        """Cancel the current attempt; a no-op unless Loading or Downloading."""
        if self._token is not None:
            self._token.cancel()
        self._source.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

        if self._state.in_flight:
            attempt_id = self._attempt.attempt_id if self._attempt else 0
            logger.info("Load attempt %d cancelled", attempt_id)
            self._transition(ModelLoadState.cancelled())

    async def wait(self) -> ModelLoadState:
        """Wait for the current attempt to settle and return the state."""
        task = self._task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        return self._state

    # ── Internals ────────────────────────────────────────────────────────

    def _supersede(self) -> None:
        if self._task is None or self._task.done():
            return
        logger.info("Superseding load attempt %d", self._attempt.attempt_id if self._attempt else 0)
        if self._token is not None:
            self._token.cancel()
        self._source.cancel()
        self._task.cancel()

    async def _acquire(self, attempt: LoadAttempt, token: CancellationToken) -> None:
        try:
            await asyncio.sleep(self._grace_period)
            if token.cancelled:
                self._finish(attempt, ModelLoadState.cancelled())
                return

            await self._source.load(
                attempt.model_id,
                lambda fraction: self._on_progress(attempt, fraction),
            )
        except asyncio.CancelledError:
            self._finish(attempt, ModelLoadState.cancelled())
            raise
        except OperationCancelled:
            self._finish(attempt, ModelLoadState.cancelled())
        except LoadFailure as exc:
            logger.warning("Load attempt %d failed: %s", attempt.attempt_id, exc.message)
            self._finish(attempt, ModelLoadState.error(exc.message))
        except Exception as exc:
            logger.exception("Load attempt %d failed unexpectedly", attempt.attempt_id)
            self._finish(attempt, ModelLoadState.error(str(exc) or type(exc).__name__))
        else:
            if self._finish(attempt, ModelLoadState.loaded()):
                self._loaded_model = attempt.model_id
                logger.info("Load attempt %d finished: %s loaded", attempt.attempt_id, attempt.model_id)

    def _is_current(self, attempt: LoadAttempt) -> bool:
        return self._attempt is not None and self._attempt.attempt_id == attempt.attempt_id

    def _on_progress(self, attempt: LoadAttempt, fraction: float) -> None:
        if not self._is_current(attempt) or not self._state.in_flight:
            logger.debug("Dropping progress %.3f from attempt %d", fraction, attempt.attempt_id)
            return
        self._transition(ModelLoadState.downloading(fraction))

    def _finish(self, attempt: LoadAttempt, state: ModelLoadState) -> bool:
        """Apply a terminal state if ``attempt`` still owns the machine."""
        if not self._is_current(attempt):
            logger.debug("Dropping %r from superseded attempt %d", state, attempt.attempt_id)
            return False
        if not self._state.in_flight:
            logger.debug("Dropping %r, attempt %d already settled", state, attempt.attempt_id)
            return False
        self._transition(state)
        return True

    def _transition(self, new_state: ModelLoadState) -> None:
        allowed = _TRANSITIONS[self._state.status]
        if new_state.status not in allowed:
            raise InvalidTransition(f"{self._state!r} -> {new_state!r}")
        if new_state == self._state:
            return
        self._state = new_state
        for listener in list(self._listeners):
            listener(new_state)
