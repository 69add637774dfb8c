"""Observable session state consumed by the presentation layer."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, fields

from seamless.engine.loading import ModelLoadState
from seamless.translation.config import BackendMode

logger = logging.getLogger(__name__)

ChangeListener = Callable[[frozenset[str]], None]

_OBSERVED_FIELDS = ("mode", "load_state", "output", "status", "connection_status", "in_progress")


@dataclass
class SessionState:
    """Everything a view needs to render the translator.

    Mutate through :meth:`update` or :meth:`append_output` so listeners are
    told which fields changed.
    """

    mode: BackendMode = BackendMode.WEB
    load_state: ModelLoadState = field(default_factory=ModelLoadState.idle)
    output: str = ""
    status: str | None = None
    connection_status: str | None = None
    in_progress: bool = False
    _listeners: list[ChangeListener] = field(default_factory=list, init=False, repr=False, compare=False)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener``; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, **changes: object) -> frozenset[str]:
        """Set fields and notify listeners of the ones whose value changed."""
        changed: set[str] = set()
        for name, value in changes.items():
            if name not in _OBSERVED_FIELDS:
                raise AttributeError(f"SessionState has no observable field {name!r}")
            if getattr(self, name) != value:
                setattr(self, name, value)
                changed.add(name)
        return self._notify(changed)

    def append_output(self, chunk: str) -> None:
        if chunk:
            self.output += chunk
            self._notify({"output"})

    def snapshot(self) -> dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name in _OBSERVED_FIELDS}

    def _notify(self, changed: set[str]) -> frozenset[str]:
        frozen = frozenset(changed)
        if not frozen:
            return frozen
        for listener in list(self._listeners):
            try:
                listener(frozen)
            except Exception:
                logger.exception("Session state listener failed")
        return frozen
