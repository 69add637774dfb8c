"""Cooperative cancellation tokens.

A token is a flag that producers check at their natural yield points. Tokens
form a tree: cancelling a parent cancels every child created from it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from seamless.errors import OperationCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot cancellation flag with child tokens and callbacks."""

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []
        self._children: list[CancellationToken] = []
        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def child(self) -> CancellationToken:
        return CancellationToken(parent=self)

    def cancel(self) -> None:
        """Set the flag, run callbacks, then cancel children. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

        children, self._children = self._children, []
        for child in children:
            child.cancel()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def raise_if_cancelled(
        self, error: type[OperationCancelled] = OperationCancelled
    ) -> None:
        if self._cancelled:
            raise error("operation cancelled")
