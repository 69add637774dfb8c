"""Tests for CancellationToken."""

import pytest

from seamless.cancellation import CancellationToken
from seamless.errors import ModelLoadCancelled, OperationCancelled


class TestCancellationToken:
    def test_cancel_sets_flag(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel()
        assert token.cancelled

    def test_parent_cancels_children(self):
        parent = CancellationToken()
        child = parent.child()
        grandchild = child.child()

        parent.cancel()

        assert child.cancelled
        assert grandchild.cancelled

    def test_child_does_not_cancel_parent(self):
        parent = CancellationToken()
        parent.child().cancel()
        assert not parent.cancelled

    def test_child_of_cancelled_parent_starts_cancelled(self):
        parent = CancellationToken()
        parent.cancel()
        assert parent.child().cancelled

    def test_callbacks_run_once(self):
        token = CancellationToken()
        calls = []
        token.on_cancel(lambda: calls.append("a"))

        token.cancel()
        token.cancel()

        assert calls == ["a"]

    def test_callback_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []
        token.on_cancel(lambda: calls.append("late"))
        assert calls == ["late"]

    def test_failing_callback_does_not_stop_others(self):
        token = CancellationToken()
        calls = []

        def broken():
            raise RuntimeError("boom")

        token.on_cancel(broken)
        token.on_cancel(lambda: calls.append("ok"))
        token.cancel()

        assert calls == ["ok"]

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(OperationCancelled):
            token.raise_if_cancelled()
        with pytest.raises(ModelLoadCancelled):
            token.raise_if_cancelled(ModelLoadCancelled)
