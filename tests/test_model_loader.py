"""Tests for the ModelLoader state machine."""

import pytest

from conftest import FakeModelSource, settle
from seamless.engine.loading import LoadStatus, ModelLoader, ModelLoadState
from seamless.errors import InvalidTransition, LoadFailure, ModelLoadCancelled


def make_loader(source=None, grace_period=0.0):
    source = source or FakeModelSource()
    loader = ModelLoader(source, grace_period=grace_period)
    seen: list[ModelLoadState] = []
    loader.subscribe(seen.append)
    return loader, source, seen


class TestHappyPath:
    """Tests for a single uninterrupted load."""

    @pytest.mark.asyncio
    async def test_idle_to_loaded(self):
        """Idle -> Loading -> Downloading -> Loaded."""
        loader, source, seen = make_loader()
        assert loader.state == ModelLoadState.idle()

        attempt = loader.load("m1")
        assert loader.state == ModelLoadState.loading()
        assert loader.current_attempt == attempt
        await settle()
        assert source.calls == ["m1"]

        source.progress["m1"](0.25)
        source.progress["m1"](1.0)
        source.finish("m1")
        final = await loader.wait()

        assert final == ModelLoadState.loaded()
        assert loader.loaded_model == "m1"
        assert seen == [
            ModelLoadState.loading(),
            ModelLoadState.downloading(0.25),
            ModelLoadState.downloading(1.0),
            ModelLoadState.loaded(),
        ]

    @pytest.mark.asyncio
    async def test_noisy_progress_is_coalesced(self):
        """Progress ticks within the tolerance do not notify listeners."""
        loader, source, seen = make_loader()
        loader.load("m1")
        await settle()

        source.progress["m1"](0.500)
        source.progress["m1"](0.503)
        source.progress["m1"](0.505)

        assert seen == [ModelLoadState.loading(), ModelLoadState.downloading(0.5)]

    @pytest.mark.asyncio
    async def test_attempt_ids_increase(self):
        loader, source, _ = make_loader()
        first = loader.load("m1")
        second = loader.load("m2")
        assert second.attempt_id > first.attempt_id
        assert second.model_id == "m2"


class TestSupersededAttempts:
    """Only the latest attempt may write the state."""

    @pytest.mark.asyncio
    async def test_late_progress_from_old_attempt_is_dropped(self):
        loader, source, seen = make_loader()
        loader.load("m1")
        await settle()
        old_progress = source.progress["m1"]

        loader.load("m2")
        await settle()
        old_progress(0.9)

        assert loader.state == ModelLoadState.loading()
        source.finish("m2")
        assert await loader.wait() == ModelLoadState.loaded()
        assert loader.loaded_model == "m2"
        assert ModelLoadState.downloading(0.9) not in seen

    @pytest.mark.asyncio
    async def test_superseding_cancels_previous_attempt(self):
        loader, source, _ = make_loader()
        loader.load("m1")
        await settle()

        loader.load("m2")
        assert source.cancel_calls == 1

    @pytest.mark.asyncio
    async def test_late_success_from_old_attempt_is_dropped(self):
        """An engine that ignores cancellation cannot mark the old model loaded."""
        loader, source, _ = make_loader(FakeModelSource(stubborn=True))
        loader.load("m1")
        await settle()
        loader.load("m2")
        await settle()

        source.finish("m1")
        await settle()
        assert loader.state == ModelLoadState.loading()
        assert loader.loaded_model is None

        source.progress["m2"](0.4)
        source.finish("m2")
        assert await loader.wait() == ModelLoadState.loaded()
        assert loader.loaded_model == "m2"

    @pytest.mark.asyncio
    async def test_late_failure_from_old_attempt_is_dropped(self):
        loader, source, _ = make_loader(FakeModelSource(stubborn=True))
        loader.load("m1")
        await settle()
        loader.load("m2")
        await settle()

        source.fail("m1", LoadFailure("network down"))
        await settle()
        assert loader.state == ModelLoadState.loading()

        source.finish("m2")
        assert await loader.wait() == ModelLoadState.loaded()


class TestCancellation:
    """Tests for cancel_load and cancellation surfacing through failures."""

    @pytest.mark.asyncio
    async def test_cancel_during_load_is_cancelled_not_error(self):
        loader, source, _ = make_loader()
        loader.load("m1")
        await settle()
        source.progress["m1"](0.3)

        loader.cancel_load()

        assert loader.state == ModelLoadState.cancelled()
        assert source.cancel_calls == 1
        assert await loader.wait() == ModelLoadState.cancelled()

    @pytest.mark.asyncio
    async def test_cancellation_through_failure_path(self):
        """A ModelLoadCancelled raised by the source becomes Cancelled."""
        loader, source, _ = make_loader()
        loader.load("m1")
        await settle()

        source.fail("m1", ModelLoadCancelled("stopped"))

        assert await loader.wait() == ModelLoadState.cancelled()

    @pytest.mark.asyncio
    async def test_cancel_before_acquisition_starts(self):
        """A cancel inside the grace window never reaches the source."""
        loader, source, _ = make_loader(grace_period=0.05)
        loader.load("m1")
        loader.cancel_load()

        assert await loader.wait() == ModelLoadState.cancelled()
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_cancel_when_idle_is_noop(self):
        loader, _, seen = make_loader()
        loader.cancel_load()
        assert loader.state == ModelLoadState.idle()
        assert seen == []

    @pytest.mark.asyncio
    async def test_cancel_after_loaded_is_noop(self):
        loader, source, _ = make_loader()
        loader.load("m1")
        await settle()
        source.finish("m1")
        await loader.wait()

        loader.cancel_load()

        assert loader.state == ModelLoadState.loaded()

    @pytest.mark.asyncio
    async def test_stubborn_load_after_cancel_stays_cancelled(self):
        loader, source, _ = make_loader(FakeModelSource(stubborn=True))
        loader.load("m1")
        await settle()
        loader.cancel_load()

        source.finish("m1")
        await settle()

        assert loader.state == ModelLoadState.cancelled()
        assert loader.loaded_model is None


class TestFailures:
    @pytest.mark.asyncio
    async def test_load_failure_becomes_error(self):
        loader, source, _ = make_loader()
        loader.load("m1")
        await settle()

        source.fail("m1", LoadFailure("model not found"))

        assert await loader.wait() == ModelLoadState.error("model not found")

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_error(self):
        loader, source, _ = make_loader()
        loader.load("m1")
        await settle()

        source.fail("m1", RuntimeError("corrupt weights"))

        assert await loader.wait() == ModelLoadState.error("corrupt weights")

    @pytest.mark.asyncio
    async def test_reload_after_error(self):
        """Terminal states only exit through a fresh load."""
        loader, source, _ = make_loader()
        loader.load("m1")
        await settle()
        source.fail("m1", LoadFailure("timeout"))
        await loader.wait()
        source.failures.clear()

        loader.load("m1")
        assert loader.state == ModelLoadState.loading()
        await settle()
        assert await loader.wait() == ModelLoadState.loaded()


class TestTransitionGuard:
    def test_impossible_transition_raises(self):
        loader = ModelLoader(FakeModelSource())
        with pytest.raises(InvalidTransition):
            loader._transition(ModelLoadState.loaded())

    def test_terminal_state_cannot_progress(self):
        loader = ModelLoader(FakeModelSource())
        loader._state = ModelLoadState.cancelled()
        with pytest.raises(InvalidTransition):
            loader._transition(ModelLoadState.downloading(0.5))

    def test_status_colors_exist(self):
        assert all(status.color.startswith("#") for status in LoadStatus)
