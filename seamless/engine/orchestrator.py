"""Translation orchestrator, the only object the presentation layer talks to.

It owns the backend selection and the single active generation, composes the
model loader and the generation controller, and publishes everything through
one :class:`SessionState`. All methods must be called from the same event
loop; that loop is the single owner of every piece of mutable state here.
"""

from __future__ import annotations

import logging

from seamless.engine.loading import LOAD_CANCEL_GRACE_SECONDS, LoadAttempt, ModelLoader, ModelLoadState
from seamless.engine.state import SessionState
from seamless.engine.tasks import GenerationController, GenerationTask
from seamless.errors import BackendUnavailable, TranslatorError
from seamless.translation.base import GenerationKind, RequestParameters, TranslationBackend
from seamless.translation.config import BackendMode, TranslationConfig, build_backends, get_backend
from seamless.translation.limits import TextLimit
from seamless.translation.local import LocalBackend

logger = logging.getLogger(__name__)

MODEL_NOT_READY_MESSAGE = "Local model is not ready"


class TranslationOrchestrator:
    """Routes translate/rephrase requests to the web or local backend.

    Args:
        web:          Backend used in ``BackendMode.WEB``.
        local:        Backend used in ``BackendMode.LOCAL`` once a model is loaded.
        config:       Defaults for request parameters and the initial mode.
        state:        Observable state to publish into; a fresh one if omitted.
        grace_period: Delay before a model load reaches the backend.
    """

    def __init__(
        self,
        web: TranslationBackend,
        local: LocalBackend,
        config: TranslationConfig | None = None,
        state: SessionState | None = None,
        grace_period: float = LOAD_CANCEL_GRACE_SECONDS,
    ) -> None:
        self._config = config or TranslationConfig()
        self._web = web
        self._local = local
        self.state = state or SessionState(mode=self._config.mode)
        self._selected_model_id: str | None = self._config.local.model_id or None

        self._loader = ModelLoader(local, grace_period=grace_period)
        self._loader.subscribe(self._on_load_state)
        self.state.update(load_state=self._loader.state)

        self._controller = GenerationController(self.state)

    @classmethod
    def from_config(cls, config: TranslationConfig | None = None) -> TranslationOrchestrator:
        config = config or TranslationConfig()
        web, local = build_backends(config)
        return cls(web, local, config=config)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def mode(self) -> BackendMode:
        return self.state.mode

    @property
    def load_state(self) -> ModelLoadState:
        return self._loader.state

    @property
    def loader(self) -> ModelLoader:
        return self._loader

    @property
    def selected_model_id(self) -> str | None:
        return self._selected_model_id

    @property
    def current_task(self) -> GenerationTask | None:
        return self._controller.current

    @property
    def text_limit(self) -> TextLimit:
        """Word budget of the backend serving the current mode."""
        return get_backend(self.state.mode, self._web, self._local).text_limit

    @property
    def credential(self) -> str | None:
        return get_backend(self.state.mode, self._web, self._local).credential

    def params_for(self, text: str) -> RequestParameters:
        """Request parameters for ``text`` using the configured defaults."""
        return RequestParameters.from_config(self._config, text)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def switch_mode(self, mode: BackendMode) -> None:
        """Select the backend for subsequent requests.

        Switching to Local loads the selected model unless that model is
        already loaded or loading. Switching away from Local leaves an
        in-flight load running so it is usable on the way back.
        """
        previous = self.state.mode
        self.state.update(mode=mode)
        if previous != mode:
            logger.info("Switched mode: %s -> %s", previous.label, mode.label)

        if mode == BackendMode.LOCAL and self._selected_model_id:
            self._ensure_model(self._selected_model_id)

    def translate(self, params: RequestParameters) -> GenerationTask | None:
        return self._run(GenerationKind.TRANSLATE, params)

    def rephrase(self, params: RequestParameters) -> GenerationTask | None:
        return self._run(GenerationKind.REPHRASE, params)

    def cancel_current_operation(self) -> bool:
        return self._controller.cancel()

    def load_local_model(self, model_id: str) -> LoadAttempt:
        self._selected_model_id = model_id
        return self._loader.load(model_id)

    def cancel_model_loading(self) -> None:
        self._loader.cancel_load()

    async def test_connection(self, params: RequestParameters) -> bool:
        """Probe the backend for the current mode and publish the outcome.

        Failures end up in ``state.connection_status``; nothing is raised and
        the mode is left untouched.
        """
        backend = get_backend(self.state.mode, self._web, self._local)
        try:
            succeeded = await backend.test_connection(params)
        except TranslatorError as exc:
            logger.warning("Connection test failed: %s", exc)
            self.state.update(connection_status=f"Failed: {exc}")
            return False

        self.state.update(connection_status="Succeeded" if succeeded else "Failed")
        return succeeded

    def save_credential(self, value: str) -> None:
        get_backend(self.state.mode, self._web, self._local).set_credential(value)

    async def aclose(self) -> None:
        """Stop all background work and release backend resources."""
        self._controller.shutdown()
        self._loader.cancel_load()
        await self._loader.wait()
        await self._web.aclose()
        await self._local.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_load_state(self, load_state: ModelLoadState) -> None:
        self.state.update(load_state=load_state)

    def _ensure_model(self, model_id: str) -> None:
        attempt = self._loader.current_attempt
        if attempt is not None and attempt.model_id == model_id:
            if self._loader.is_loaded or self._loader.state.in_flight:
                logger.debug("Model %s already %s", model_id, self._loader.state.status.value)
                return
        self._loader.load(model_id)

    def _resolve_backend(self) -> TranslationBackend:
        try:
            backend = get_backend(self.state.mode, self._web, self._local)
        except ValueError as exc:
            raise BackendUnavailable(str(exc)) from exc
        if backend is self._local and not self._loader.is_loaded:
            raise BackendUnavailable(MODEL_NOT_READY_MESSAGE)
        return backend

    def _run(self, kind: GenerationKind, params: RequestParameters) -> GenerationTask | None:
        try:
            backend = self._resolve_backend()
        except BackendUnavailable as exc:
            logger.warning("%s rejected: %s", kind.label, exc)
            self.state.update(status=str(exc))
            return None
        return self._controller.run(kind, backend, params)
