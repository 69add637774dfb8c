"""Orchestration engine: model loading, single-flight generation and backend routing."""

from seamless.engine.loading import (
    PROGRESS_TOLERANCE,
    LoadAttempt,
    LoadStatus,
    ModelLoader,
    ModelLoadState,
)
from seamless.engine.orchestrator import TranslationOrchestrator
from seamless.engine.state import SessionState
from seamless.engine.tasks import GenerationController, GenerationTask

__all__ = [
    "GenerationController",
    "GenerationTask",
    "LoadAttempt",
    "LoadStatus",
    "ModelLoadState",
    "ModelLoader",
    "PROGRESS_TOLERANCE",
    "SessionState",
    "TranslationOrchestrator",
]
