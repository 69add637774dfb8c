"""Error taxonomy shared by the backends and the orchestration engine."""


class TranslatorError(Exception):
    """Base class for every error raised by this package."""


class ConnectivityError(TranslatorError):
    """Network or authentication failure while talking to a backend."""


class BackendError(TranslatorError):
    """A backend call failed for a reason other than connectivity."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class BackendUnavailable(TranslatorError):
    """No usable backend: Local mode without a loaded model, or nothing configured."""


class OperationCancelled(TranslatorError):
    """A cancellation request was observed."""


class ModelLoadCancelled(OperationCancelled):
    """The model acquisition pipeline stopped because it was cancelled."""


class LoadFailure(TranslatorError):
    """Model download or initialisation failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidTransition(RuntimeError):
    """A model load state change that the state machine does not allow."""
