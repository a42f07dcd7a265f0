"""Exceptions related to tfout."""

__all__ = [
    "TfoutException",
    "InputException",
    "ObjectNotFoundError",
    "ObjectExistsError",
    "ConflictError",
    "BackendUnavailable",
    "MalformedSnapshot",
    "UnsupportedBackendKind",
    "WriteConflict",
    "ArtifactSyncFailure",
]


class TfoutException(Exception):
    """Generic base exception used for this library."""


class InputException(TfoutException):
    """Raised when the input files or values are not formatted as expected."""


class ObjectNotFoundError(TfoutException):
    """Raised when an object is not found in the store."""


class ObjectExistsError(TfoutException):
    """Raised when creating an object that is already in the store."""


class ConflictError(TfoutException):
    """Raised when an object was modified since it was read."""


class BackendError(TfoutException):
    """Base class for failures talking to a single backend."""

    def __init__(self, backend_index: int, message: str) -> None:
        super().__init__(f"backend {backend_index}: {message}")
        self.backend_index = backend_index
        self.message = message


class BackendUnavailable(BackendError):
    """Raised on a transport or authentication failure reaching a backend."""


class MalformedSnapshot(BackendError):
    """Raised when a backend object can't be parsed as a Terraform state."""


class UnsupportedBackendKind(InputException):
    """Raised when a backend descriptor has no supported kind populated."""


class WriteConflict(TfoutException):
    """Raised when a conflict-safe update runs out of retries."""


class ArtifactSyncFailure(TfoutException):
    """Raised when a ConfigMap or Secret could not be created or updated."""

    def __init__(self, kind: str, name: str, message: str) -> None:
        super().__init__(f"failed to sync {kind} {name}: {message}")
        self.kind = kind
        self.name = name
