"""
Error taxonomy shared by every storage backend.

Each error carries a stable ``kind`` string so that the remote proxy can
send it over the wire and re-raise the same class on the client side.
"""

from typing import Dict, Optional, Type


class StoreError(Exception):
    """Base class for all storage core errors."""
    kind = "store_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for the wire protocol."""
        return {"kind": self.kind, "message": self.message}


class NotFoundError(StoreError):
    """Requested Times/Post/Todo/Tag id does not exist in the addressed scope."""
    kind = "not_found"


class AlreadyExistsError(StoreError):
    """A Times with the same title already exists."""
    kind = "already_exists"


class UnsupportedError(StoreError):
    """Operation intentionally not implemented by this backend."""
    kind = "unsupported"

    def __init__(self, operation: str, backend: str):
        super().__init__(f"{operation} is not supported by {backend}")
        self.operation = operation
        self.backend = backend

    def to_dict(self) -> Dict[str, str]:
        data = super().to_dict()
        data.update(operation=self.operation, backend=self.backend)
        return data


class InvalidStateTransitionError(StoreError):
    """Todo.done() requested the state the Todo is already in."""
    kind = "invalid_state_transition"


class BackendFailureError(StoreError):
    """
    Underlying I/O, serialization or transport failure.

    Attributes:
        key: Storage key or operation name that failed, if known
    """
    kind = "backend_failure"

    def __init__(self, message: str, key: Optional[str] = None):
        if key is not None:
            message = f"{message} (key={key})"
        super().__init__(message)
        self.key = key


_ERRORS_BY_KIND: Dict[str, Type[StoreError]] = {
    cls.kind: cls
    for cls in (
        NotFoundError,
        AlreadyExistsError,
        UnsupportedError,
        InvalidStateTransitionError,
        BackendFailureError,
    )
}


def error_from_dict(data: Dict[str, str]) -> StoreError:
    """
    Rebuild a StoreError from its wire representation.

    Unknown kinds are reported as BackendFailureError so callers only ever
    see the documented taxonomy.
    """
    kind = data.get("kind", "")
    message = data.get("message", "unknown error")

    if kind == UnsupportedError.kind:
        error = UnsupportedError(data.get("operation", "operation"), data.get("backend", "remote"))
        error.message = message
        error.args = (message,)
        return error

    cls = _ERRORS_BY_KIND.get(kind)
    if cls is None:
        return BackendFailureError(f"{kind or 'unknown'}: {message}")
    # key context is already folded into the message by the remote side
    if cls is BackendFailureError:
        return BackendFailureError(message)
    return cls(message)
