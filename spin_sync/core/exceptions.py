__all__ = [
    "SpinSyncError",
    "RemoteUnavailable",
    "InvalidDocument",
]


class SpinSyncError(Exception):
    """
    Base class of errors raised by this package.
    """


class RemoteUnavailable(SpinSyncError):
    """
    Raised by a store when a read, write or subscription fails or times out.

    The synchronizer never propagates this to its caller: a failure during
    startup falls back to a locally seeded session, and a failure during a
    mutation is logged while the local state is kept.
    """

    operation: str
    key: str
    reason: str

    def __init__(self, operation: str, key: str, reason: str):
        self.operation = operation
        self.key = key
        self.reason = reason
        super().__init__(
            f"Remote {operation} of session '{key}' failed: {reason}"
        )


class InvalidDocument(SpinSyncError):
    """
    Raised when a payload received from a store cannot be interpreted as a
    session document.

    Missing fields are not considered invalid; they're treated as empty.
    """

    errors: list[str]

    def __init__(self, errors: list[str]):
        self.errors = errors
        errors_str = "\n".join([e for e in errors])
        super().__init__(f"Invalid session document: {errors_str}")
