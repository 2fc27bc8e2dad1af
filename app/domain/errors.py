"""Errors raised by the client merge engine.

Every error carries a stable ``error_kind`` string that the API returns to
the caller alongside the human-readable message.
"""


class ClientMergeError(Exception):
    """Base error for merge and undo operations."""

    error_kind = "merge_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error_kind": self.error_kind, "message": self.message}


class InvalidMergeRequestError(ClientMergeError):
    """Request is malformed (no secondaries, primary listed as secondary, ...)."""

    error_kind = "invalid_request"


class NotFoundError(ClientMergeError):
    """A client or merge log entry does not exist in the organization."""

    error_kind = "not_found"


class AlreadyMergedError(ClientMergeError):
    """A client named in the request has already been merged."""

    error_kind = "already_merged"


class InvalidFieldResolutionError(ClientMergeError):
    """A resolved field value does not come from any client in the request."""

    error_kind = "invalid_field_resolution"


class ConflictError(ClientMergeError):
    """Lock or state contention with a concurrent merge or undo."""

    error_kind = "conflict"
    retryable = True


class AlreadyUndoneError(ClientMergeError):
    """The merge has already been undone."""

    error_kind = "already_undone"


class UndoWindowExpiredError(ClientMergeError):
    """The undo window for the merge has closed."""

    error_kind = "undo_window_expired"


class StorageFailureError(ClientMergeError):
    """The database failed; the transaction was rolled back."""

    error_kind = "storage_failure"
    retryable = True
