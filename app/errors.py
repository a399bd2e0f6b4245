"""
Composition error types.

All errors inherit from ComposerError for easy catching.
Synchronous errors (validation, not-found) propagate to the caller;
engine and storage errors never leave their background context.
"""


class ComposerError(Exception):
    """Base exception for all composition service failures."""
    pass


class ValidationError(ComposerError):
    """Raised when a composition request is structurally invalid."""
    pass


class MissingInputError(ValidationError):
    """Raised when a request omits one of the two input identifiers."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required input: {field}")


class NotFoundError(ComposerError):
    """Raised when an upload or job cannot be found."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class EngineFailure(ComposerError):
    """
    The external composition engine failed.

    Never raised to a request handler; the adapter turns it into a
    Failed event carrying the message as the job's error detail.
    """
    pass


class StorageError(ComposerError):
    """A file could not be deleted during cleanup. Logged, never propagated."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not delete {path}: {reason}")


class ShuttingDownError(ComposerError):
    """Raised when a job is submitted after the orchestrator has stopped."""
    pass
