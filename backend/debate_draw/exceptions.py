"""
Draw engine error taxonomy.

ValidationError and LifecycleViolation are terminal: the caller fixed
nothing by retrying. PersistenceFailure wraps a store error and may be
retried by the orchestration layer; its __cause__ is the original error.
"""


class DrawError(Exception):
    """Base class for draw engine errors"""

    code = "DRAW_ERROR"

    def __init__(self, message: str, code: str = None):
        if code:
            self.code = code
        self.message = message
        super().__init__(f"{self.code}: {message}")


class ValidationError(DrawError):
    """Raised before any computation or I/O when the inputs cannot produce a draw"""

    code = "INVALID_DRAW_INPUT"


class LifecycleViolation(DrawError):
    """Raised when a draw status transition is not permitted"""

    code = "LIFECYCLE_VIOLATION"


class PersistenceFailure(DrawError):
    """Raised when the store fails during delete/insert/status update"""

    code = "PERSISTENCE_FAILURE"
    retryable = True


class GenerationConflict(PersistenceFailure):
    """Raised when another generation for the same round won the race"""

    code = "GENERATION_CONFLICT"
