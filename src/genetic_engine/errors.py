class MissingFieldError(ValueError):
    """Raised when a configuration is built without a required operator."""


class InternalConsistencyError(RuntimeError):
    """Raised when the engine breaks one of its own invariants."""
