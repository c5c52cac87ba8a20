"""Custom exceptions for corelay."""

from typing import Any


class CorelayError(Exception):
    """Base exception for all corelay errors."""

    pass


# =============================================================================
# Usage Errors
# =============================================================================


class CoroutineUsageError(CorelayError):
    """Base exception for programmer misuse of the coroutine API."""

    pass


class InvalidArityError(CoroutineUsageError):
    """Raised when a coroutine body does not take zero or one argument."""

    def __init__(self, body: Any, reason: str):
        self.body = body
        self.reason = reason
        name = getattr(body, "__qualname__", None) or repr(body)
        super().__init__(f"Coroutine body '{name}' has invalid arity: {reason}")


class DeadCoroutineError(CoroutineUsageError):
    """Raised when resuming or shutting down a coroutine that has terminated."""

    def __init__(self, handle: Any, operation: str):
        self.handle = handle
        self.operation = operation
        super().__init__(f"Cannot {operation} dead coroutine {handle}")


class OwnershipViolationError(CoroutineUsageError):
    """Raised when a context other than the owner drives a coroutine."""

    def __init__(self, handle: Any, caller: Any, operation: str):
        self.handle = handle
        self.caller = caller
        self.operation = operation
        super().__init__(
            f"Context '{caller}' cannot {operation} coroutine {handle} "
            f"(owned by '{handle.owner}')"
        )


class MissingContextError(CoroutineUsageError):
    """Raised when a worker-only operation is called outside a coroutine."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation} outside of a coroutine body")


class CoroutineBusyError(CoroutineUsageError):
    """Raised when driving a coroutine whose body is still running."""

    def __init__(self, handle: Any, operation: str):
        self.handle = handle
        self.operation = operation
        super().__init__(f"Cannot {operation} coroutine {handle} while it is running")


class ProtocolError(CorelayError):
    """Raised when a rendezvous message arrives out of order."""

    def __init__(self, kind: Any, operation: str):
        self.kind = kind
        self.operation = operation
        label = getattr(kind, "value", kind)
        super().__init__(f"Unexpected '{label}' message during {operation}")


# =============================================================================
# Body Failures
# =============================================================================


class Thrown(CorelayError):
    """Carries an arbitrary value thrown out of a coroutine body.

    Use :func:`throw` rather than raising this directly. The engine reports
    it with kind ``THROW`` and the original value as payload.
    """

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Thrown value: {value!r}")


def throw(value: Any) -> None:
    """Throw a non-exception value out of the running coroutine body."""
    raise Thrown(value)
