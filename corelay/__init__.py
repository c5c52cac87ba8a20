"""corelay - Lua-style coroutines on dedicated worker threads.

Simple usage:
    import corelay

    def body(x):
        y = corelay.yield_(x + 1)
        return y * 2

    handle = corelay.start(body)
    corelay.resume(handle, 1)  # AliveResult(value=2)
    corelay.resume(handle, 5)  # DeadResult(value=10)

Advanced usage:
    from corelay import CoroutineEngine, EngineConfig, owner_scope
"""

__version__ = "0.1.0"

# =============================================================================
# SIMPLE API (start here)
# =============================================================================

from .api import (
    get_default_engine,
    is_dead,
    resume,
    set_default_engine,
    shutdown,
    start,
    start_nullary,
    start_unary,
    status,
    wrap,
)
from .engine import is_yieldable, running, yield_

# =============================================================================
# ADVANCED API
# =============================================================================

# Engine
from .engine import CoroutineEngine, Handle, Worker, WorkerContext, capture_error, resolve_arity

# Liveness
from .liveness import OwnerContext, current_owner, owner_scope

# Types
from .types import (
    NO_VALUE,
    AliveResult,
    CoroutineState,
    DeadResult,
    EngineConfig,
    ErrorInfo,
    ErrorKind,
    ErrorResult,
    Message,
    MessageKind,
    ResumeResult,
    ResumeStatus,
)

# Exceptions
from .exceptions import (
    CorelayError,
    CoroutineBusyError,
    CoroutineUsageError,
    DeadCoroutineError,
    InvalidArityError,
    MissingContextError,
    OwnershipViolationError,
    ProtocolError,
    Thrown,
    throw,
)

# Utils
from .utils import configure_logging, get_logger

__all__ = [
    # Version
    "__version__",
    # Simple API
    "start",
    "start_nullary",
    "start_unary",
    "wrap",
    "resume",
    "yield_",
    "shutdown",
    "is_dead",
    "status",
    "running",
    "is_yieldable",
    "throw",
    "get_default_engine",
    "set_default_engine",
    # Engine
    "CoroutineEngine",
    "Handle",
    "Worker",
    "WorkerContext",
    "capture_error",
    "resolve_arity",
    # Liveness
    "OwnerContext",
    "current_owner",
    "owner_scope",
    # Types
    "NO_VALUE",
    "AliveResult",
    "CoroutineState",
    "DeadResult",
    "EngineConfig",
    "ErrorInfo",
    "ErrorKind",
    "ErrorResult",
    "Message",
    "MessageKind",
    "ResumeResult",
    "ResumeStatus",
    # Exceptions
    "CorelayError",
    "CoroutineBusyError",
    "CoroutineUsageError",
    "DeadCoroutineError",
    "InvalidArityError",
    "MissingContextError",
    "OwnershipViolationError",
    "ProtocolError",
    "Thrown",
    # Utils
    "configure_logging",
    "get_logger",
]
