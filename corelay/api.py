"""corelay - Simple API.

Usage:
    import corelay

    def counter(n):
        while True:
            n = corelay.yield_(n + 1)

    handle = corelay.start(counter)
    corelay.resume(handle, 0)   # AliveResult(value=1)
    corelay.resume(handle, 10)  # AliveResult(value=11)
    corelay.shutdown(handle)

Creation goes through a default engine built from CORELAY_* environment
variables on first use. Every other call goes through the engine that created
the handle.
"""

import threading
from typing import Any, Callable

from .engine import CoroutineEngine, Handle
from .types import NO_VALUE, CoroutineState, EngineConfig, ResumeResult

_default_engine: CoroutineEngine | None = None
_default_lock = threading.Lock()


def get_default_engine() -> CoroutineEngine:
    """Get the engine used by the module-level functions."""
    global _default_engine
    with _default_lock:
        if _default_engine is None:
            _default_engine = CoroutineEngine(EngineConfig.from_env())
        return _default_engine


def set_default_engine(engine: CoroutineEngine | None) -> None:
    """Replace the default engine. None resets it to a fresh one on next use."""
    global _default_engine
    with _default_lock:
        _default_engine = engine


def start(body: Callable[..., Any], takes_input: bool | None = None) -> Handle:
    """Create a coroutine owned by the calling context."""
    return get_default_engine().start(body, takes_input)


def start_nullary(body: Callable[[], Any]) -> Handle:
    return get_default_engine().start_nullary(body)


def start_unary(body: Callable[[Any], Any]) -> Handle:
    return get_default_engine().start_unary(body)


def wrap(body: Callable[..., Any], takes_input: bool | None = None) -> Callable[..., ResumeResult]:
    """Create a coroutine and return a callable that resumes it."""
    return get_default_engine().wrap(body, takes_input)


def resume(handle: Handle, value: Any = NO_VALUE) -> ResumeResult:
    """Resume a coroutine with an optional value."""
    return handle.engine.resume(handle, value)


def shutdown(handle: Handle) -> bool:
    """Terminate a suspended coroutine."""
    return handle.engine.shutdown(handle)


def is_dead(handle: Handle) -> bool:
    return handle.engine.is_dead(handle)


def status(handle: Handle) -> CoroutineState:
    return handle.engine.status(handle)
