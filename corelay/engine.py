"""Coroutine engine for corelay.

Each coroutine runs its body on a dedicated worker thread. The owner and the
worker exchange values through a pair of single-slot channels, so every
resume is answered by exactly one yield, return, failure or shutdown
acknowledgment before the owner continues.

Lifecycle:

    CREATED --resume--> RUNNING --yield--> SUSPENDED --resume--> RUNNING ...
    RUNNING --return--> COMPLETED
    RUNNING --raise---> FAILED
    CREATED/SUSPENDED --shutdown--> SHUT_DOWN
    CREATED/SUSPENDED --owner gone--> ORPHANED
"""

import inspect
import itertools
import threading
import traceback
from dataclasses import dataclass
from typing import Any, Callable

from .channel import Channel
from .exceptions import (
    CoroutineBusyError,
    DeadCoroutineError,
    InvalidArityError,
    MissingContextError,
    OwnershipViolationError,
    ProtocolError,
    Thrown,
)
from .liveness import OwnerContext, current_owner
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
)
from .utils.logging import StructuredLogger

logger = StructuredLogger("engine")

_worker_ids = itertools.count(1)
_local = threading.local()


class _Terminate(BaseException):
    """Unwinds a worker's stack after shutdown or orphaning."""

    def __init__(self, state: CoroutineState):
        self.state = state
        super().__init__(state.value)


# =============================================================================
# Arity and Failure Capture
# =============================================================================


def resolve_arity(body: Callable[..., Any], takes_input: bool | None = None) -> bool:
    """Decide whether a body takes the resume value as its argument.

    Args:
        body: The coroutine body.
        takes_input: Explicit choice. Inferred from the signature when None.

    Returns:
        True for a one-argument body, False for a zero-argument body.

    Raises:
        InvalidArityError: If the body cannot be called with zero or one argument.
    """
    if not callable(body):
        raise InvalidArityError(body, "not callable")

    try:
        signature = inspect.signature(body)
    except (TypeError, ValueError):
        if takes_input is None:
            raise InvalidArityError(
                body, "signature cannot be inspected, pass takes_input explicitly"
            ) from None
        return takes_input

    required = 0
    accepted = 0
    var_positional = False
    for param in signature.parameters.values():
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            accepted += 1
            if param.default is param.empty:
                required += 1
        elif param.kind is param.VAR_POSITIONAL:
            var_positional = True
        elif param.kind is param.KEYWORD_ONLY and param.default is param.empty:
            raise InvalidArityError(body, f"required keyword-only parameter '{param.name}'")

    if required > 1:
        raise InvalidArityError(body, f"{required} required positional parameters")

    if takes_input is None:
        return required == 1
    if takes_input and not (accepted or var_positional):
        raise InvalidArityError(body, "takes_input=True but the body accepts no argument")
    if not takes_input and required:
        raise InvalidArityError(body, "takes_input=False but the body requires an argument")
    return takes_input


def capture_error(exc: BaseException, with_traceback: bool = True) -> ErrorInfo:
    """Convert an exception raised by a body into an ErrorInfo."""
    if isinstance(exc, Thrown):
        kind, payload = ErrorKind.THROW, exc.value
    elif isinstance(exc, Exception):
        kind, payload = ErrorKind.ERROR, exc
    elif isinstance(exc, SystemExit):
        kind, payload = ErrorKind.EXIT, exc.code
    else:
        kind, payload = ErrorKind.EXIT, exc

    exc_class = type(exc)
    exc_type = exc_class.__qualname__
    if exc_class.__module__ != "builtins":
        exc_type = f"{exc_class.__module__}.{exc_type}"

    formatted = None
    if with_traceback:
        formatted = "".join(traceback.format_exception(exc_class, exc, exc.__traceback__))

    return ErrorInfo(
        kind=kind,
        payload=payload,
        exc_type=exc_type,
        message=str(exc),
        traceback=formatted,
    )


# =============================================================================
# Handle, Worker and Worker Context
# =============================================================================


@dataclass(frozen=True, repr=False)
class Handle:
    """Reference to a coroutine, meaningful only to its owner.

    Handles are immutable and may be copied or passed to other threads freely;
    only ``is_dead`` and ``status`` work from a context other than the owner.
    """

    owner: OwnerContext
    worker: "Worker"

    @property
    def engine(self) -> "CoroutineEngine":
        return self.worker.engine

    def resume(self, value: Any = NO_VALUE) -> ResumeResult:
        return self.engine.resume(self, value)

    def shutdown(self) -> bool:
        return self.engine.shutdown(self)

    def is_dead(self) -> bool:
        return self.engine.is_dead(self)

    def status(self) -> CoroutineState:
        return self.engine.status(self)

    def __repr__(self) -> str:
        return f"<Handle {self.worker.name} owner={self.owner.label!r}>"


class Worker:
    """The thread backing one coroutine and its private channels."""

    def __init__(
        self,
        engine: "CoroutineEngine",
        body: Callable[..., Any],
        takes_input: bool,
        owner: OwnerContext,
    ):
        self.engine = engine
        self.body = body
        self.takes_input = takes_input
        self.owner = owner
        self.handle: Handle | None = None

        self._name = f"{engine.config.thread_name_prefix}-{next(_worker_ids)}"
        self.requests = Channel(f"{self._name}.requests")
        self.replies = Channel(f"{self._name}.replies")
        self._state = CoroutineState.CREATED
        self.pending: str | None = None
        self.refusals = 0
        self._lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run,
            name=self._name,
            daemon=engine.config.daemon,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def ident(self) -> int | None:
        return self._thread.ident

    @property
    def thread(self) -> threading.Thread:
        return self._thread

    @property
    def state(self) -> CoroutineState:
        with self._lock:
            return self._state

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def launch(self) -> None:
        self._thread.start()

    def transition(self, new_state: CoroutineState) -> None:
        """Move to a new lifecycle state. Terminal states are final."""
        with self._lock:
            old_state = self._state
            if old_state == new_state or old_state.is_terminal:
                return
            self._state = new_state
        self.engine._on_transition(self, old_state, new_state)

    def _run(self) -> None:
        context = WorkerContext(self)
        _local.context = context
        try:
            reply = self._execute(context)
        finally:
            _local.context = None
            self.engine._forget(self)
        if reply is not None:
            self.replies.send(reply)

    def _execute(self, context: "WorkerContext") -> Message | None:
        self.replies.send(Message(MessageKind.READY))
        reply = None
        try:
            value = context.wait_resume()
            if self.takes_input:
                result = self.body(value)
            else:
                result = self.body()
        except _Terminate:
            pass
        except BaseException as exc:
            if not self.state.is_terminal:
                info = capture_error(exc, self.engine.config.capture_tracebacks)
                self.transition(CoroutineState.FAILED)
                logger.info(
                    "Coroutine body failed",
                    worker=self._name,
                    kind=info.kind.value,
                    error=info.exc_type,
                )
                reply = Message(MessageKind.FAILED, info)
        else:
            if not self.state.is_terminal:
                self.transition(CoroutineState.COMPLETED)
                reply = Message(MessageKind.COMPLETED, result)

        return reply


class WorkerContext:
    """Explicit context of a running worker, threaded through to yield."""

    def __init__(self, worker: Worker):
        self._worker = worker

    @property
    def worker(self) -> Worker:
        return self._worker

    @property
    def owner(self) -> OwnerContext:
        return self._worker.owner

    @property
    def handle(self) -> Handle | None:
        return self._worker.handle

    def yield_(self, value: Any = NO_VALUE) -> Any:
        """Hand ``value`` to the owner and wait for the next resume.

        Returns:
            The value carried by the next resume.
        """
        worker = self._worker
        if threading.current_thread() is not worker.thread:
            raise MissingContextError("yield from another thread")
        if worker.state.is_terminal:
            self._refuse()

        worker.transition(CoroutineState.SUSPENDED)
        worker.replies.send(Message(MessageKind.YIELDED, value))
        return self.wait_resume()

    def wait_resume(self) -> Any:
        """Block at a wait point until resumed, shut down or orphaned."""
        worker = self._worker
        if worker.state.is_terminal:
            self._refuse()

        poll_interval = worker.engine.config.poll_interval
        while True:
            message = worker.requests.receive(timeout=poll_interval)
            if message is None:
                if self.owner.is_done():
                    worker.transition(CoroutineState.ORPHANED)
                    raise _Terminate(CoroutineState.ORPHANED)
                continue

            if message.kind == MessageKind.RESUME:
                worker.transition(CoroutineState.RUNNING)
                return message.payload
            if message.kind == MessageKind.SHUTDOWN:
                worker.transition(CoroutineState.SHUT_DOWN)
                worker.replies.send(Message(MessageKind.SHUTDOWN_ACK))
                raise _Terminate(CoroutineState.SHUT_DOWN)
            raise ProtocolError(message.kind, "wait")

    def _refuse(self) -> None:
        """Reject a wait point reached by a body that caught its termination.

        The first refusal unwinds again, the second raises RuntimeError. A body
        that swallows both is parked for good so it stops consuming the CPU.
        """
        worker = self._worker
        worker.refusals += 1
        if worker.refusals == 1:
            raise _Terminate(worker.state)
        if worker.refusals == 2:
            raise RuntimeError("coroutine ignored termination")

        logger.error("Coroutine ignored termination, parking worker", worker=worker.name)
        worker.engine._forget(worker)
        threading.Event().wait()


def current_context() -> WorkerContext | None:
    """Get the worker context of the calling thread, if it is a worker."""
    return getattr(_local, "context", None)


# =============================================================================
# Engine
# =============================================================================


class CoroutineEngine:
    """Creates coroutines and drives the owner side of the rendezvous.

    Example:
        engine = CoroutineEngine()

        def body(x):
            y = corelay.yield_(x + 1)
            return y * 2

        handle = engine.start(body)
        engine.resume(handle, 1)   # AliveResult(2)
        engine.resume(handle, 5)   # DeadResult(10)
        engine.is_dead(handle)     # True
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        on_state_change: Callable[[Handle, CoroutineState, CoroutineState], None] | None = None,
        on_violation: Callable[[Handle, OwnerContext, str], None] | None = None,
    ):
        """Initialize the engine.

        Args:
            config: Engine configuration.
            on_state_change: Callback on lifecycle transitions (handle, old, new).
            on_violation: Callback before an ownership violation is raised
                (handle, caller, operation).
        """
        self._config = config or EngineConfig()
        self._on_state_change = on_state_change
        self._on_violation = on_violation
        self._workers: set[Worker] = set()
        self._stats = {
            "started": 0,
            "completed": 0,
            "failed": 0,
            "shut_down": 0,
            "orphaned": 0,
        }
        self._lock = threading.RLock()

    @property
    def config(self) -> EngineConfig:
        return self._config

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def start(self, body: Callable[..., Any], takes_input: bool | None = None) -> Handle:
        """Create a coroutine owned by the calling context.

        Returns once the worker is blocked at its initial wait point.

        Raises:
            InvalidArityError: If the body takes neither zero nor one argument.
        """
        takes_input = resolve_arity(body, takes_input)
        owner = current_owner()

        worker = Worker(self, body, takes_input, owner)
        handle = Handle(owner=owner, worker=worker)
        worker.handle = handle

        with self._lock:
            self._workers.add(worker)
        try:
            worker.launch()
        except BaseException:
            self._forget(worker)
            raise
        with self._lock:
            self._stats["started"] += 1

        reply = self._await_reply(handle, "start")
        if reply.kind != MessageKind.READY:
            raise ProtocolError(reply.kind, "start")

        logger.debug("Coroutine started", worker=worker.name, owner=owner.label)
        return handle

    def start_nullary(self, body: Callable[[], Any]) -> Handle:
        """Create a coroutine whose body takes no argument."""
        return self.start(body, takes_input=False)

    def start_unary(self, body: Callable[[Any], Any]) -> Handle:
        """Create a coroutine whose body takes the first resume value."""
        return self.start(body, takes_input=True)

    def wrap(
        self, body: Callable[..., Any], takes_input: bool | None = None
    ) -> Callable[..., ResumeResult]:
        """Create a coroutine and return a callable that resumes it.

        The callable takes one argument for a one-argument body and none
        otherwise. The handle is available as its ``handle`` attribute.
        """
        handle = self.start(body, takes_input)

        if handle.worker.takes_input:
            def wrapped(value: Any) -> ResumeResult:
                return self.resume(handle, value)
        else:
            def wrapped() -> ResumeResult:
                return self.resume(handle)

        wrapped.__name__ = getattr(body, "__name__", wrapped.__name__)
        wrapped.__doc__ = getattr(body, "__doc__", None)
        wrapped.handle = handle  # type: ignore[attr-defined]
        return wrapped

    # -------------------------------------------------------------------------
    # Owner operations
    # -------------------------------------------------------------------------

    def resume(self, handle: Handle, value: Any = NO_VALUE) -> ResumeResult:
        """Pass ``value`` into the coroutine and wait for its answer.

        Returns:
            AliveResult if the body yielded, DeadResult if it returned,
            ErrorResult if it raised.

        Raises:
            DeadCoroutineError: If the coroutine has terminated.
            OwnershipViolationError: If the caller is not the owner.
            CoroutineBusyError: If an interrupted earlier call is still running.
        """
        self._check_call(handle, "resume")
        reply = self._exchange(handle, Message(MessageKind.RESUME, value), "resume")

        if reply.kind == MessageKind.YIELDED:
            return AliveResult(reply.payload)
        if reply.kind == MessageKind.COMPLETED:
            return DeadResult(reply.payload)
        if reply.kind == MessageKind.FAILED:
            return ErrorResult(reply.payload)
        raise ProtocolError(reply.kind, "resume")

    def shutdown(self, handle: Handle) -> bool:
        """Terminate a coroutine waiting at a wait point.

        Returns:
            True once the worker has acknowledged.

        Raises:
            DeadCoroutineError: If the coroutine has terminated.
            OwnershipViolationError: If the caller is not the owner.
            CoroutineBusyError: If an interrupted earlier call is still running.
        """
        self._check_call(handle, "shut down")
        reply = self._exchange(handle, Message(MessageKind.SHUTDOWN), "shut down")

        if reply.kind != MessageKind.SHUTDOWN_ACK:
            raise ProtocolError(reply.kind, "shutdown")
        return True

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_dead(self, handle: Handle) -> bool:
        """Check whether a coroutine has terminated. Never blocks or raises."""
        worker = handle.worker
        return worker.state.is_terminal or not worker.is_alive()

    def status(self, handle: Handle) -> CoroutineState:
        """Get the lifecycle state of a coroutine."""
        worker = handle.worker
        state = worker.state
        if not state.is_terminal and not worker.is_alive():
            return CoroutineState.ORPHANED
        return state

    def active_count(self) -> int:
        """Number of worker threads still alive."""
        with self._lock:
            return len(self._workers)

    def get_stats(self) -> dict[str, int]:
        """Get lifecycle counters."""
        with self._lock:
            return {**self._stats, "active": len(self._workers)}

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _check_call(self, handle: Handle, operation: str) -> None:
        if self.is_dead(handle):
            logger.warning("Call on dead coroutine", worker=handle.worker.name, operation=operation)
            raise DeadCoroutineError(handle, operation)

        caller = current_owner()
        if caller is not handle.owner:
            logger.warning(
                "Ownership violation",
                worker=handle.worker.name,
                caller=caller.label,
                operation=operation,
            )
            if self._on_violation:
                self._on_violation(handle, caller, operation)
            raise OwnershipViolationError(handle, caller, operation)

        worker = handle.worker
        if worker.pending is not None:
            # An earlier exchange was interrupted before its reply was read
            stale = worker.replies.poll()
            if stale is None:
                raise CoroutineBusyError(handle, operation)
            logger.warning(
                "Discarding unread reply",
                worker=worker.name,
                kind=stale.kind.value,
                interrupted=worker.pending,
            )
            worker.pending = None

    def _exchange(self, handle: Handle, request: Message, operation: str) -> Message:
        worker = handle.worker
        worker.pending = operation
        worker.requests.send(request)
        reply = self._await_reply(handle, operation)
        worker.pending = None
        return reply

    def _await_reply(self, handle: Handle, operation: str) -> Message:
        """Block until the worker answers, or fail if its thread is gone."""
        worker = handle.worker
        poll_interval = self._config.poll_interval
        while True:
            reply = worker.replies.receive(timeout=poll_interval)
            if reply is not None:
                return reply
            if not worker.is_alive():
                reply = worker.replies.poll()
                if reply is not None:
                    return reply
                raise DeadCoroutineError(handle, operation)

    def _on_transition(
        self, worker: Worker, old_state: CoroutineState, new_state: CoroutineState
    ) -> None:
        if new_state.is_terminal:
            with self._lock:
                self._stats[new_state.value] += 1
        logger.debug(
            "Coroutine state changed",
            worker=worker.name,
            state=new_state.value,
            previous=old_state.value,
        )

        if self._on_state_change and worker.handle is not None:
            try:
                self._on_state_change(worker.handle, old_state, new_state)
            except Exception as e:
                logger.error(
                    "State change callback failed",
                    worker=worker.name,
                    state=new_state.value,
                    error=repr(e),
                )

    def _forget(self, worker: Worker) -> None:
        with self._lock:
            self._workers.discard(worker)


# =============================================================================
# Worker-side functions
# =============================================================================


def yield_(value: Any = NO_VALUE) -> Any:
    """Suspend the calling coroutine, handing ``value`` to its owner.

    Returns:
        The value passed to the next resume.

    Raises:
        MissingContextError: If called outside a coroutine body.
    """
    context = current_context()
    if context is None:
        raise MissingContextError("yield")
    return context.yield_(value)


def running() -> Handle | None:
    """Get the handle of the coroutine the caller is running in."""
    context = current_context()
    return context.handle if context is not None else None


def is_yieldable() -> bool:
    """Check whether the caller may call yield_()."""
    return current_context() is not None
