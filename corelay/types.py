"""Core types and data models for corelay."""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator

from pydantic import BaseModel, Field


# =============================================================================
# Sentinel
# =============================================================================


class _NoValue:
    """Marker passed when resume or yield is called without a value."""

    _instance: "_NoValue | None" = None

    def __new__(cls) -> "_NoValue":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_VALUE"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> "_NoValue":
        return self

    def __deepcopy__(self, memo: dict) -> "_NoValue":
        return self

    def __reduce__(self) -> str:
        return "NO_VALUE"


NO_VALUE = _NoValue()


# =============================================================================
# Enums
# =============================================================================


class CoroutineState(str, Enum):
    """Lifecycle state of a coroutine."""

    CREATED = "created"  # Ready, waiting for the first resume
    SUSPENDED = "suspended"  # Yielded, waiting for the next resume
    RUNNING = "running"  # Executing body code
    COMPLETED = "completed"
    FAILED = "failed"
    SHUT_DOWN = "shut_down"
    ORPHANED = "orphaned"  # Owner went away while the worker was idle

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        CoroutineState.COMPLETED,
        CoroutineState.FAILED,
        CoroutineState.SHUT_DOWN,
        CoroutineState.ORPHANED,
    }
)


class MessageKind(str, Enum):
    """Rendezvous message vocabulary between an owner and its worker."""

    READY = "ready"  # worker -> owner, creation handshake
    RESUME = "resume"  # owner -> worker
    SHUTDOWN = "shutdown"  # owner -> worker
    YIELDED = "yielded"  # worker -> owner
    COMPLETED = "completed"  # worker -> owner
    FAILED = "failed"  # worker -> owner
    SHUTDOWN_ACK = "shutdown_ack"  # worker -> owner


class ResumeStatus(str, Enum):
    """Outcome tag of a resume call."""

    ALIVE = "alive"
    DEAD = "dead"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Category of a captured body failure."""

    THROW = "throw"  # Value passed to corelay.throw()
    ERROR = "error"  # Regular Exception
    EXIT = "exit"  # SystemExit or another BaseException


# =============================================================================
# Messages
# =============================================================================


@dataclass(frozen=True)
class Message:
    """A single message on a rendezvous channel."""

    kind: MessageKind
    payload: Any = NO_VALUE


# =============================================================================
# Resume Results
# =============================================================================


@dataclass(frozen=True)
class ErrorInfo:
    """Captured information about a failed coroutine body."""

    kind: ErrorKind
    payload: Any
    exc_type: str
    message: str
    traceback: str | None = None


@dataclass(frozen=True)
class ResumeResult:
    """Base class of the three resume outcomes.

    Results unpack to ``(status, value)``:

        status, value = corelay.resume(handle, 1)
    """

    value: Any

    status = ResumeStatus.ALIVE

    @property
    def alive(self) -> bool:
        return self.status == ResumeStatus.ALIVE

    @property
    def failed(self) -> bool:
        return self.status == ResumeStatus.ERROR

    def __iter__(self) -> Iterator[Any]:
        return iter((self.status, self.value))


@dataclass(frozen=True)
class AliveResult(ResumeResult):
    """The body yielded ``value`` and is suspended."""

    status = ResumeStatus.ALIVE


@dataclass(frozen=True)
class DeadResult(ResumeResult):
    """The body returned ``value`` and has completed."""

    status = ResumeStatus.DEAD


@dataclass(frozen=True)
class ErrorResult(ResumeResult):
    """The body failed; ``value`` is the captured :class:`ErrorInfo`."""

    status = ResumeStatus.ERROR

    @property
    def error(self) -> ErrorInfo:
        return self.value


# =============================================================================
# Configuration
# =============================================================================


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class EngineConfig(BaseModel):
    """Configuration for a coroutine engine."""

    poll_interval: float = Field(
        default=0.05,
        gt=0,
        description="Seconds between owner liveness checks at a wait point",
    )
    thread_name_prefix: str = Field(default="corelay-worker", description="Worker thread name prefix")
    daemon: bool = Field(default=True, description="Run workers as daemon threads")
    capture_tracebacks: bool = Field(default=True, description="Format tracebacks of body failures")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from CORELAY_* environment variables."""
        values: dict[str, Any] = {}

        poll_interval = os.environ.get("CORELAY_POLL_INTERVAL")
        if poll_interval:
            values["poll_interval"] = float(poll_interval)

        prefix = os.environ.get("CORELAY_THREAD_PREFIX")
        if prefix:
            values["thread_name_prefix"] = prefix

        daemon = os.environ.get("CORELAY_DAEMON")
        if daemon:
            values["daemon"] = _env_bool(daemon)

        capture = os.environ.get("CORELAY_CAPTURE_TRACEBACKS")
        if capture:
            values["capture_tracebacks"] = _env_bool(capture)

        return cls(**values)
