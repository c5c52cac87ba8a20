"""Owner contexts and liveness signalling.

An owner context identifies the execution context allowed to drive a
coroutine. Workers observe it one way: they check its done-signal at every
wait point and terminate silently once it is set. The worker only keeps a weak
reference to the owner's thread, so observing never extends its lifetime.

A context is done when it has been closed explicitly (``owner_scope`` closes
its context on exit, including exceptional exit) or when its thread has ended.
"""

import itertools
import threading
import weakref
from contextlib import contextmanager
from typing import Iterator

_ids = itertools.count(1)
_local = threading.local()


class OwnerContext:
    """Identity of an execution context that owns coroutines."""

    def __init__(self, thread: threading.Thread | None = None, label: str | None = None):
        """Initialize an owner context.

        Args:
            thread: Thread the context belongs to. Defaults to the caller.
            label: Optional human-readable label.
        """
        thread = thread or threading.current_thread()
        self._id = next(_ids)
        self._label = label or thread.name
        self._thread_ref = weakref.ref(thread)
        self._done = threading.Event()

    @property
    def context_id(self) -> int:
        return self._id

    @property
    def label(self) -> str:
        return self._label

    @property
    def thread(self) -> threading.Thread | None:
        return self._thread_ref()

    def close(self) -> None:
        """Set the done-signal. Idempotent."""
        self._done.set()

    def is_done(self) -> bool:
        """Check whether the owner has gone away."""
        if self._done.is_set():
            return True
        thread = self._thread_ref()
        if thread is None or not thread.is_alive():
            self._done.set()
            return True
        return False

    def __repr__(self) -> str:
        return f"OwnerContext({self._id}, {self._label!r})"


def _scope_stack() -> list[OwnerContext]:
    stack = getattr(_local, "scopes", None)
    if stack is None:
        stack = []
        _local.scopes = stack
    return stack


def current_owner() -> OwnerContext:
    """Get the owner context of the calling thread.

    The innermost active ``owner_scope`` wins; otherwise each thread has one
    implicit context, created on first use.
    """
    stack = _scope_stack()
    if stack:
        return stack[-1]

    owner = getattr(_local, "owner", None)
    if owner is None:
        owner = OwnerContext()
        _local.owner = owner
    return owner


@contextmanager
def owner_scope(label: str | None = None) -> Iterator[OwnerContext]:
    """Own coroutines for the duration of a ``with`` block.

    Coroutines started inside the block are owned by a fresh context which is
    closed when the block exits, so idle workers terminate.

    Example:
        with owner_scope():
            handle = corelay.start(body)
            corelay.resume(handle)
        # handle's worker is orphaned here
    """
    owner = OwnerContext(label=label)
    stack = _scope_stack()
    stack.append(owner)
    try:
        yield owner
    finally:
        stack.remove(owner)
        owner.close()
