"""Single-slot synchronous channel for the owner/worker rendezvous.

Each coroutine owns two channels: one carrying requests from the owner to the
worker, one carrying replies back. The rendezvous discipline guarantees that
at most one message is in flight per direction, so a channel holds at most one
message and a second send before the first receive is a protocol bug.
"""

import threading
from collections import deque

from .exceptions import CorelayError
from .types import Message


class ChannelFullError(CorelayError):
    """Raised when sending on a channel whose slot is already occupied."""

    def __init__(self, name: str, pending: Message):
        self.name = name
        self.pending = pending
        super().__init__(f"Channel '{name}' already holds a {pending.kind.value} message")


class Channel:
    """One-directional channel holding at most one message.

    Example:
        channel = Channel("requests")
        channel.send(Message(MessageKind.RESUME, 1))
        message = channel.receive(timeout=0.1)  # None on timeout
    """

    def __init__(self, name: str):
        """Initialize the channel.

        Args:
            name: Name used in error messages.
        """
        self._name = name
        self._slot: deque[Message] = deque(maxlen=1)
        self._cond = threading.Condition(threading.Lock())

    @property
    def name(self) -> str:
        return self._name

    def send(self, message: Message) -> None:
        """Place a message in the slot without blocking.

        Raises:
            ChannelFullError: If the slot is occupied.
        """
        with self._cond:
            if self._slot:
                raise ChannelFullError(self._name, self._slot[0])
            self._slot.append(message)
            self._cond.notify()

    def receive(self, timeout: float | None = None) -> Message | None:
        """Take the message from the slot, waiting up to ``timeout`` seconds.

        Returns:
            The message, or None if the timeout expired first.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: bool(self._slot), timeout):
                return None
            return self._slot.popleft()

    def poll(self) -> Message | None:
        """Take the message from the slot if there is one."""
        with self._cond:
            if self._slot:
                return self._slot.popleft()
            return None

    def __len__(self) -> int:
        with self._cond:
            return len(self._slot)
