"""Driver-to-view event channel and the cancellation token shared by a turn."""

import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union

from .errors import CancelledError
from .messages import ChatMessage

_POLL_INTERVAL = 0.05


class CancelToken:
    """One-shot cancellation flag checked at request, tool and chunk boundaries."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise CancelledError()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)


# ── Events ──


@dataclass(frozen=True)
class Chunk:
    text: str


@dataclass(frozen=True)
class Done:
    message: ChatMessage
    history: List[ChatMessage] = field(default_factory=list)


@dataclass(frozen=True)
class Error:
    error: Exception
    history: List[ChatMessage] = field(default_factory=list)


Event = Union[Chunk, Done, Error]


class EventChannel:
    """Bounded single-producer single-consumer queue of stream events.

    ``send`` blocks until the consumer has room, so the producer never runs
    ahead of the view by more than one event. A consumer that stops reading
    calls ``abandon`` so the producer's sends return instead of blocking.
    """

    def __init__(self, maxsize: int = 1):
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._abandoned = threading.Event()
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def abandoned(self) -> bool:
        return self._abandoned.is_set()

    def send(self, event: Event, cancel: Optional[CancelToken] = None) -> bool:
        """Queue ``event``; returns False if the consumer has abandoned the channel."""
        if self._closed.is_set():
            raise RuntimeError("send on closed channel")
        while True:
            if cancel is not None:
                cancel.raise_if_cancelled()
            if self._abandoned.is_set():
                return False
            try:
                self._queue.put(event, timeout=_POLL_INTERVAL)
                return True
            except queue.Full:
                continue

    def close(self):
        """Mark the channel closed; the consumer sees queued events first."""
        self._closed.set()

    def abandon(self):
        self._abandoned.set()

    def receive(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Next event, or ``None`` once the channel is closed and drained.

        Raises ``queue.Empty`` if ``timeout`` passes with nothing to read.
        """
        if self._drained:
            return None
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            try:
                return self._queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                # Single producer: once closed, nothing more can arrive.
                if self._closed.is_set() and self._queue.empty():
                    self._drained = True
                    return None
                if deadline is not None and time.monotonic() >= deadline:
                    raise

    def __iter__(self) -> Iterator[Event]:
        while True:
            event = self.receive()
            if event is None:
                return
            yield event
