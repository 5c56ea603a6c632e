"""Mesh transport abstraction shared by the serial and MQTT variants."""
from __future__ import annotations

import logging
import queue
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any, Callable

from .events import MeshEvent, OutboundMeshSend

logger = logging.getLogger(__name__)

# Placed on an inbox to end receive_events()
CLOSED = object()


class MeshTransport(ABC):
    """One source of MeshEvents and one sink for OutboundMeshSend.

    receive_events() is a lazy, non-restartable sequence. It ends when the
    underlying link is lost or close() is called; it never reconnects.
    """

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def receive_events(self) -> Iterator[MeshEvent]: ...

    @abstractmethod
    def send(self, request: OutboundMeshSend) -> None:
        """Hand one request to the radio. Raises MeshSendError."""
        ...

    @abstractmethod
    def close(self) -> None: ...

    @property
    @abstractmethod
    def is_open(self) -> bool: ...


def drain_inbox(inbox: queue.Queue[Any], should_stop: Callable[[], bool], poll_interval: float = 0.2) -> Iterator[Any]:
    """Yield items put on ``inbox`` by a library callback thread until CLOSED arrives."""
    while not should_stop():
        try:
            item = inbox.get(timeout=poll_interval)
        except queue.Empty:
            continue
        if item is CLOSED:
            return
        yield item
