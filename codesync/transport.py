"""
Device link interface and an in-process reference implementation.

The sync coordinators only need three things from a link: is the other side
reachable, hand these bytes over without waiting for an acknowledgment, and
call me back with whatever arrives. Real pairing transports (Bluetooth,
companion-app channels) implement Transport; LoopbackLink connects two
endpoints inside one process for tests and the CLI demo.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Optional, Tuple

logger = logging.getLogger(__name__)

Receiver = Callable[[bytes], None]


class Transport(ABC):
    @abstractmethod
    def is_reachable(self) -> bool:
        """True when the peer can currently receive messages."""

    @abstractmethod
    def send(self, payload: bytes) -> bool:
        """
        Hand one message to the link, fire-and-forget.

        Returns False (and does nothing) when the peer is unreachable. A
        message is either handed over whole or not at all.
        """

    @abstractmethod
    def set_receiver(self, callback: Optional[Receiver]) -> None:
        """Install the callback invoked with each incoming payload."""


class LoopbackEndpoint(Transport):
    def __init__(self, link: "LoopbackLink", name: str):
        self.link = link
        self.name = name
        self.peer: Optional["LoopbackEndpoint"] = None
        self.receiver: Optional[Receiver] = None

    def is_reachable(self) -> bool:
        return self.link.connected

    def send(self, payload: bytes) -> bool:
        return self.link._send(self, bytes(payload))

    def set_receiver(self, callback: Optional[Receiver]) -> None:
        self.receiver = callback

    def __repr__(self):
        return f"LoopbackEndpoint({self.name!r})"


class LoopbackLink:
    """
    Two connected endpoints, `primary` and `secondary`.

    By default messages queue up until deliver_all()/deliver_next() is called,
    which lets tests decide exactly when (and in which order) things arrive.
    With auto_deliver=True every send is delivered immediately.
    Disconnecting drops everything still in flight.
    """

    def __init__(self, connected: bool = True, auto_deliver: bool = False):
        self.connected = connected
        self.auto_deliver = auto_deliver
        self.primary = LoopbackEndpoint(self, "primary")
        self.secondary = LoopbackEndpoint(self, "secondary")
        self.primary.peer = self.secondary
        self.secondary.peer = self.primary
        self._pending: Deque[Tuple[LoopbackEndpoint, bytes]] = deque()
        self._lock = threading.Lock()
        self.sent_count = 0

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        with self._lock:
            self.connected = False
            dropped = len(self._pending)
            self._pending.clear()
        if dropped:
            logger.debug("Link down, dropped %d in-flight message(s)", dropped)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _send(self, sender: LoopbackEndpoint, payload: bytes) -> bool:
        with self._lock:
            if not self.connected:
                return False
            self.sent_count += 1
            if not self.auto_deliver:
                self._pending.append((sender.peer, payload))
                return True
        self._deliver(sender.peer, payload)
        return True

    def _deliver(self, target: LoopbackEndpoint, payload: bytes) -> None:
        if target.receiver is None:
            logger.debug("No receiver on %s, message dropped", target.name)
            return
        target.receiver(payload)

    def deliver_next(self) -> bool:
        with self._lock:
            if not self._pending:
                return False
            target, payload = self._pending.popleft()
        self._deliver(target, payload)
        return True

    def deliver_all(self, newest_first: bool = False) -> int:
        """
        Deliver queued messages, including ones sent while delivering.

        newest_first reverses the order of what is queued right now, to
        simulate an unordered link.
        """
        if newest_first:
            with self._lock:
                self._pending.reverse()
        delivered = 0
        while self.deliver_next():
            delivered += 1
        return delivered
