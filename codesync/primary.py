"""
Primary-side sync coordinator.

Pushes the full snapshot batch of secondary-visible credentials:
- on a fixed schedule while started,
- right after any store mutation,
- when the secondary asks with "requestUpdate".

Pushing while the link is down is a no-op; the next tick or trigger delivers
the current state (at-least-once, latest wins, nothing queued).
"""

import logging
from typing import Callable, List, Optional

from codesync.messages import IncrementCounter, PushBatch, RequestUpdate, decode_message, encode_push
from codesync.scheduler import Clock, ScheduledTask, Scheduler, ThreadedScheduler, system_clock
from codesync.snapshots import CodeSnapshot, build_all_snapshots
from codesync.transport import Transport
from otp_engine.config import settings
from secretstore.credential_store import CredentialStore, StoreChange

logger = logging.getLogger(__name__)


class PrimarySync:
    def __init__(
        self,
        store: CredentialStore,
        transport: Transport,
        scheduler: Optional[Scheduler] = None,
        clock: Clock = system_clock,
        push_interval: Optional[float] = None,
    ):
        self.store = store
        self.transport = transport
        # a scheduler created here is shut down by stop()
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or ThreadedScheduler()
        self.clock = clock
        self.push_interval = push_interval or settings.PUSH_INTERVAL
        self._task: Optional[ScheduledTask] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self.running:
            return
        self.transport.set_receiver(self.handle_message)
        self._unsubscribe = self.store.subscribe(self._on_store_change)
        self._task = self.scheduler.every(self.push_interval, self.push, name="primary-push")
        logger.info("Primary sync started (push every %ss)", self.push_interval)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._owns_scheduler:
            self.scheduler.shutdown(wait=True)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.transport.set_receiver(None)
        logger.info("Primary sync stopped")

    def build_batch(self) -> List[CodeSnapshot]:
        return build_all_snapshots(self.store.credentials, self.store.groups, self.clock())

    def push(self) -> bool:
        """Build and send the current batch; False when the link is unavailable."""
        if not self.transport.is_reachable():
            logger.debug("Secondary unreachable, push skipped")
            return False
        batch = self.build_batch()
        sent = self.transport.send(encode_push(batch))
        if sent:
            logger.debug("Pushed %d snapshot(s) to secondary", len(batch))
        return sent

    def handle_message(self, payload: bytes) -> None:
        message = decode_message(payload)
        if isinstance(message, RequestUpdate):
            self.push()
        elif isinstance(message, IncrementCounter):
            # the store change triggers the push
            if self.store.increment_hotp_counter(message.secret_id) is None:
                logger.debug("Ignored incrementCounter for %s", message.secret_id)
        elif isinstance(message, PushBatch):
            logger.debug("Primary ignores snapshot batches")

    def _on_store_change(self, change: StoreChange) -> None:
        logger.debug("Store changed (%s), pushing", change.kind.value)
        self.push()
