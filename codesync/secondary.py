"""
Secondary-side sync coordinator.

Holds the last snapshot batch received from the primary and nothing else; it
never sees a secret and never computes a code.

- Every arriving batch is stamped with this device's clock and replaces the
  previous batch as a whole (last arrival wins, not last generated_at).
- The batch is saved to the blob store so the display survives a restart.
- Advancing an HOTP code sends "incrementCounter" to the primary and records
  a *predicted* counter so the display does not lag. Predictions live apart
  from the confirmed batch and are dropped when the next batch arrives,
  whatever it says.
"""

import json
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from codesync import freshness
from codesync.messages import PushBatch, decode_message, encode_increment_counter, encode_request_update
from codesync.scheduler import Clock, ScheduledTask, Scheduler, ThreadedScheduler, system_clock
from codesync.snapshots import CodeSnapshot
from codesync.transport import Transport
from otp_engine.config import settings
from otp_engine.models import OTPType
from secretstore.blob_store import BlobStore, MemoryBlobStore

logger = logging.getLogger(__name__)

SNAPSHOTS_KEY = "secondary_snapshots"

Listener = Callable[[Tuple[CodeSnapshot, ...]], None]


class SecondarySync:
    def __init__(
        self,
        transport: Transport,
        blob_store: Optional[BlobStore] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Clock = system_clock,
        request_interval: Optional[float] = None,
        hotp_max_age: Optional[float] = None,
    ):
        self.transport = transport
        self.blob_store = blob_store or MemoryBlobStore()
        # a scheduler created here is shut down by stop()
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or ThreadedScheduler()
        self.clock = clock
        self.request_interval = request_interval or settings.REQUEST_INTERVAL
        self.hotp_max_age = hotp_max_age or settings.HOTP_FRESHNESS_SECONDS
        self._task: Optional[ScheduledTask] = None
        self._listeners: List[Listener] = []
        self._predicted: Dict[str, int] = {}
        self._confirmed: Tuple[CodeSnapshot, ...] = self._load()

    # --- Lifecycle -----------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self.running:
            return
        self.transport.set_receiver(self.handle_message)
        self._task = self.scheduler.every(self.request_interval, self.request_update, name="secondary-request")
        logger.info("Secondary sync started (request every %ss)", self.request_interval)
        self.request_update()

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._owns_scheduler:
            self.scheduler.shutdown(wait=True)
        self.transport.set_receiver(None)
        logger.info("Secondary sync stopped")

    # --- State ---------------------------------------------------------------
    @property
    def confirmed(self) -> Tuple[CodeSnapshot, ...]:
        """The last batch exactly as received (receiver-stamped)."""
        return self._confirmed

    @property
    def predicted_counters(self) -> Dict[str, int]:
        return dict(self._predicted)

    def snapshots(self) -> Tuple[CodeSnapshot, ...]:
        """Display view: the confirmed batch with predicted HOTP counters applied."""
        if not self._predicted:
            return self._confirmed
        return tuple(
            s.model_copy(update={"counter": self._predicted[s.id]}) if s.id in self._predicted else s
            for s in self._confirmed
        )

    def get(self, snapshot_id: str) -> Optional[CodeSnapshot]:
        for snapshot in self.snapshots():
            if snapshot.id == snapshot_id:
                return snapshot
        return None

    def is_fresh(self, snapshot: CodeSnapshot, now: Optional[float] = None) -> bool:
        return freshness.is_fresh(snapshot, self._now(now), self.hotp_max_age)

    def render(self, now: Optional[float] = None) -> List[freshness.CodeDisplay]:
        now = self._now(now)
        return [freshness.render(s, now, self.hotp_max_age) for s in self.snapshots()]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- Link ----------------------------------------------------------------
    def request_update(self) -> bool:
        if not self.transport.is_reachable():
            return False
        return self.transport.send(encode_request_update())

    def handle_message(self, payload: bytes) -> None:
        message = decode_message(payload)
        if isinstance(message, PushBatch):
            self.receive_batch(message.code_infos)
        elif message is not None:
            logger.debug("Secondary ignores %s messages", message.action)

    def receive_batch(self, snapshots: Sequence[CodeSnapshot]) -> None:
        """Replace the cached batch with `snapshots`, stamped with the local clock."""
        now = self.clock()
        batch = tuple(s.model_copy(update={"generated_at": now}) for s in snapshots)
        self._log_prediction_mismatches(batch)
        self._confirmed = batch
        self._predicted = {}
        self._save()
        logger.debug("Received %d snapshot(s)", len(batch))
        self._notify()

    def advance_hotp(self, snapshot_id: str) -> bool:
        """
        Ask the primary to advance an HOTP counter.

        Only allowed for a fresh HOTP snapshot while the primary is reachable.
        Returns True when the request was handed to the link.
        """
        snapshot = self.get(snapshot_id)
        if snapshot is None or snapshot.kind is not OTPType.HOTP:
            return False
        if not freshness.can_advance(snapshot, self.clock(), self.hotp_max_age):
            logger.debug("Not advancing %s: snapshot is stale", snapshot_id)
            return False
        if not self.transport.is_reachable():
            return False

        previous = self._predicted.get(snapshot_id)
        # predict before sending: on a synchronous link the confirmed batch
        # can arrive inside send()
        self._predicted[snapshot_id] = snapshot.counter + 1
        if not self.transport.send(encode_increment_counter(snapshot_id)):
            if previous is None:
                self._predicted.pop(snapshot_id, None)
            else:
                self._predicted[snapshot_id] = previous
            return False
        self._notify()
        return True

    # --- Internals -----------------------------------------------------------
    def _now(self, now: Optional[float]) -> float:
        return self.clock() if now is None else now

    def _log_prediction_mismatches(self, batch: Sequence[CodeSnapshot]) -> None:
        for snapshot in batch:
            predicted = self._predicted.get(snapshot.id)
            if predicted is not None and predicted != snapshot.counter:
                logger.debug(
                    "Counter prediction for %s was %d, primary confirmed %s",
                    snapshot.id, predicted, snapshot.counter,
                )

    def _notify(self) -> None:
        view = self.snapshots()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("Snapshot listener failed")

    def _save(self) -> None:
        records = [s.to_wire() for s in self._confirmed]
        self.blob_store.set(SNAPSHOTS_KEY, json.dumps(records).encode("utf-8"))

    def _load(self) -> Tuple[CodeSnapshot, ...]:
        blob = self.blob_store.get(SNAPSHOTS_KEY)
        if blob is None:
            return ()
        try:
            return tuple(CodeSnapshot.model_validate(record) for record in json.loads(blob))
        except (TypeError, ValueError) as e:
            # pydantic's ValidationError is a ValueError too
            logger.warning("Cached snapshots are unreadable, starting empty: %s", e)
            return ()
