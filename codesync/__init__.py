"""
Cross-device code synchronization.

The primary device turns credentials into secret-free CodeSnapshots and
pushes them over a device link; the secondary caches the latest batch and
decides, by its own clock, whether each snapshot is still fresh enough to
show.
"""

from codesync.freshness import can_advance, display_code, is_fresh, placeholder, render
from codesync.messages import decode_message, encode_increment_counter, encode_push, encode_request_update
from codesync.primary import PrimarySync
from codesync.scheduler import ManualClock, ManualScheduler, ThreadedScheduler
from codesync.secondary import SecondarySync
from codesync.snapshots import ERROR_CODE, CodeSnapshot, build_all_snapshots, build_snapshot
from codesync.transport import LoopbackLink, Transport

__all__ = [
    "ERROR_CODE",
    "CodeSnapshot",
    "LoopbackLink",
    "ManualClock",
    "ManualScheduler",
    "PrimarySync",
    "SecondarySync",
    "ThreadedScheduler",
    "Transport",
    "build_all_snapshots",
    "build_snapshot",
    "can_advance",
    "decode_message",
    "display_code",
    "encode_increment_counter",
    "encode_push",
    "encode_request_update",
    "is_fresh",
    "placeholder",
    "render",
]
