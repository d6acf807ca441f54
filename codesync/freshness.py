"""
Freshness policy for snapshots shown on the secondary device.

The secondary cannot compute codes, so it only knows what it was sent and
when it arrived (generated_at is re-stamped with the receiver's clock).

- TOTP: fresh while age <= period (30 s if unset).
- HOTP: fresh while age <= 1 hour. The code never expires on its own, but the
  primary may have consumed or advanced it in the meantime.

A stale snapshot is rendered as a row of mask characters, and its HOTP
"next code" action is disabled: advancing from stale state could push the
shared counter out of step.
"""

import math
import time
from typing import NamedTuple, Optional

from codesync.snapshots import CodeSnapshot
from otp_engine.models import DEFAULT_PERIOD, OTPType

HOTP_MAX_AGE = 3600
PLACEHOLDER_CHAR = "•"


class CodeDisplay(NamedTuple):
    """What a list row / detail view shows for one snapshot."""
    name: str
    current: str
    previous: Optional[str]
    next: Optional[str]
    seconds_remaining: Optional[int]
    counter: Optional[int]
    fresh: bool
    can_advance: bool


def _age(snapshot: CodeSnapshot, now: Optional[float]) -> float:
    if now is None:
        now = time.time()
    return now - snapshot.generated_at


def is_fresh(snapshot: CodeSnapshot, now: Optional[float] = None, hotp_max_age: float = HOTP_MAX_AGE) -> bool:
    age = _age(snapshot, now)
    if snapshot.kind is OTPType.HOTP:
        return age <= hotp_max_age
    return age <= (snapshot.period or DEFAULT_PERIOD)


def placeholder(digits: int) -> str:
    return PLACEHOLDER_CHAR * digits


def display_code(snapshot: CodeSnapshot, code: Optional[str], now: Optional[float] = None,
                 hotp_max_age: float = HOTP_MAX_AGE) -> str:
    if code is not None and is_fresh(snapshot, now, hotp_max_age):
        return code
    return placeholder(snapshot.digits)


def can_advance(snapshot: CodeSnapshot, now: Optional[float] = None, hotp_max_age: float = HOTP_MAX_AGE) -> bool:
    return snapshot.kind is OTPType.HOTP and is_fresh(snapshot, now, hotp_max_age)


def countdown(snapshot: CodeSnapshot, now: Optional[float] = None) -> Optional[int]:
    """
    Local estimate of the seconds left in the TOTP step.

    Counts down from the value that was sent and wraps back to the period
    after reaching zero, the way the ring indicator does between pushes.
    """
    if snapshot.kind is not OTPType.TOTP or snapshot.seconds_remaining is None:
        return None
    period = snapshot.period or DEFAULT_PERIOD
    elapsed = max(0, math.floor(_age(snapshot, now)))
    remaining = (snapshot.seconds_remaining - elapsed) % period
    return remaining or period


def render(snapshot: CodeSnapshot, now: Optional[float] = None, hotp_max_age: float = HOTP_MAX_AGE) -> CodeDisplay:
    if now is None:
        now = time.time()
    fresh = is_fresh(snapshot, now, hotp_max_age)
    masked = placeholder(snapshot.digits)
    totp = snapshot.kind is OTPType.TOTP
    return CodeDisplay(
        name=snapshot.name,
        current=snapshot.current_code if fresh else masked,
        previous=(snapshot.previous_code if fresh else masked) if totp else None,
        next=(snapshot.next_code if fresh else masked) if totp else None,
        seconds_remaining=countdown(snapshot, now) if fresh else None,
        counter=snapshot.counter,
        fresh=fresh,
        can_advance=can_advance(snapshot, now, hotp_max_age),
    )
