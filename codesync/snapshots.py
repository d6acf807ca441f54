"""
Secret-free code snapshots.

A CodeSnapshot is everything the secondary device needs to show one
credential: codes, countdown, counter and group color. It never carries the
secret. Snapshots are immutable; the next push replaces them wholesale.

Wire field names (camelCase) are the aliases below; Python code uses the
snake_case attribute names.
"""

import time
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from otp_engine.models import Credential, Group, OTPType
from otp_engine.otp_core import code_window, generate_hotp, seconds_remaining

# Shown in place of a code when the secret cannot produce one
ERROR_CODE = "Error"


class CodeSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    kind: OTPType = Field(alias="type")
    digits: int = Field(ge=6, le=8)
    current_code: str = Field(alias="currentCode")
    previous_code: Optional[str] = Field(default=None, alias="previousCode")
    next_code: Optional[str] = Field(default=None, alias="nextCode")
    seconds_remaining: Optional[int] = Field(default=None, alias="timeRemaining")
    period: Optional[int] = Field(default=None, gt=0)
    counter: Optional[int] = Field(default=None, ge=0)
    group_color: Optional[str] = Field(default=None, alias="groupColorHex")
    generated_at: float = Field(alias="lastUpdated")

    @model_validator(mode="after")
    def check_kind_fields(self) -> "CodeSnapshot":
        if self.kind is OTPType.TOTP:
            if self.period is None or self.counter is not None:
                raise ValueError("TOTP snapshot needs period and no counter")
        else:
            if self.counter is None or self.period is not None:
                raise ValueError("HOTP snapshot needs counter and no period")
            if self.previous_code is not None or self.next_code is not None or self.seconds_remaining is not None:
                raise ValueError("HOTP snapshot has no previous/next code or countdown")
        return self

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def build_snapshot(credential: Credential, group: Optional[Group] = None, now: Optional[float] = None) -> CodeSnapshot:
    """
    Snapshot of one credential at `now`.

    TOTP: previous/current/next codes plus seconds left in the current step.
    HOTP: current code for the stored counter.
    A secret that cannot produce a code gives ERROR_CODE, not an exception,
    so one broken credential never sinks the batch.
    """
    if now is None:
        now = time.time()
    color = group.color_tag if group is not None else None

    if credential.kind is OTPType.TOTP:
        previous, current, upcoming = code_window(credential, now)
        return CodeSnapshot(
            id=credential.id,
            name=credential.name,
            kind=credential.kind,
            digits=credential.digits,
            current_code=current or ERROR_CODE,
            previous_code=previous or ERROR_CODE,
            next_code=upcoming or ERROR_CODE,
            seconds_remaining=seconds_remaining(credential.period, now),
            period=credential.period,
            group_color=color,
            generated_at=now,
        )

    return CodeSnapshot(
        id=credential.id,
        name=credential.name,
        kind=credential.kind,
        digits=credential.digits,
        current_code=generate_hotp(credential) or ERROR_CODE,
        counter=credential.counter,
        group_color=color,
        generated_at=now,
    )


def build_all_snapshots(
    credentials: Iterable[Credential],
    groups: Iterable[Group] = (),
    now: Optional[float] = None,
) -> List[CodeSnapshot]:
    """
    Snapshots of every secondary-visible credential, in source order.

    One `now` is used for the whole batch so all snapshots share a timestamp.
    """
    if now is None:
        now = time.time()
    groups_by_id = {g.id: g for g in groups}
    return [
        build_snapshot(c, groups_by_id.get(c.group_id) if c.group_id else None, now)
        for c in credentials
        if c.secondary_visible
    ]
