"""
Data model shared by the engine, the store and the sync layer.

Credential and Group are immutable values. The store never edits one in
place; it swaps in a new instance built with dataclasses.replace().
"""

import hashlib
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

VALID_DIGITS = (6, 7, 8)
DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30


def new_id() -> str:
    return str(uuid.uuid4())


class OTPType(str, Enum):
    TOTP = "totp"
    HOTP = "hotp"


class HashAlgorithm(str, Enum):
    SHA1 = "sha1"
    SHA256 = "sha256"
    SHA512 = "sha512"

    @property
    def digestmod(self):
        """hashlib constructor usable as hmac.new(..., digestmod)."""
        return getattr(hashlib, self.value)

    @classmethod
    def parse(cls, name: Optional[str]) -> "HashAlgorithm":
        """Case-insensitive lookup ("SHA256", "sha256"); unknown names fall back to SHA1."""
        if name:
            try:
                return cls(name.strip().lower())
            except ValueError:
                pass
        return cls.SHA1


@dataclass(frozen=True)
class Group:
    name: str
    color_tag: str
    id: str = field(default_factory=new_id)

    def to_record(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "color_tag": self.color_tag}

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Group":
        return cls(name=record["name"], color_tag=record["color_tag"], id=record["id"])


@dataclass(frozen=True)
class Credential:
    """
    One OTP account as held by the primary device.

    `secret` is the Base32 text and is kept out of repr() so a credential can
    be logged or printed without leaking key material.
    """

    name: str
    secret: str = field(repr=False)
    kind: OTPType = OTPType.TOTP
    digits: int = DEFAULT_DIGITS
    algorithm: HashAlgorithm = HashAlgorithm.SHA1
    period: int = DEFAULT_PERIOD
    counter: Optional[int] = 0
    secondary_visible: bool = True
    group_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        # accept raw strings from records / forms
        object.__setattr__(self, "kind", OTPType(self.kind))
        object.__setattr__(self, "algorithm", HashAlgorithm(self.algorithm))
        if self.digits not in VALID_DIGITS:
            raise ValueError(f"digits must be one of {VALID_DIGITS}, got {self.digits!r}")
        if self.kind is OTPType.TOTP and self.period <= 0:
            raise ValueError(f"period must be > 0, got {self.period!r}")
        if self.kind is OTPType.HOTP and (self.counter is None or self.counter < 0):
            raise ValueError(f"HOTP counter must be >= 0, got {self.counter!r}")

    @property
    def is_totp(self) -> bool:
        return self.kind is OTPType.TOTP

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "secret": self.secret,
            "type": self.kind.value,
            "digits": self.digits,
            "algorithm": self.algorithm.value,
            "period": self.period,
            "counter": self.counter,
            "secondary_visible": self.secondary_visible,
            "group_id": self.group_id,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Credential":
        return cls(
            id=record["id"],
            name=record["name"],
            secret=record["secret"],
            kind=OTPType(record["type"]),
            digits=record.get("digits", DEFAULT_DIGITS),
            algorithm=HashAlgorithm(record.get("algorithm", HashAlgorithm.SHA1.value)),
            period=record.get("period", DEFAULT_PERIOD),
            counter=record.get("counter"),
            secondary_visible=record.get("secondary_visible", True),
            group_id=record.get("group_id"),
        )
