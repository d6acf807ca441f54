"""
otpauth:// URI parser.

    otpauth://{totp|hotp}/{issuer:account}?secret=...&issuer=...&algorithm=...
              &digits=...&period=...&counter=...

QR decoding happens elsewhere; this module only sees the decoded text. The
result fully determines the OTP-relevant fields of a Credential. The store
layer still picks the id, the display name and UI-level fields.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import unquote, urlsplit

from otp_engine.exceptions import OTPAuthParseError
from otp_engine.models import (
    DEFAULT_DIGITS,
    DEFAULT_PERIOD,
    VALID_DIGITS,
    Credential,
    HashAlgorithm,
    OTPType,
)

logger = logging.getLogger(__name__)

SCHEME = "otpauth"


@dataclass(frozen=True)
class ParsedCredential:
    kind: OTPType
    label: str
    secret: str = field(repr=False)
    algorithm: HashAlgorithm = HashAlgorithm.SHA1
    digits: int = DEFAULT_DIGITS
    issuer: Optional[str] = None
    account: Optional[str] = None
    period: Optional[int] = None    # TOTP only
    counter: Optional[int] = None   # HOTP only

    def display_name(self) -> str:
        """"issuer: account", else account, else issuer, else the raw label."""
        if self.account:
            if self.issuer:
                return f"{self.issuer}: {self.account}"
            return self.account
        if self.issuer:
            return self.issuer
        return self.label

    def to_credential(self, name: Optional[str] = None, **ui_fields) -> Credential:
        """
        Build a Credential from the parsed fields.

        `name` defaults to display_name(); `ui_fields` carries
        secondary_visible / group_id / id. An HOTP URI without a counter
        starts at 0.
        """
        if self.kind is OTPType.TOTP:
            period, counter = self.period or DEFAULT_PERIOD, None
        else:
            period, counter = DEFAULT_PERIOD, self.counter if self.counter is not None else 0
        return Credential(
            name=name if name is not None else self.display_name(),
            secret=self.secret,
            kind=self.kind,
            digits=self.digits,
            algorithm=self.algorithm,
            period=period,
            counter=counter,
            **ui_fields,
        )


def _query_pairs(query: str):
    """Percent-decoded (key, value) pairs; "+" stays a literal plus."""
    for part in query.split("&"):
        if not part:
            continue
        key, _, value = part.partition("=")
        yield unquote(key), unquote(value)


def _int_or_none(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def parse(uri: str) -> ParsedCredential:
    """
    Parse an otpauth:// URI.

    Rules:
    - scheme must be "otpauth"; host must be "totp" or "hotp" (any case)
    - label = path without the leading "/"; "issuer:account" is split on the
      first ":", otherwise the whole label is the account
    - `secret` is required and must be non-empty
    - `algorithm` unknown -> SHA1; `digits` non-numeric -> 6; `period`
      non-numeric -> 30; `counter` non-numeric -> ignored
    - `issuer` in the query wins over the label issuer
    - unrecognized query keys are ignored

    Raises:
        OTPAuthParseError: on any rule violation; nothing partial is returned
    """
    if not uri:
        raise OTPAuthParseError("empty URI")
    try:
        parts = urlsplit(uri.strip())
    except ValueError as e:
        raise OTPAuthParseError(f"malformed URI: {e}") from e

    if parts.scheme.lower() != SCHEME:
        raise OTPAuthParseError(f"unsupported scheme {parts.scheme!r}")

    host = (parts.hostname or "").lower()
    try:
        kind = OTPType(host)
    except ValueError:
        raise OTPAuthParseError(f"unsupported OTP type {host!r}") from None

    label = unquote(parts.path)
    if label.startswith("/"):
        label = label[1:]

    issuer: Optional[str] = None
    account: Optional[str] = label
    if ":" in label:
        issuer, account = label.split(":", 1)

    secret: Optional[str] = None
    algorithm = HashAlgorithm.SHA1
    digits = DEFAULT_DIGITS
    period = DEFAULT_PERIOD
    counter: Optional[int] = None

    for key, value in _query_pairs(parts.query):
        key = key.lower()
        if key == "secret":
            secret = value
        elif key == "algorithm":
            algorithm = HashAlgorithm.parse(value)
        elif key == "digits":
            parsed = _int_or_none(value)
            digits = parsed if parsed is not None else DEFAULT_DIGITS
        elif key == "period":
            parsed = _int_or_none(value)
            period = parsed if parsed is not None else DEFAULT_PERIOD
        elif key == "counter":
            parsed = _int_or_none(value)
            if parsed is not None:
                counter = parsed
        elif key == "issuer":
            issuer = value
        else:
            logger.debug("ignoring unknown otpauth parameter %r", key)

    if not secret:
        raise OTPAuthParseError("missing secret")
    if digits not in VALID_DIGITS:
        raise OTPAuthParseError(f"digits must be one of {VALID_DIGITS}, got {digits}")
    if kind is OTPType.TOTP and period <= 0:
        raise OTPAuthParseError(f"period must be > 0, got {period}")
    if kind is OTPType.HOTP and counter is not None and counter < 0:
        raise OTPAuthParseError(f"counter must be >= 0, got {counter}")

    return ParsedCredential(
        kind=kind,
        label=label,
        secret=secret,
        algorithm=algorithm,
        digits=digits,
        issuer=issuer,
        account=account,
        period=period if kind is OTPType.TOTP else None,
        counter=counter if kind is OTPType.HOTP else None,
    )
