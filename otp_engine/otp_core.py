#!/usr/bin/env python3
"""
otp_core.py - Core library for TOTP / HOTP code generation.

Goals:
- Pure functions only: no file I/O, no argparse, no transport.
- Same HOTP core (RFC4226 section 5.3) for both modes; TOTP only derives the
  counter from wall-clock time (RFC6238).
- HMAC-SHA1, HMAC-SHA256 and HMAC-SHA512 are supported.

Security note:
- The secret is only ever used as an HMAC key here. Nothing in this module
  logs it or returns it.
"""

import hmac
import logging
import math
import struct
import time
from typing import Optional, Tuple
from urllib.parse import quote, urlencode

from otp_engine import base32
from otp_engine.exceptions import InvalidSecret
from otp_engine.models import (
    DEFAULT_DIGITS,
    VALID_DIGITS,
    Credential,
    HashAlgorithm,
    OTPType,
)

logger = logging.getLogger(__name__)


# --- Counter helpers -------------------------------------------------------
def compute_counter(period: int, at_time: Optional[float] = None) -> int:
    """
    TOTP counter for a moment in time: floor(at_time / period).

    Works for any past or future timestamp, which is how previous/next codes
    are derived (at_time -/+ period).

    Arguments:
        period: time step in seconds (> 0)
        at_time: Unix epoch seconds; None -> time.time()

    Raises:
        ValueError: if period <= 0
    """
    if period <= 0:
        raise ValueError(f"period must be > 0, got {period!r}")
    if at_time is None:
        at_time = time.time()
    return math.floor(at_time / period)


def seconds_remaining(period: int, at_time: Optional[float] = None) -> int:
    """Seconds left in the current TOTP step: period - (floor(at_time) mod period)."""
    if period <= 0:
        raise ValueError(f"period must be > 0, got {period!r}")
    if at_time is None:
        at_time = time.time()
    return period - (math.floor(at_time) % period)


# --- RFC helpers -----------------------------------------------------------
def int_to_bytes(i: int) -> bytes:
    """
    Counter as the 8-byte big-endian message RFC4226 requires.

    Example: int_to_bytes(1) -> b'\\x00\\x00\\x00\\x00\\x00\\x00\\x00\\x01'
    """
    if i < 0:
        raise ValueError(f"counter must be >= 0, got {i!r}")
    return struct.pack(">Q", i)


def dynamic_truncate(hmac_digest: bytes) -> int:
    """
    RFC4226 dynamic truncation.

    - offset = last_byte & 0x0F
    - take 4 bytes from offset, clear the MSB of the first one (0x7F)
    - return the 31-bit unsigned integer

    The largest offset is 15, so any digest of 19+ bytes is safe; SHA1 gives
    20, SHA256 32, SHA512 64.
    """
    offset = hmac_digest[-1] & 0x0F
    code = (
        ((hmac_digest[offset] & 0x7F) << 24)
        | ((hmac_digest[offset + 1] & 0xFF) << 16)
        | ((hmac_digest[offset + 2] & 0xFF) << 8)
        | (hmac_digest[offset + 3] & 0xFF)
    )
    return code


def generate(
    secret_b32: str,
    counter: int,
    digits: int = DEFAULT_DIGITS,
    algorithm: HashAlgorithm = HashAlgorithm.SHA1,
) -> str:
    """
    Generate one HOTP value (RFC4226 section 5.3). Shared by TOTP and HOTP.

    Steps:
    1. Base32-decode secret -> raw key bytes
    2. Message = 8-byte counter (big-endian)
    3. HMAC-<algorithm>(key, message)
    4. Dynamic truncate -> 31-bit value
    5. otp = value % 10^digits
    6. Zero-pad to exactly `digits` characters

    Arguments:
        secret_b32: Base32 secret
        counter: non-negative counter
        digits: 6, 7 or 8
        algorithm: HashAlgorithm member

    Returns:
        str: zero-padded decimal code

    Raises:
        InvalidSecret: the secret decodes to zero bytes
        ValueError: digits out of range or negative counter
    """
    if digits not in VALID_DIGITS:
        raise ValueError(f"digits must be one of {VALID_DIGITS}, got {digits!r}")

    key = base32.decode(secret_b32)
    if not key:
        raise InvalidSecret("secret does not decode to any key material")

    msg = int_to_bytes(counter)
    digest = hmac.new(key, msg, HashAlgorithm(algorithm).digestmod).digest()

    dbc = dynamic_truncate(digest)
    otp_val = dbc % (10 ** digits)
    return str(otp_val).zfill(digits)


def generate_totp(credential: Credential, at_time: Optional[float] = None) -> Optional[str]:
    """
    TOTP code of a credential at `at_time` (default: now).

    Returns None instead of raising when the secret is unusable, so a caller
    rendering many credentials can show "Invalid" for one and carry on.
    """
    counter = compute_counter(credential.period, at_time)
    try:
        return generate(credential.secret, counter, credential.digits, credential.algorithm)
    except InvalidSecret:
        logger.debug("TOTP generation skipped for credential %s: invalid secret", credential.id)
        return None


def generate_hotp(credential: Credential, counter: Optional[int] = None) -> Optional[str]:
    """
    HOTP code of a credential.

    Arguments:
        credential: the credential; its stored counter is used by default
        counter: explicit counter, overrides credential.counter

    Returns:
        str or None: None when no counter is available or the secret is unusable
    """
    if counter is None:
        counter = credential.counter
    if counter is None:
        return None
    try:
        return generate(credential.secret, counter, credential.digits, credential.algorithm)
    except InvalidSecret:
        logger.debug("HOTP generation skipped for credential %s: invalid secret", credential.id)
        return None


def code_window(
    credential: Credential, at_time: Optional[float] = None
) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """
    (previous, current, next) TOTP codes around `at_time`.

    The neighbours are computed at at_time -/+ period, so they are exactly the
    codes of the adjacent steps. Before the first full step there is no
    previous code.
    """
    if at_time is None:
        at_time = time.time()
    period = credential.period
    return (
        generate_totp(credential, at_time - period) if at_time >= period else None,
        generate_totp(credential, at_time),
        generate_totp(credential, at_time + period),
    )


def format_otpauth_uri(credential: Credential, issuer: Optional[str] = None) -> str:
    """
    otpauth:// URI for a credential, importable by authenticator apps.

    - TOTP: otpauth://totp/{label}?secret=...&algorithm=...&digits=...&period=...
    - HOTP: otpauth://hotp/{label}?secret=...&algorithm=...&digits=...&counter=...

    The label is "{issuer}:{name}" when an issuer is given, else the name.
    Label and parameters are percent-encoded, so parse() returns them intact.
    """
    label = f"{issuer}:{credential.name}" if issuer else credential.name
    params = [
        ("secret", credential.secret),
        ("algorithm", credential.algorithm.value.upper()),
        ("digits", credential.digits),
    ]
    if credential.kind is OTPType.TOTP:
        params.append(("period", credential.period))
    else:
        params.append(("counter", credential.counter if credential.counter is not None else 0))
    if issuer:
        params.append(("issuer", issuer))
    return f"otpauth://{credential.kind.value}/{quote(label, safe='@')}?{urlencode(params, quote_via=quote)}"


# If this module is executed directly, do nothing - it's core-only for import.
if __name__ == "__main__":
    print("otp_core.py is a library module. Import it instead of executing directly.")
