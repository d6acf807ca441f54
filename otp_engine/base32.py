#!/usr/bin/env python3
"""
base32.py - permissive RFC4648 Base32 codec for OTP secrets.

Secrets arrive from QR payloads and hand-typed forms, so the decoder is
lenient: case-insensitive, separators and padding ignored, unknown symbols
skipped. It never raises; an unusable secret simply decodes to b"" and the
OTP engine reports InvalidSecret when it tries to use it.
"""

import base64
import os

# --- Config / constants ----------------------------------------------------
BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
SEPARATOR_CHARS = "- ="
SECRET_BYTES = 20           # 160-bit secret (common practice)

_SYMBOL_VALUES = {ch: idx for idx, ch in enumerate(BASE32_ALPHABET)}


def decode(text: str) -> bytes:
    """
    Decode a Base32 secret into raw key bytes.

    - Uppercases the input and drops '-', ' ' and '=' characters.
    - Any remaining character outside A-Z / 2-7 is skipped silently.
    - 5-bit groups are shifted into a buffer; a byte is emitted every time
      8 or more bits are buffered. Leftover bits (< 8) are discarded.

    Arguments:
        text: Base32 text, e.g. "JBSW Y3DP-EHPK 3PXP"

    Returns:
        bytes: decoded key material, b"" for empty or fully invalid input
    """
    if not text:
        return b""

    cleaned = text.upper()
    for ch in SEPARATOR_CHARS:
        cleaned = cleaned.replace(ch, "")

    out = bytearray()
    buffer = 0
    bits_left = 0
    for ch in cleaned:
        value = _SYMBOL_VALUES.get(ch)
        if value is None:
            continue
        buffer = (buffer << 5) | value
        bits_left += 5
        if bits_left >= 8:
            bits_left -= 8
            out.append((buffer >> bits_left) & 0xFF)
            # keep only the bits not yet emitted
            buffer &= (1 << bits_left) - 1
    return bytes(out)


def encode(raw: bytes) -> str:
    """Encode raw bytes as unpadded uppercase Base32."""
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def generate_secret(num_bytes: int = SECRET_BYTES) -> str:
    """
    Create a random secret and return it as Base32 (no padding).

    os.urandom is a CSPRNG; 20 bytes matches what authenticator apps expect.
    """
    return encode(os.urandom(num_bytes))
