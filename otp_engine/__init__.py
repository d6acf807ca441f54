"""
otp_engine package
==================

One-time password generation (HOTP/TOTP) per RFC 4226 & RFC 6238, plus the
otpauth:// URI parser that feeds new credentials into the store.

──────────────────────────────────────────────
Core algorithm
──────────────────────────────────────────────
- HOTP (HMAC-based One-Time Password):
  code = Truncate(HMAC-<alg>(key=secret, msg=counter)) mod 10^digits
  → counter is advanced explicitly, once per generated code.

- TOTP (Time-based One-Time Password):
  HOTP with counter = floor(timestamp / period)
  → period is usually 30 s, so the code changes every 30 s.

- Dynamic Truncation:
  4 bytes of the HMAC starting at offset (last byte & 0x0F), top bit cleared.

──────────────────────────────────────────────
Quick example
──────────────────────────────────────────────
>>> from otp_engine import parse_otpauth_uri, generate_totp
>>> parsed = parse_otpauth_uri("otpauth://totp/Example:alice?secret=JBSWY3DPEHPK3PXP")
>>> credential = parsed.to_credential()
>>> credential.name
'Example: alice'
>>> len(generate_totp(credential, at_time=59))
6
"""
from otp_engine.exceptions import InvalidSecret, OTPAuthParseError
from otp_engine.models import Credential, Group, HashAlgorithm, OTPType
from otp_engine.otp_core import (
    code_window,
    compute_counter,
    format_otpauth_uri,
    generate,
    generate_hotp,
    generate_totp,
    seconds_remaining,
)
from otp_engine.otpauth_uri import ParsedCredential
from otp_engine.otpauth_uri import parse as parse_otpauth_uri

__all__ = [
    "Credential",
    "Group",
    "HashAlgorithm",
    "InvalidSecret",
    "OTPAuthParseError",
    "OTPType",
    "ParsedCredential",
    "code_window",
    "compute_counter",
    "format_otpauth_uri",
    "generate",
    "generate_hotp",
    "generate_totp",
    "parse_otpauth_uri",
    "seconds_remaining",
]
