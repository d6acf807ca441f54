"""Errors raised by the OTP engine and the otpauth URI parser."""


class InvalidSecret(ValueError):
    """Base32 secret decoded to zero bytes of key material."""
    pass


class OTPAuthParseError(ValueError):
    """otpauth:// URI is malformed or missing a required part."""
    pass
