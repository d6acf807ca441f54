#!/usr/bin/env python3
"""
otp_cli.py - developer CLI around the OTP engine, the credential store and
the sync layer.

Subcommands:
- totp    : TOTP code for a raw secret (once, or live with --follow)
- hotp    : HOTP code for a raw secret and counter
- parse   : show what an otpauth:// URI parses to
- add     : add a credential from an otpauth:// URI to the store
- list    : list stored credentials with their current codes
- advance : advance an HOTP counter
- uri     : print the otpauth:// URI of a stored credential
- qr      : write a stored credential's otpauth:// URI as a QR code PNG
- mirror  : run primary + secondary in-process and show the secondary view

Usage examples:
  otp-mirror totp --secret JBSWY3DPEHPK3PXP --follow
  otp-mirror add "otpauth://hotp/ACME:bob?secret=JBSWY3DPEHPK3PXP&counter=3"
  otp-mirror list
  otp-mirror mirror --seconds 20
"""

import argparse
import time

from codesync.primary import PrimarySync
from codesync.scheduler import ThreadedScheduler
from codesync.secondary import SecondarySync
from codesync.transport import LoopbackLink
from otp_engine import otpauth_uri
from otp_engine.config import settings
from otp_engine.exceptions import InvalidSecret, OTPAuthParseError
from otp_engine.log import setup_logging
from otp_engine.models import Credential, HashAlgorithm, OTPType
from otp_engine.otp_core import (
    compute_counter,
    format_otpauth_uri,
    generate,
    generate_hotp,
    generate_totp,
    seconds_remaining,
)
from secretstore.blob_store import JSONFileBlobStore, MemoryBlobStore
from secretstore.credential_store import CredentialNotFound, CredentialStore


def _mask(secret: str) -> str:
    return secret[:4] + "…" if len(secret) > 4 else "…"


def _open_store(args) -> CredentialStore:
    return CredentialStore(JSONFileBlobStore(args.data_dir))


def _find(store: CredentialStore, prefix: str) -> Credential:
    """Credential by full id or unambiguous id prefix."""
    matches = [c for c in store.credentials if c.id.startswith(prefix)]
    if len(matches) != 1:
        raise CredentialNotFound(prefix)
    return matches[0]


# --- CLI command handlers ---
def cmd_totp(args):
    algorithm = HashAlgorithm.parse(args.algorithm)
    last_code = None
    try:
        while True:
            now = time.time()
            counter = compute_counter(args.period, now)
            code = generate(args.secret, counter, args.digits, algorithm)
            remaining = seconds_remaining(args.period, now)
            if not args.follow:
                print(f"TOTP ({args.digits}d): {code}  (valid ~{remaining:2d}s)")
                return 0
            if code != last_code:
                print(f"TOTP ({args.digits}d): {code}  (valid ~{remaining:2d}s)")
                last_code = code
            else:
                print(f".. {remaining:2d}s left", end='\r', flush=True)
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nBye.")
    return 0


def cmd_hotp(args):
    code = generate(args.secret, args.counter, args.digits, HashAlgorithm.parse(args.algorithm))
    print(f"HOTP({args.digits}d, counter={args.counter}): {code}")
    return 0


def cmd_parse(args):
    parsed = otpauth_uri.parse(args.uri)
    print(f"type      : {parsed.kind.value}")
    print(f"name      : {parsed.display_name()}")
    print(f"issuer    : {parsed.issuer or '-'}")
    print(f"account   : {parsed.account or '-'}")
    print(f"secret    : {_mask(parsed.secret)}")
    print(f"algorithm : {parsed.algorithm.value.upper()}")
    print(f"digits    : {parsed.digits}")
    if parsed.kind is OTPType.TOTP:
        print(f"period    : {parsed.period}")
    else:
        print(f"counter   : {parsed.counter if parsed.counter is not None else '-'}")
    return 0


def cmd_add(args):
    store = _open_store(args)
    group_id = None
    if args.group:
        group = next((g for g in store.groups if g.name.lower() == args.group.lower()), None)
        if group is None:
            print(f"[!] Unknown group '{args.group}'")
            return 1
        group_id = group.id
    credential = store.add_from_uri(
        args.uri, name=args.name, secondary_visible=not args.hidden, group_id=group_id
    )
    print(f"[+] Added {credential.kind.value.upper()} '{credential.name}' ({credential.id})")
    return 0


def cmd_list(args):
    store = _open_store(args)
    if not store.credentials:
        print("No credentials stored.")
        return 0
    for c in store.credentials:
        group = store.group_for(c)
        if c.kind is OTPType.TOTP:
            code = generate_totp(c) or "Invalid"
            detail = f"{seconds_remaining(c.period):2d}s"
        else:
            code = generate_hotp(c) or "Invalid"
            detail = f"#{c.counter}"
        flags = "" if c.secondary_visible else " (hidden on secondary)"
        group_label = f" [{group.name}]" if group else ""
        print(f"{c.id[:8]}  {c.kind.value.upper()}  {code:>8}  {detail:>6}  {c.name}{group_label}{flags}")
    return 0


def cmd_advance(args):
    store = _open_store(args)
    credential = _find(store, args.id)
    if store.increment_hotp_counter(credential.id) is None:
        print(f"[!] '{credential.name}' is not an HOTP credential")
        return 1
    updated = store.get(credential.id)
    print(f"[+] '{updated.name}' counter = {updated.counter}: {generate_hotp(updated)}")
    return 0


def cmd_uri(args):
    store = _open_store(args)
    print(format_otpauth_uri(_find(store, args.id), issuer=args.issuer))
    return 0


def cmd_qr(args):
    import qrcode

    store = _open_store(args)
    uri = format_otpauth_uri(_find(store, args.id), issuer=args.issuer)

    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    img.save(args.out)
    print(f"[+] QR code written to {args.out}")
    return 0


def cmd_mirror(args):
    """Primary and secondary in one process over a loopback link."""
    store = _open_store(args)
    link = LoopbackLink(auto_deliver=True)
    scheduler = ThreadedScheduler()
    primary = PrimarySync(store, link.primary, scheduler=scheduler, push_interval=args.interval)
    secondary = SecondarySync(link.secondary, MemoryBlobStore(), scheduler=scheduler,
                              request_interval=args.interval)
    primary.start()
    secondary.start()
    deadline = time.time() + args.seconds if args.seconds else None
    try:
        while deadline is None or time.time() < deadline:
            print("\n--- secondary view ---")
            for row in secondary.render():
                if row.counter is not None:
                    detail = f"#{row.counter}"
                else:
                    detail = f"{row.seconds_remaining}s" if row.seconds_remaining is not None else "…"
                print(f"{row.current:>8}  {detail:>6}  {row.name}")
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nBye.")
    finally:
        secondary.stop()
        primary.stop()
        scheduler.shutdown(wait=True)
    return 0


def cmd_help(args):
    print("'otp-mirror -h' for help.")
    return 0


# --- Argparse builder ---
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="TOTP/HOTP generator with secondary-device code mirroring")
    p.add_argument("--data-dir", default=settings.DATA_DIR, help="Directory of the credential store")
    p.add_argument("--log-level", default=settings.LOG_LEVEL, help="Logging level (DEBUG, INFO, ...)")
    p.add_argument("--json-logs", action="store_true", default=settings.LOG_JSON, help="Log as JSON lines")
    sub = p.add_subparsers(dest="cmd")
    p.set_defaults(func=cmd_help)

    # totp
    pt = sub.add_parser("totp", help="TOTP code for a Base32 secret")
    pt.add_argument("--secret", required=True, help="Base32 secret")
    pt.add_argument("--digits", type=int, default=settings.DEFAULT_DIGITS, choices=(6, 7, 8))
    pt.add_argument("--period", type=int, default=settings.DEFAULT_PERIOD, help="TOTP time step (seconds)")
    pt.add_argument("--algorithm", default="SHA1", help="SHA1, SHA256 or SHA512")
    pt.add_argument("--follow", action="store_true", help="Keep printing codes in real time")
    pt.set_defaults(func=cmd_totp)

    # hotp
    ph = sub.add_parser("hotp", help="HOTP code for a Base32 secret and counter")
    ph.add_argument("--secret", required=True, help="Base32 secret")
    ph.add_argument("--counter", type=int, required=True)
    ph.add_argument("--digits", type=int, default=settings.DEFAULT_DIGITS, choices=(6, 7, 8))
    ph.add_argument("--algorithm", default="SHA1", help="SHA1, SHA256 or SHA512")
    ph.set_defaults(func=cmd_hotp)

    # parse
    pp = sub.add_parser("parse", help="Show the fields of an otpauth:// URI")
    pp.add_argument("uri")
    pp.set_defaults(func=cmd_parse)

    # add
    pa = sub.add_parser("add", help="Add a credential from an otpauth:// URI")
    pa.add_argument("uri")
    pa.add_argument("--name", help="Display name (default: derived from the URI)")
    pa.add_argument("--group", help="Group name, e.g. Work")
    pa.add_argument("--hidden", action="store_true", help="Do not show on the secondary device")
    pa.set_defaults(func=cmd_add)

    # list
    pl = sub.add_parser("list", help="List stored credentials with current codes")
    pl.set_defaults(func=cmd_list)

    # advance
    pv = sub.add_parser("advance", help="Advance an HOTP counter by one")
    pv.add_argument("id", help="Credential id (or unique prefix)")
    pv.set_defaults(func=cmd_advance)

    # uri
    pu = sub.add_parser("uri", help="Print the otpauth:// URI of a credential")
    pu.add_argument("id", help="Credential id (or unique prefix)")
    pu.add_argument("--issuer", help="Issuer label for the URI")
    pu.set_defaults(func=cmd_uri)

    # qr
    pq = sub.add_parser("qr", help="Write a credential's otpauth:// URI as a QR code PNG")
    pq.add_argument("id", help="Credential id (or unique prefix)")
    pq.add_argument("--issuer", help="Issuer label for the URI")
    pq.add_argument("--out", default="otp_qr.png", help="Output PNG path")
    pq.set_defaults(func=cmd_qr)

    # mirror
    pm = sub.add_parser("mirror", help="Run primary and secondary in-process, print the secondary view")
    pm.add_argument("--interval", type=float, default=settings.PUSH_INTERVAL, help="Push/request interval (seconds)")
    pm.add_argument("--seconds", type=float, default=0, help="Stop after this many seconds (0 = until Ctrl+C)")
    pm.set_defaults(func=cmd_mirror)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.json_logs)
    try:
        return args.func(args)
    except OTPAuthParseError as e:
        print(f"[!] Invalid otpauth URI: {e}")
    except InvalidSecret as e:
        print(f"[!] {e}")
    except CredentialNotFound as e:
        print(f"[!] No single credential matches id {e.args[0]!r}")
    except ValueError as e:
        print(f"[!] {e}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
