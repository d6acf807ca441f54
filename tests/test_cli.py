"""Tests for the developer CLI."""

import pytest

from otp_engine.otp_cli import build_parser, main
from tests.conftest import DEMO_SECRET, RFC_SECRET

HOTP_URI = f"otpauth://hotp/ACME:bob?secret={RFC_SECRET}&counter=0"
TOTP_URI = f"otpauth://totp/Example:alice?secret={DEMO_SECRET}"


@pytest.fixture
def run(tmp_path, capsys):
    def _run(*argv):
        code = main(["--data-dir", str(tmp_path), "--log-level", "WARNING", *argv])
        return code, capsys.readouterr().out
    return _run


def _only_id(run):
    _, out = run("list")
    return out.split()[0]


class TestCodes:
    def test_hotp(self, run):
        code, out = run("hotp", "--secret", RFC_SECRET, "--counter", "1")
        assert code == 0
        assert "287082" in out

    def test_totp(self, run):
        code, out = run("totp", "--secret", DEMO_SECRET)
        assert code == 0
        assert "TOTP (6d):" in out

    def test_invalid_secret(self, run):
        code, out = run("hotp", "--secret", "0189", "--counter", "1")
        assert code == 1
        assert out.startswith("[!]")

    def test_parse_masks_secret(self, run):
        code, out = run("parse", TOTP_URI)
        assert code == 0
        assert "Example: alice" in out
        assert DEMO_SECRET not in out

    def test_parse_rejects_bad_uri(self, run):
        code, out = run("parse", "https://example.com")
        assert code == 1
        assert "Invalid otpauth URI" in out


class TestStoreCommands:
    def test_add_and_list(self, run):
        code, out = run("add", TOTP_URI, "--group", "work")
        assert code == 0
        assert "[+] Added TOTP 'Example: alice'" in out
        _, out = run("list")
        assert "Example: alice [Work]" in out

    def test_add_unknown_group(self, run):
        code, out = run("add", TOTP_URI, "--group", "Nope")
        assert code == 1
        _, out = run("list")
        assert "No credentials stored." in out

    def test_hidden_flag(self, run):
        run("add", TOTP_URI, "--hidden")
        _, out = run("list")
        assert "(hidden on secondary)" in out

    def test_advance(self, run):
        run("add", HOTP_URI)
        code, out = run("advance", _only_id(run))
        assert code == 0
        assert "counter = 1: 287082" in out

    def test_advance_totp_refused(self, run):
        run("add", TOTP_URI)
        code, out = run("advance", _only_id(run))
        assert code == 1

    def test_unknown_id(self, run):
        code, out = run("uri", "does-not-exist")
        assert code == 1
        assert "No single credential" in out

    def test_uri(self, run):
        run("add", HOTP_URI)
        code, out = run("uri", _only_id(run), "--issuer", "ACME")
        assert code == 0
        assert out.startswith("otpauth://hotp/ACME%3AACME%3A%20bob?")
        assert "counter=0" in out

    def test_qr(self, run, tmp_path):
        run("add", TOTP_URI)
        target = tmp_path / "code.png"
        code, _ = run("qr", _only_id(run), "--out", str(target))
        assert code == 0
        assert target.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"


def test_no_command_prints_help_hint(run):
    code, out = run()
    assert code == 0
    assert "-h" in out


def test_parser_defaults():
    args = build_parser().parse_args(["mirror"])
    assert args.interval > 0
    assert args.seconds == 0
