"""
Shared fixtures.

Time is always simulated: ManualClock + ManualScheduler drive every timer, and
LoopbackLink queues messages until a test delivers them.
"""

import base64
import logging

import pytest

from codesync.primary import PrimarySync
from codesync.scheduler import ManualClock, ManualScheduler
from codesync.secondary import SecondarySync
from codesync.transport import LoopbackLink
from otp_engine import log
from otp_engine.models import Credential, OTPType
from secretstore.blob_store import MemoryBlobStore
from secretstore.credential_store import CredentialStore

# RFC4226 Appendix D key
RFC_SECRET = base64.b32encode(b"12345678901234567890").decode("ascii")
DEMO_SECRET = "JBSWY3DPEHPK3PXP"

START_TIME = 1_700_000_000.0


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop the stdout handler installed by setup_logging; it holds the captured stream."""
    yield
    if log._handler is not None:
        logging.getLogger().removeHandler(log._handler)
        log._handler = None


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START_TIME)


@pytest.fixture
def scheduler(clock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def link() -> LoopbackLink:
    return LoopbackLink()


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore(MemoryBlobStore())


@pytest.fixture
def totp_credential() -> Credential:
    return Credential(name="GitHub", secret=DEMO_SECRET, id="totp-1")


@pytest.fixture
def hotp_credential() -> Credential:
    return Credential(name="VPN", secret=RFC_SECRET, kind=OTPType.HOTP, counter=0, id="hotp-1")


@pytest.fixture
def secondary_cache() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def primary(store, link, scheduler, clock) -> PrimarySync:
    return PrimarySync(store, link.primary, scheduler=scheduler, clock=clock, push_interval=5)


@pytest.fixture
def secondary(link, secondary_cache, scheduler, clock) -> SecondarySync:
    return SecondarySync(
        link.secondary, secondary_cache, scheduler=scheduler, clock=clock,
        request_interval=5, hotp_max_age=3600,
    )
