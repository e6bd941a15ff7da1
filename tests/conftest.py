"""
Shared fixtures.
"""

import os
import tempfile

# Keep the log sink out of the working tree; must be set before callwatch is imported
os.environ.setdefault("CALLWATCH_LOG_FILE", os.path.join(tempfile.gettempdir(), "callwatch-tests.log"))

import pytest

from callwatch.core.utils.datetime_utils import set_mock_time
from callwatch.instrument import InterceptionRegistry
from callwatch.session import Session


CALLWATCH_ENV = (
    "CALLWATCH_UPDATE",
    "CALLWATCH_APP",
    "CALLWATCH_INTERVAL",
    "CALLWATCH_LOG_LEVEL",
)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubHost:
    """HostInfo stand-in that never touches the network."""

    def as_params(self):
        return {
            "ip": "10.1.2.3",
            "mac": "aa:bb:cc:dd:ee:ff",
            "hostname": "worker-1",
            "pid": 4242,
            "os_name": "linux",
            "os_version": "6.1",
            "arch": "x86_64",
        }


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def registry(session):
    return InterceptionRegistry(session)


@pytest.fixture
def clock(registry):
    fake = FakeClock()
    registry.timing._clock = fake
    return fake


@pytest.fixture
def stub_host():
    return StubHost()


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No CALLWATCH_* overrides and no .callwatch file in the working directory."""
    for name in CALLWATCH_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture(autouse=True)
def _reset_mock_time():
    yield
    set_mock_time(None)
