"""Shared fixtures for veyrun tests."""

import json

import httpx
import pytest

from veyrun.codec import encode_payment_response_header
from veyrun.storage import MemoryStorage

START_TIME = 1_700_000_000.0

TEST_PRIVATE_KEY = "0x" + "11" * 32
RESOURCE_URL = "https://merchant.example/article"


class FakeClock:
    """Manually advanced time source (seconds)."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingOpener:
    """SurfaceOpener that records what it was asked to open."""

    def __init__(self, fail_windows: bool = False):
        self.fail_windows = fail_windows
        self.windows: list = []
        self.tabs: list[str] = []

    async def open_window(self, url, bounds):
        if self.fail_windows:
            raise RuntimeError("popup blocked")
        self.windows.append((url, bounds))

    async def open_tab(self, url):
        self.tabs.append(url)


class StubPaymentClient:
    """PaymentClient returning a canned response, or raising a canned error."""

    def __init__(self, response: httpx.Response | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def fetch_with_payment(self, url, method, account):
        self.calls.append((url, method))
        if self.error is not None:
            raise self.error
        return self.response


def settled_response(receipt: dict | None = None, body: dict | None = None, status: int = 200):
    """Build a paid-request response carrying a Payment-Response header."""
    headers = {}
    if receipt is not None:
        headers["Payment-Response"] = encode_payment_response_header(receipt)
    return httpx.Response(status, headers=headers, content=json.dumps(body or {}).encode())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def opener():
    return RecordingOpener()


@pytest.fixture
def make_payment_client():
    return StubPaymentClient


@pytest.fixture
def make_response():
    return settled_response


@pytest.fixture
def make_opener():
    return RecordingOpener
