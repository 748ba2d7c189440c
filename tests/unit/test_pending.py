"""Tests for veyrun.pending - the pending-payment coordinator."""

import pytest

from veyrun.pending import (
    PendingPaymentCoordinator,
    PendingState,
    WindowBounds,
    confirmation_bounds,
)
from veyrun.schemas import NoPendingPaymentError, PaymentRequirement, PendingPayment


def make_pending(tab_id: int = 1, url: str = "https://merchant.example/a") -> PendingPayment:
    return PendingPayment(
        tab_id=tab_id,
        url=url,
        requirement=PaymentRequirement(
            asset="USDC",
            amount="0.01",
            chain="base-sepolia",
            recipient="0x1234567890123456789012345678901234567890",
            nonce="n",
            expires_at="2030-01-01T00:00:00Z",
        ),
    )


class TestLifecycle:
    """Test the absent -> pending -> executing -> absent lifecycle."""

    def test_request_then_take(self):
        coordinator = PendingPaymentCoordinator()
        coordinator.request(make_pending())
        assert coordinator.state(1) is PendingState.PENDING

        pending = coordinator.take(1)

        assert pending.url == "https://merchant.example/a"
        assert coordinator.state(1) is PendingState.EXECUTING
        assert coordinator.get(1) is None

        coordinator.finish(1)
        assert coordinator.state(1) is PendingState.ABSENT

    def test_second_take_rejected(self):
        coordinator = PendingPaymentCoordinator()
        coordinator.request(make_pending())
        coordinator.take(1)

        with pytest.raises(NoPendingPaymentError):
            coordinator.take(1)

    def test_later_request_overwrites(self):
        coordinator = PendingPaymentCoordinator()
        coordinator.request(make_pending(url="https://merchant.example/a"))
        coordinator.request(make_pending(url="https://merchant.example/b"))

        assert coordinator.get(1).url == "https://merchant.example/b"
        assert len(coordinator) == 1

    def test_cancel(self):
        coordinator = PendingPaymentCoordinator()
        coordinator.request(make_pending())

        assert coordinator.cancel(1) is True
        assert coordinator.cancel(1) is False
        assert coordinator.state(1) is PendingState.ABSENT

    def test_discard_tab(self):
        coordinator = PendingPaymentCoordinator()
        coordinator.request(make_pending(tab_id=1))
        coordinator.request(make_pending(tab_id=2))
        coordinator.take(2)

        coordinator.discard_tab(1)
        coordinator.discard_tab(2)

        assert coordinator.state(1) is PendingState.ABSENT
        assert coordinator.state(2) is PendingState.ABSENT


class TestConfirmationSurface:
    """Test opening the confirmation window."""

    def test_confirmation_url(self):
        coordinator = PendingPaymentCoordinator(confirm_page="confirm.html")
        assert coordinator.confirmation_url(42) == "confirm.html?tabId=42"

    def test_bounds_top_right_of_requesting_window(self):
        bounds = confirmation_bounds(WindowBounds(left=100, top=50, width=1200, height=800))

        assert bounds == WindowBounds(left=100 + 1200 - 360 - 16, top=66, width=360, height=560)

    def test_bounds_without_requesting_window(self):
        assert confirmation_bounds(None) is None

    def test_window_bounds_from_partial_dict(self):
        assert WindowBounds.from_dict({"left": 1}) is None
        assert WindowBounds.from_dict(None) is None

    @pytest.mark.asyncio
    async def test_open_confirmation_window(self, opener):
        coordinator = PendingPaymentCoordinator(opener)

        await coordinator.open_confirmation(7, WindowBounds(0, 0, 1000, 800))

        url, bounds = opener.windows[0]
        assert url == "confirm.html?tabId=7"
        assert bounds.width == 360

    @pytest.mark.asyncio
    async def test_falls_back_to_tab(self, make_opener):
        opener = make_opener(fail_windows=True)
        coordinator = PendingPaymentCoordinator(opener)

        await coordinator.open_confirmation(7)

        assert opener.tabs == ["confirm.html?tabId=7"]
