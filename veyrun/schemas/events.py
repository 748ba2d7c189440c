"""Per-tab state records and outbound status events."""

from __future__ import annotations

from typing import Any, Literal

from .base import BaseVeyrunModel, TabId
from .payments import PaymentRequirement, SettlementReceipt


class PaymentEvent(BaseVeyrunModel):
    """A 402 response captured on a tab.

    Attributes:
        tab_id: Tab the response was seen on.
        url: URL of the request that returned 402.
        method: HTTP method of that request.
        captured_at: Unix timestamp (seconds) of capture.
        request_id: Host-assigned request identifier.
        requirement: Normalized accept options, or None if the header did
            not decode.
        raw_header: Raw header text as received.
    """

    tab_id: TabId
    url: str
    method: str
    captured_at: float
    request_id: str
    requirement: list[PaymentRequirement] | None = None
    raw_header: str | None = None


class PendingPayment(BaseVeyrunModel):
    """A page-originated payment awaiting operator confirmation."""

    tab_id: TabId
    requirement: PaymentRequirement
    url: str
    method: str = "GET"
    description: str | None = None


class PaymentStatus(BaseVeyrunModel):
    """Broadcast to every listening surface when a payment settles or fails."""

    type: Literal["paymentStatus"] = "paymentStatus"
    tab_id: TabId
    ok: bool
    receipt: SettlementReceipt | None = None
    error: str | None = None
    code: str | None = None
    insufficient_balance: bool | None = None


class PaymentResult(BaseVeyrunModel):
    """Sent to the originating tab's page relay after a confirmed payment."""

    type: Literal["paymentResult"] = "paymentResult"
    tab_id: TabId
    ok: bool
    receipt: SettlementReceipt | None = None
    data: Any = None
    error: str | None = None
