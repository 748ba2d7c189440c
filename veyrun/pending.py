"""Pending-payment coordinator for page-originated payment requests.

A page may ask to pay, but nothing is paid until the operator confirms in a
dedicated confirmation window. Per tab the lifecycle is::

    absent -> pending -> executing -> absent
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

from .constants import CONFIRM_WINDOW_HEIGHT, CONFIRM_WINDOW_MARGIN, CONFIRM_WINDOW_WIDTH
from .schemas import NoPendingPaymentError, PendingPayment, TabId

logger = logging.getLogger(__name__)


class PendingState(str, enum.Enum):
    ABSENT = "absent"
    PENDING = "pending"
    EXECUTING = "executing"


@dataclass(frozen=True)
class WindowBounds:
    """Screen geometry of a browser window."""

    left: int
    top: int
    width: int
    height: int

    @classmethod
    def from_dict(cls, data: dict[str, int] | None) -> WindowBounds | None:
        if not data:
            return None
        try:
            return cls(
                left=int(data["left"]),
                top=int(data["top"]),
                width=int(data["width"]),
                height=int(data.get("height", 0)),
            )
        except (KeyError, TypeError, ValueError):
            return None


class SurfaceOpener(Protocol):
    """Host capability for opening UI surfaces."""

    async def open_window(self, url: str, bounds: WindowBounds | None) -> None:
        """Open a popup window at ``bounds`` (host default when None).

        Raises:
            Exception: If the window cannot be opened.
        """
        ...

    async def open_tab(self, url: str) -> None:
        """Open ``url`` in a regular tab."""
        ...


def confirmation_bounds(requesting: WindowBounds | None) -> WindowBounds | None:
    """Place the confirmation window at the top-right of the requesting window."""
    if requesting is None:
        return None
    return WindowBounds(
        left=max(requesting.left + requesting.width - CONFIRM_WINDOW_WIDTH - CONFIRM_WINDOW_MARGIN, 0),
        top=requesting.top + CONFIRM_WINDOW_MARGIN,
        width=CONFIRM_WINDOW_WIDTH,
        height=CONFIRM_WINDOW_HEIGHT,
    )


class PendingPaymentCoordinator:
    """Holds at most one unconfirmed payment per tab.

    All state changes are synchronous. ``take`` removes the pending entry
    before the caller awaits anything, so a second confirmation for the same
    tab finds nothing to confirm.
    """

    def __init__(
        self,
        opener: SurfaceOpener | None = None,
        confirm_page: str = "confirm.html",
    ) -> None:
        self._opener = opener
        self._confirm_page = confirm_page
        self._pending: dict[TabId, PendingPayment] = {}
        self._executing: set[TabId] = set()

    def state(self, tab_id: TabId) -> PendingState:
        if tab_id in self._executing:
            return PendingState.EXECUTING
        if tab_id in self._pending:
            return PendingState.PENDING
        return PendingState.ABSENT

    def request(self, pending: PendingPayment) -> None:
        """Store a page's payment request; a later request for the tab wins."""
        if pending.tab_id in self._pending:
            logger.info("Replacing pending payment for tab %s", pending.tab_id)
        self._pending[pending.tab_id] = pending

    def get(self, tab_id: TabId) -> PendingPayment | None:
        return self._pending.get(tab_id)

    def take(self, tab_id: TabId) -> PendingPayment:
        """Consume the tab's pending payment and mark the tab as executing.

        Raises:
            NoPendingPaymentError: Nothing is pending for the tab.
        """
        pending = self._pending.pop(tab_id, None)
        if pending is None:
            raise NoPendingPaymentError()
        self._executing.add(tab_id)
        return pending

    def finish(self, tab_id: TabId) -> None:
        """Return the tab to absent after execution settled or failed."""
        self._executing.discard(tab_id)

    def cancel(self, tab_id: TabId) -> bool:
        return self._pending.pop(tab_id, None) is not None

    def discard_tab(self, tab_id: TabId) -> None:
        """Forget everything about a closed tab."""
        self._pending.pop(tab_id, None)
        self._executing.discard(tab_id)

    def confirmation_url(self, tab_id: TabId) -> str:
        return f"{self._confirm_page}?{urlencode({'tabId': tab_id})}"

    async def open_confirmation(self, tab_id: TabId, requesting: WindowBounds | None = None) -> None:
        """Open the confirmation window for a tab, falling back to a tab."""
        if self._opener is None:
            return
        url = self.confirmation_url(tab_id)
        try:
            await self._opener.open_window(url, confirmation_bounds(requesting))
        except Exception:
            logger.warning("Confirmation window failed to open; using a tab", exc_info=True)
            await self._opener.open_tab(url)

    def __len__(self) -> int:
        return len(self._pending)
