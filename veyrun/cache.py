"""Per-tab cache of the most recent 402 capture."""

from __future__ import annotations

import time
from typing import Callable

from .constants import EVENT_TTL_SECONDS
from .schemas import PaymentEvent, TabId

Clock = Callable[[], float]
BadgeListener = Callable[[TabId, bool], None]


class FreshnessCache:
    """Holds at most one PaymentEvent per tab, with a freshness window.

    A newer capture on the same tab overwrites the older one. Every read
    applies the TTL: a stale event is reported exactly like a missing one.

    Badge state (whether the active tab has a fresh 402) is derived from the
    cache and pushed to an optional listener whenever it may have changed.
    """

    def __init__(
        self,
        ttl: float = EVENT_TTL_SECONDS,
        clock: Clock = time.time,
        on_badge_change: BadgeListener | None = None,
    ) -> None:
        """Initialize cache.

        Args:
            ttl: Freshness window in seconds.
            clock: Time source (seconds).
            on_badge_change: Called with (active tab, badge on) on recompute.
        """
        self._ttl = ttl
        self._clock = clock
        self._events: dict[TabId, PaymentEvent] = {}
        self._active_tab: TabId | None = None
        self._on_badge_change = on_badge_change

    @property
    def active_tab(self) -> TabId | None:
        return self._active_tab

    def is_fresh(self, event: PaymentEvent) -> bool:
        return self._clock() - event.captured_at <= self._ttl

    def record_event(self, tab_id: TabId, event: PaymentEvent) -> None:
        """Store an event for a tab, replacing any earlier one."""
        self._events[tab_id] = event
        if tab_id == self._active_tab:
            self._refresh_badge()

    def get(self, tab_id: TabId) -> PaymentEvent | None:
        """Get the tab's event if it is still fresh."""
        event = self._events.get(tab_id)
        if event is None or not self.is_fresh(event):
            return None
        return event

    def evict(self, tab_id: TabId) -> None:
        """Drop the tab's event (tab closed or superseded)."""
        self._events.pop(tab_id, None)
        if tab_id == self._active_tab:
            self._refresh_badge()

    def set_active_tab(self, tab_id: TabId | None) -> None:
        """Track the focused tab and recompute the badge for it."""
        self._active_tab = tab_id
        self._refresh_badge()

    def badge_state(self, tab_id: TabId | None = None) -> bool:
        """Whether the badge should show for a tab (default: active tab)."""
        target = self._active_tab if tab_id is None else tab_id
        if target is None:
            return False
        return self.get(target) is not None

    def _refresh_badge(self) -> None:
        if self._on_badge_change is None or self._active_tab is None:
            return
        self._on_badge_change(self._active_tab, self.badge_state())

    def __len__(self) -> int:
        return len(self._events)
