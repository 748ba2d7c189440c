"""Per-resource cooldown ledger guarding against duplicate payments."""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], float]


class CooldownLedger:
    """Maps a resource key to the time of its last admitted attempt.

    ``try_acquire`` checks and records in one synchronous step, so two
    handlers for the same key can never both pass between awaits. A rejected
    attempt leaves the stored timestamp untouched.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._last_attempt: dict[str, float] = {}

    def try_acquire(self, key: str, window: float) -> bool:
        """Admit an attempt for ``key`` unless one was admitted within ``window``.

        Args:
            key: Resource URL.
            window: Cooldown window in seconds.

        Returns:
            True if the attempt may proceed.
        """
        now = self._clock()
        last = self._last_attempt.get(key)
        if last is not None and now - last < window:
            return False
        self._last_attempt[key] = now
        return True

    def last_attempt(self, key: str) -> float | None:
        return self._last_attempt.get(key)

    def clear(self) -> None:
        self._last_attempt.clear()
