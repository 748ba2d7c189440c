"""Engine configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .constants import (
    DEFAULT_RPC_URL,
    DEFAULT_TOPUP_URL,
    DIRECT_COOLDOWN_SECONDS,
    EVENT_TTL_SECONDS,
    OPERATOR_COOLDOWN_SECONDS,
)


@dataclass
class EngineConfig:
    """Configuration for PaymentEngine.

    Attributes:
        event_ttl: Seconds a captured 402 stays actionable.
        operator_cooldown: Cooldown for operator-confirmed payments (seconds).
        direct_cooldown: Cooldown for page-originated payments (seconds).
        rpc_url: JSON-RPC endpoint for balance reads.
        topup_url: Page opened by the top-up action.
        storage_path: JSON file for persisted state; in-memory when None.
        request_timeout: Timeout for paid requests (seconds).
        confirm_page: Confirmation surface page, opened with ``?tabId=``.
    """

    event_ttl: float = EVENT_TTL_SECONDS
    operator_cooldown: float = OPERATOR_COOLDOWN_SECONDS
    direct_cooldown: float = DIRECT_COOLDOWN_SECONDS
    rpc_url: str = DEFAULT_RPC_URL
    topup_url: str = DEFAULT_TOPUP_URL
    storage_path: str | None = None
    request_timeout: float = 30.0
    confirm_page: str = "confirm.html"

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> EngineConfig:
        """Build a config from ``VEYRUN_*`` environment variables.

        A ``.env`` file is loaded first if present; real environment
        variables take precedence over it.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        load_dotenv(dotenv_path)
        defaults = cls()

        def _float(name: str, default: float) -> float:
            value = os.getenv(name)
            return float(value) if value else default

        return cls(
            event_ttl=_float("VEYRUN_EVENT_TTL", defaults.event_ttl),
            operator_cooldown=_float("VEYRUN_OPERATOR_COOLDOWN", defaults.operator_cooldown),
            direct_cooldown=_float("VEYRUN_DIRECT_COOLDOWN", defaults.direct_cooldown),
            rpc_url=os.getenv("VEYRUN_RPC_URL", defaults.rpc_url),
            topup_url=os.getenv("VEYRUN_TOPUP_URL", defaults.topup_url),
            storage_path=os.getenv("VEYRUN_STORAGE_PATH") or None,
            request_timeout=_float("VEYRUN_REQUEST_TIMEOUT", defaults.request_timeout),
            confirm_page=os.getenv("VEYRUN_CONFIRM_PAGE", defaults.confirm_page),
        )
