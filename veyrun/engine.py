"""PaymentEngine - the orchestrator behind every UI surface.

The host feeds the engine three kinds of input:

- intercepted responses (``on_response``), from which 402 captures are made;
- tab lifecycle signals (``on_tab_activated`` / ``on_tab_removed``);
- messages from UI surfaces (``handle_message``), each answered with a
  ``Reply`` once its handler completes.

Store mutations all happen synchronously inside a handler turn. Only the
external legs (storage, the paid request, balance reads) are awaited.

Example:
    ```python
    engine = PaymentEngine(EngineConfig.from_env(), opener=host_opener)
    engine.add_listener(popup.deliver)

    engine.on_response(tab_id=7, url=url, method="GET", status_code=402, headers=headers)
    reply = await engine.handle_message({"type": "payWithVeyrun", "tabId": 7})
    ```
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pydantic import ValidationError

from .cache import BadgeListener, FreshnessCache
from .codec import decode_payment_required_header, normalize_accept
from .config import EngineConfig
from .constants import PAYMENT_REQUIRED_HEADER, PAYMENT_REQUIRED_STATUS
from .cooldown import CooldownLedger
from .payment_client import PaymentClient, x402HttpxPaymentClient
from .pending import PendingPaymentCoordinator, SurfaceOpener, WindowBounds
from .pipeline import PaymentOutcome, PaymentPipeline
from .receipts import ReceiptStore
from .schemas import (
    BaseVeyrunModel,
    CancelPendingPayment,
    Command,
    ConfirmPendingPayment,
    CooldownActiveError,
    GetLastEvent,
    GetPendingPayment,
    GetStatus,
    ListReceipts,
    MissingRequirementError,
    OpenTopup,
    ParsePaymentRequired,
    PayWithVeyrun,
    PayWithVeyrunDirect,
    PaymentError,
    PaymentEvent,
    PaymentRequirement,
    PaymentResult,
    PaymentStatus,
    PendingPayment,
    Ping,
    ReceiptRecord,
    Reply,
    StorageError,
    TabId,
    WalletBalance,
    WalletChain,
    WalletCreate,
    WalletExportKey,
    WalletImport,
    WalletSign,
    WalletStatus,
    is_insufficient_balance,
    parse_command,
)
from .storage import JsonFileStorage, MemoryStorage, StorageArea
from .wallet import WalletStore

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Listener = Callable[[dict[str, Any]], Any]
TabMessenger = Callable[[TabId, dict[str, Any]], Any]
Handler = Callable[[Any], Awaitable[Reply]]


def _find_header(headers: Mapping[str, str] | list[tuple[str, str]], name: str) -> str | None:
    items = headers.items() if isinstance(headers, Mapping) else headers
    target = name.lower()
    for key, value in items:
        if key.lower() == target:
            return value
    return None


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class PaymentEngine:
    """Owns the per-tab stores and routes every command to its handler."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        storage: StorageArea | None = None,
        wallet: WalletStore | None = None,
        payment_client: PaymentClient | None = None,
        opener: SurfaceOpener | None = None,
        tab_messenger: TabMessenger | None = None,
        on_badge_change: BadgeListener | None = None,
        clock: Clock = time.time,
    ) -> None:
        """Initialize engine.

        Args:
            config: Engine configuration (defaults when None).
            storage: Persisted storage area. Built from ``config.storage_path``
                when None (in-memory if no path is set).
            wallet: Wallet store; built on ``storage`` when None.
            payment_client: Payment-protocol client; httpx-based when None.
            opener: Host capability for opening windows and tabs.
            tab_messenger: Delivers messages to a tab's page relay.
            on_badge_change: Receives (active tab, badge on) updates.
            clock: Time source (seconds).
        """
        self.config = config or EngineConfig()
        self._clock = clock

        if storage is None:
            storage = (
                JsonFileStorage(self.config.storage_path)
                if self.config.storage_path
                else MemoryStorage()
            )
        self.storage = storage

        self.cache = FreshnessCache(self.config.event_ttl, clock, on_badge_change)
        self.cooldowns = CooldownLedger(clock)
        self.pending = PendingPaymentCoordinator(opener, self.config.confirm_page)
        self.receipts = ReceiptStore(storage)
        self.wallet = wallet or WalletStore(storage, self.config.rpc_url, clock=clock)
        self.pipeline = PaymentPipeline(
            self.wallet,
            payment_client or x402HttpxPaymentClient(timeout=self.config.request_timeout),
            self.cooldowns,
            clock,
        )

        self._opener = opener
        self._tab_messenger = tab_messenger
        self._listeners: list[Listener] = []
        self._last_ping_at: float | None = None
        self._last_payment_required_header: str | None = None

        self._handlers: dict[type, Handler] = {
            Ping: self._ping,
            GetStatus: self._get_status,
            GetLastEvent: self._get_last_event,
            ParsePaymentRequired: self._parse_payment_required,
            WalletStatus: self._wallet_status,
            WalletCreate: self._wallet_create,
            WalletImport: self._wallet_import,
            WalletExportKey: self._wallet_export_key,
            WalletSign: self._wallet_sign,
            WalletChain: self._wallet_chain,
            WalletBalance: self._wallet_balance,
            PayWithVeyrun: self._pay_with_veyrun,
            PayWithVeyrunDirect: self._pay_with_veyrun_direct,
            GetPendingPayment: self._get_pending_payment,
            ConfirmPendingPayment: self._confirm_pending_payment,
            CancelPendingPayment: self._cancel_pending_payment,
            ListReceipts: self._list_receipts,
            OpenTopup: self._open_topup,
        }

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Subscribe a surface to status broadcasts.

        Returns:
            Function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def broadcast(self, event: BaseVeyrunModel) -> None:
        """Deliver an event to every listener; one failing listener does not stop the rest."""
        message = event.to_wire()
        for listener in list(self._listeners):
            try:
                await _call(listener, message)
            except Exception:
                logger.exception("Status listener failed")

    async def _send_to_tab(self, tab_id: TabId, event: BaseVeyrunModel) -> None:
        if self._tab_messenger is None:
            return
        try:
            await _call(self._tab_messenger, tab_id, event.to_wire())
        except Exception:
            logger.warning("Could not deliver %s to tab %s", event.type, tab_id, exc_info=True)

    # =========================================================================
    # Host signals
    # =========================================================================

    def on_response(
        self,
        tab_id: TabId,
        url: str,
        method: str,
        status_code: int,
        headers: Mapping[str, str] | list[tuple[str, str]],
        request_id: str = "",
    ) -> PaymentEvent | None:
        """Inspect an intercepted response and capture it if it is a 402.

        Returns:
            The recorded event, or None if the response was not captured.
        """
        if status_code != PAYMENT_REQUIRED_STATUS or tab_id < 0:
            return None

        raw = _find_header(headers, PAYMENT_REQUIRED_HEADER)
        if raw is None:
            return None

        parsed = decode_payment_required_header(raw, clock=self._clock)
        if parsed is None:
            logger.debug("Undecodable %s header on tab %s", PAYMENT_REQUIRED_HEADER, tab_id)

        event = PaymentEvent(
            tab_id=tab_id,
            url=url,
            method=method.upper(),
            captured_at=self._clock(),
            request_id=request_id,
            requirement=parsed.accepts if parsed is not None else None,
            raw_header=raw,
        )
        self._last_payment_required_header = raw
        self.cache.record_event(tab_id, event)
        logger.info("Captured 402 on tab %s for %s", tab_id, url)
        return event

    def on_tab_activated(self, tab_id: TabId) -> None:
        self.cache.set_active_tab(tab_id)

    def on_tab_removed(self, tab_id: TabId) -> None:
        """Purge all per-tab state for a closed tab."""
        self.cache.evict(tab_id)
        self.pending.discard_tab(tab_id)

    # =========================================================================
    # Message routing
    # =========================================================================

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any]:
        """Validate a raw message, dispatch it and return the wire reply."""
        try:
            command = parse_command(message)
        except ValidationError as e:
            logger.debug("Rejected message: %s", e)
            return Reply.failure("Unknown or malformed message", code="invalid_message").to_wire()

        try:
            reply = await self.dispatch(command)
        except Exception as e:
            logger.exception("Handler for %s failed", type(command).__name__)
            reply = Reply.failure(str(e) or type(e).__name__, code="internal_error")
        return reply.to_wire()

    async def dispatch(self, command: Command) -> Reply:
        """Route a command to its handler; payment errors become failure replies."""
        handler = self._handlers[type(command)]
        try:
            return await handler(command)
        except PaymentError as e:
            return Reply.failure(str(e), code=e.reason)

    # =========================================================================
    # Status and diagnostics
    # =========================================================================

    async def _ping(self, command: Ping) -> Reply:
        self._last_ping_at = self._clock()
        return Reply.success()

    async def _get_status(self, command: GetStatus) -> Reply:
        return Reply.success(
            status={
                "lastPingAt": self._last_ping_at,
                "lastPaymentRequiredHeader": self._last_payment_required_header,
                "headerName": PAYMENT_REQUIRED_HEADER,
            }
        )

    async def _get_last_event(self, command: GetLastEvent) -> Reply:
        return Reply.success(event=self.cache.get(command.tab_id))

    async def _parse_payment_required(self, command: ParsePaymentRequired) -> Reply:
        return Reply.success(parsed=decode_payment_required_header(command.value, clock=self._clock))

    # =========================================================================
    # Wallet
    # =========================================================================

    async def _wallet_status(self, command: WalletStatus) -> Reply:
        return Reply.success(status=await self.wallet.status())

    async def _wallet_create(self, command: WalletCreate) -> Reply:
        record = await self.wallet.create()
        return Reply.success(address=record.address)

    async def _wallet_import(self, command: WalletImport) -> Reply:
        record = await self.wallet.import_key(command.private_key)
        return Reply.success(address=record.address)

    async def _wallet_export_key(self, command: WalletExportKey) -> Reply:
        return Reply.success(privateKey=await self.wallet.export_key())

    async def _wallet_sign(self, command: WalletSign) -> Reply:
        return Reply.success(signature=await self.wallet.sign(command.payload))

    async def _wallet_chain(self, command: WalletChain) -> Reply:
        return Reply.success(chain=self.wallet.chain())

    async def _wallet_balance(self, command: WalletBalance) -> Reply:
        try:
            balance = await self.wallet.balance()
        except PaymentError:
            raise
        except Exception as e:
            logger.warning("Balance query failed: %s", e)
            return Reply.failure(f"Balance unavailable: {e}", code="balance_unavailable")
        return Reply.success(balance=balance)

    # =========================================================================
    # Payments
    # =========================================================================

    async def _settle(
        self,
        tab_id: TabId,
        url: str,
        method: str,
        requirement: PaymentRequirement,
        cooldown: float,
    ) -> tuple[Reply, PaymentOutcome | None]:
        try:
            outcome = await self.pipeline.execute(url, method, requirement, cooldown)
        except PaymentError as e:
            insufficient = is_insufficient_balance(e)
            code = "insufficient_balance" if insufficient else e.reason
            if isinstance(e, CooldownActiveError):
                logger.info("Payment for %s rejected: %s", url, e)
            else:
                logger.warning("Payment for %s failed: %s", url, e)
            await self.broadcast(
                PaymentStatus(
                    tab_id=tab_id,
                    ok=False,
                    error=str(e),
                    code=code,
                    insufficient_balance=insufficient or None,
                )
            )
            return (
                Reply.failure(str(e), code=code, insufficientBalance=insufficient),
                None,
            )

        record = ReceiptRecord(**outcome.receipt.model_dump(), url=url)
        try:
            await self.receipts.append(record)
        except StorageError:
            logger.error("Settled payment %s could not be recorded", record.receipt_id, exc_info=True)

        await self.broadcast(PaymentStatus(tab_id=tab_id, ok=True, receipt=outcome.receipt))
        return Reply.success(receipt=outcome.receipt, data=outcome.body), outcome

    async def _pay_with_veyrun(self, command: PayWithVeyrun) -> Reply:
        event = self.cache.get(command.tab_id)
        if event is None:
            raise MissingRequirementError("No recent payment request on this tab.")
        if not event.requirement:
            raise MissingRequirementError("Payment request has no supported payment option.")

        reply, outcome = await self._settle(
            command.tab_id,
            event.url,
            event.method,
            event.requirement[0],
            self.config.operator_cooldown,
        )
        if outcome is not None and self.cache.get(command.tab_id) is event:
            self.cache.evict(command.tab_id)
        return reply

    async def _pay_with_veyrun_direct(self, command: PayWithVeyrunDirect) -> Reply:
        requirement = normalize_accept(command.requirement, command.description, self._clock)
        if requirement is None:
            raise MissingRequirementError("Unsupported payment requirement.")

        self.pending.request(
            PendingPayment(
                tab_id=command.tab_id,
                requirement=requirement,
                url=command.url,
                method=command.method.upper(),
                description=command.description or requirement.description,
            )
        )
        await self.pending.open_confirmation(command.tab_id, WindowBounds.from_dict(command.window))
        return Reply.success(pending=True)

    async def _get_pending_payment(self, command: GetPendingPayment) -> Reply:
        pending = self.pending.get(command.tab_id)
        if pending is None:
            return Reply.success(pending=None)
        return Reply.success(
            pending={
                **pending.requirement.to_wire(),
                "tabId": pending.tab_id,
                "url": pending.url,
                "method": pending.method,
                "description": pending.description,
            }
        )

    async def _confirm_pending_payment(self, command: ConfirmPendingPayment) -> Reply:
        pending = self.pending.take(command.tab_id)
        try:
            reply, outcome = await self._settle(
                pending.tab_id,
                pending.url,
                pending.method,
                pending.requirement,
                self.config.direct_cooldown,
            )
        finally:
            self.pending.finish(command.tab_id)

        await self._send_to_tab(
            pending.tab_id,
            PaymentResult(
                tab_id=pending.tab_id,
                ok=reply.ok,
                receipt=outcome.receipt if outcome else None,
                data=outcome.body if outcome else None,
                error=reply.error,
            ),
        )
        return reply

    async def _cancel_pending_payment(self, command: CancelPendingPayment) -> Reply:
        cancelled = self.pending.cancel(command.tab_id)
        if cancelled:
            await self._send_to_tab(
                command.tab_id,
                PaymentResult(tab_id=command.tab_id, ok=False, error="Payment cancelled"),
            )
        return Reply.success(cancelled=cancelled)

    async def _list_receipts(self, command: ListReceipts) -> Reply:
        return Reply.success(receipts=await self.receipts.list())

    async def _open_topup(self, command: OpenTopup) -> Reply:
        if self._opener is None:
            return Reply.failure("Cannot open pages from this host", code="no_opener")
        await self._opener.open_tab(self.config.topup_url)
        return Reply.success()
