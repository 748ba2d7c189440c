"""veyrun - x402 payment-event orchestration engine.

Captures HTTP 402 responses per tab, holds page-originated payment requests
for operator confirmation, executes payments through an x402 client and
keeps a ledger of settlement receipts.

Quick Start:
    ```python
    from veyrun import EngineConfig, PaymentEngine

    engine = PaymentEngine(EngineConfig.from_env(), opener=host_opener)
    engine.add_listener(popup.deliver)

    # Host network layer
    engine.on_response(tab_id, url, "GET", 402, response_headers)

    # UI surfaces
    reply = await engine.handle_message({"type": "payWithVeyrun", "tabId": tab_id})
    ```
"""

from .cache import FreshnessCache
from .codec import (
    decode_payment_required_header,
    decode_payment_response_header,
    encode_payment_required_header,
    encode_payment_response_header,
    format_units,
    normalize_accept,
)
from .config import EngineConfig
from .cooldown import CooldownLedger
from .engine import PaymentEngine
from .payment_client import PaymentClient, x402HttpxPaymentClient
from .pending import PendingPaymentCoordinator, PendingState, SurfaceOpener, WindowBounds
from .pipeline import PaymentOutcome, PaymentPipeline
from .receipts import ReceiptStore
from .schemas import (
    PaymentError,
    PaymentEvent,
    PaymentRequired,
    PaymentRequirement,
    ReceiptRecord,
    Reply,
    SettlementReceipt,
)
from .storage import JsonFileStorage, MemoryStorage, StorageArea
from .wallet import WalletRecord, WalletStore

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Engine
    "PaymentEngine",
    "EngineConfig",
    # Stores
    "FreshnessCache",
    "CooldownLedger",
    "PendingPaymentCoordinator",
    "PendingState",
    "ReceiptStore",
    "WalletStore",
    "WalletRecord",
    # Execution
    "PaymentPipeline",
    "PaymentOutcome",
    "PaymentClient",
    "x402HttpxPaymentClient",
    # Host boundary
    "SurfaceOpener",
    "WindowBounds",
    "StorageArea",
    "MemoryStorage",
    "JsonFileStorage",
    # Codec
    "decode_payment_required_header",
    "decode_payment_response_header",
    "encode_payment_required_header",
    "encode_payment_response_header",
    "normalize_accept",
    "format_units",
    # Types
    "PaymentEvent",
    "PaymentRequired",
    "PaymentRequirement",
    "SettlementReceipt",
    "ReceiptRecord",
    "Reply",
    "PaymentError",
]
