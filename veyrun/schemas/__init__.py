"""Models, commands and errors for the veyrun engine."""

from .base import BaseVeyrunModel, TabId
from .commands import (
    CancelPendingPayment,
    Command,
    ConfirmPendingPayment,
    GetLastEvent,
    GetPendingPayment,
    GetStatus,
    ListReceipts,
    OpenTopup,
    ParsePaymentRequired,
    PayWithVeyrun,
    PayWithVeyrunDirect,
    Ping,
    Reply,
    WalletBalance,
    WalletChain,
    WalletCreate,
    WalletExportKey,
    WalletImport,
    WalletSign,
    WalletStatus,
    parse_command,
)
from .errors import (
    CooldownActiveError,
    InsufficientBalanceError,
    MissingReceiptError,
    MissingRequirementError,
    NoPendingPaymentError,
    NoWalletProvisionedError,
    PaymentError,
    StorageError,
    UnlockRejectedError,
    WalletError,
    is_insufficient_balance,
)
from .events import PaymentEvent, PaymentResult, PaymentStatus, PendingPayment
from .payments import PaymentRequired, PaymentRequirement, ReceiptRecord, SettlementReceipt

__all__ = [
    # Base
    "BaseVeyrunModel",
    "TabId",
    # Payments
    "PaymentRequirement",
    "PaymentRequired",
    "SettlementReceipt",
    "ReceiptRecord",
    # Events
    "PaymentEvent",
    "PendingPayment",
    "PaymentStatus",
    "PaymentResult",
    # Commands
    "Command",
    "parse_command",
    "Reply",
    "Ping",
    "GetStatus",
    "GetLastEvent",
    "ParsePaymentRequired",
    "WalletStatus",
    "WalletCreate",
    "WalletImport",
    "WalletExportKey",
    "WalletSign",
    "WalletChain",
    "WalletBalance",
    "PayWithVeyrun",
    "PayWithVeyrunDirect",
    "GetPendingPayment",
    "ConfirmPendingPayment",
    "CancelPendingPayment",
    "ListReceipts",
    "OpenTopup",
    # Errors
    "PaymentError",
    "NoWalletProvisionedError",
    "CooldownActiveError",
    "MissingRequirementError",
    "UnlockRejectedError",
    "MissingReceiptError",
    "InsufficientBalanceError",
    "StorageError",
    "WalletError",
    "NoPendingPaymentError",
    "is_insufficient_balance",
]
