"""Error types for the veyrun engine."""

import re

INSUFFICIENT_BALANCE_PATTERN = re.compile(
    r"insufficient[\s_-]*(balance|funds)|exceeds[\s_-]*balance|transfer amount exceeds",
    re.IGNORECASE,
)


class PaymentError(Exception):
    """Base class for veyrun payment errors.

    Attributes:
        reason: Machine-readable reason code.
    """

    reason = "payment_error"


class NoWalletProvisionedError(PaymentError):
    """No wallet record exists to pay with."""

    reason = "no_wallet"

    def __init__(self, message: str = "No wallet found. Create or import one first."):
        super().__init__(message)


class CooldownActiveError(PaymentError):
    """A payment for the same resource was attempted too recently.

    Attributes:
        key: Resource URL the cooldown is keyed on.
    """

    reason = "cooldown_active"

    def __init__(self, key: str):
        self.key = key
        super().__init__("Payment already in progress. Please wait a moment.")


class MissingRequirementError(PaymentError):
    """No fresh event or no usable accept option to pay against."""

    reason = "missing_requirement"


class UnlockRejectedError(PaymentError):
    """The paid request returned a non-success HTTP status.

    Attributes:
        status: HTTP status code of the paid request.
    """

    reason = "unlock_rejected"

    def __init__(self, status: int):
        self.status = status
        super().__init__(f"Unlock failed ({status})")


class MissingReceiptError(PaymentError):
    """The paid request succeeded without a decodable settlement header."""

    reason = "missing_receipt"

    def __init__(self, message: str = "Missing receipt"):
        super().__init__(message)


class InsufficientBalanceError(PaymentError):
    """The wallet cannot cover the payment."""

    reason = "insufficient_balance"


class StorageError(PaymentError):
    """Persisted read or write failed."""

    reason = "storage_failure"


class WalletError(PaymentError):
    """Wallet record could not be created, imported or used."""

    reason = "wallet_error"


class NoPendingPaymentError(PaymentError):
    """Confirmation requested for a tab with nothing pending."""

    reason = "no_pending_payment"

    def __init__(self, message: str = "No pending payment"):
        super().__init__(message)


def is_insufficient_balance(error: BaseException | str | None) -> bool:
    """Check whether an execution failure reads as an insufficient balance.

    Payment clients do not report this with a structured code, so the error
    text is matched against known phrasings.
    """
    if error is None:
        return False
    if isinstance(error, InsufficientBalanceError):
        return True
    return bool(INSUFFICIENT_BALANCE_PATTERN.search(str(error)))
