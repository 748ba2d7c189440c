"""Payment execution pipeline.

Guard, pay, decode the settlement receipt, reconcile it with the known
requirement. Every failure leaves this module as a ``PaymentError``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from .codec import decode_payment_response_header, format_units, is_contract_address
from .constants import (
    DEFAULT_ASSET_SYMBOL,
    DEFAULT_DECIMALS,
    DEMO_TESTNET_AMOUNT,
    OPERATOR_COOLDOWN_SECONDS,
    PAYMENT_RESPONSE_HEADER,
    X_PAYMENT_RESPONSE_HEADER,
)
from .cooldown import CooldownLedger
from .networks import is_testnet_network
from .payment_client import PaymentClient
from .schemas import (
    CooldownActiveError,
    InsufficientBalanceError,
    MissingReceiptError,
    NoWalletProvisionedError,
    PaymentError,
    PaymentRequirement,
    SettlementReceipt,
    UnlockRejectedError,
    is_insufficient_balance,
)
from .wallet import WalletStore

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class PaymentOutcome:
    """Result of a settled payment.

    Attributes:
        receipt: Reconciled settlement receipt (no url yet).
        body: Parsed JSON body of the unlocked resource, or None.
    """

    receipt: SettlementReceipt
    body: Any = None


def reconcile_receipt(
    receipt: SettlementReceipt,
    requirement: PaymentRequirement | None,
    resource_url: str,
) -> SettlementReceipt:
    """Backfill fields the server's receipt left out.

    Amount, asset and merchant come from the requirement that was paid. Only
    when neither side knows the amount does a testnet network imply the fixed
    demo amount.
    """
    amount = receipt.amount
    asset = receipt.asset
    if asset is not None and is_contract_address(asset):
        asset = DEFAULT_ASSET_SYMBOL
        if amount is not None:
            amount = format_units(amount, DEFAULT_DECIMALS)

    if amount is None and requirement is not None:
        amount = requirement.amount
    if amount is None and is_testnet_network(
        receipt.network or (requirement.chain if requirement else None)
    ):
        amount = DEMO_TESTNET_AMOUNT

    return receipt.model_copy(
        update={
            "amount": amount,
            "asset": asset or (requirement.asset if requirement else DEFAULT_ASSET_SYMBOL),
            "merchant_id": receipt.merchant_id or (requirement.recipient if requirement else None),
            "resource": receipt.resource or resource_url,
            "description": receipt.description or (requirement.description if requirement else None),
        }
    )


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class PaymentPipeline:
    """Runs one payment attempt against a resource URL."""

    def __init__(
        self,
        wallet: WalletStore,
        payment_client: PaymentClient,
        cooldowns: CooldownLedger,
        clock: Clock = time.time,
    ) -> None:
        self._wallet = wallet
        self._payment_client = payment_client
        self._cooldowns = cooldowns
        self._clock = clock

    async def execute(
        self,
        resource_url: str,
        method: str = "GET",
        requirement: PaymentRequirement | None = None,
        cooldown: float = OPERATOR_COOLDOWN_SECONDS,
    ) -> PaymentOutcome:
        """Pay for and fetch a resource.

        Args:
            resource_url: URL that returned 402.
            method: HTTP method to repeat.
            requirement: The requirement being paid, used to fill receipt gaps.
            cooldown: Cooldown window for this call site, in seconds.

        Returns:
            The reconciled receipt and the unlocked body.

        Raises:
            NoWalletProvisionedError: No wallet to pay with.
            CooldownActiveError: The URL was attempted within ``cooldown``.
            UnlockRejectedError: The paid request was not successful.
            MissingReceiptError: No decodable settlement header.
            InsufficientBalanceError: The client reported a balance shortfall.
            PaymentError: Any other payment client failure.
        """
        account = await self._wallet.account()
        if account is None:
            raise NoWalletProvisionedError()

        if not self._cooldowns.try_acquire(resource_url, cooldown):
            logger.warning("Cooldown active for %s", resource_url)
            raise CooldownActiveError(resource_url)

        try:
            response = await self._payment_client.fetch_with_payment(resource_url, method, account)
        except PaymentError:
            raise
        except Exception as e:
            if is_insufficient_balance(e):
                raise InsufficientBalanceError(str(e)) from e
            raise PaymentError(f"Failed to handle payment: {e}") from e

        if not response.is_success:
            raise UnlockRejectedError(response.status_code)

        header = response.headers.get(PAYMENT_RESPONSE_HEADER) or response.headers.get(
            X_PAYMENT_RESPONSE_HEADER
        )
        receipt = decode_payment_response_header(header, clock=self._clock)
        if receipt is None:
            raise MissingReceiptError()

        receipt = reconcile_receipt(receipt, requirement, resource_url)
        logger.info("Payment settled for %s (%s)", resource_url, receipt.receipt_id)
        return PaymentOutcome(receipt=receipt, body=_response_body(response))
