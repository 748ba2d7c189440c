"""Payment requirement and receipt models."""

from __future__ import annotations

from .base import BaseVeyrunModel


class PaymentRequirement(BaseVeyrunModel):
    """One acceptable way to pay for a resource, after normalization.

    Attributes:
        asset: Asset symbol (e.g. "USDC"), never a contract address.
        amount: Human-scale decimal string (e.g. "1.5"), never base units.
        chain: Canonical chain name or network identifier.
        recipient: Address that receives the payment.
        nonce: Server nonce, or a synthesized "x402-<millis>" value.
        expires_at: ISO-8601 expiry timestamp.
        description: Optional human readable description of the resource.
    """

    asset: str
    amount: str
    chain: str
    recipient: str
    nonce: str
    expires_at: str
    description: str | None = None


class PaymentRequired(BaseVeyrunModel):
    """Canonical form of a decoded Payment-Required header."""

    version: str
    accepts: list[PaymentRequirement]


class SettlementReceipt(BaseVeyrunModel):
    """Proof-of-settlement record decoded from a Payment-Response header.

    Fields the server omits stay None until the pipeline backfills them
    from the requirement that was paid.
    """

    receipt_id: str
    proof: str
    amount: str | None = None
    asset: str | None = None
    timestamp: str | None = None
    merchant_id: str | None = None
    resource: str | None = None
    network: str | None = None
    description: str | None = None
    success: bool | None = None


class ReceiptRecord(SettlementReceipt):
    """Settled payment as kept in the persisted history."""

    url: str | None = None
