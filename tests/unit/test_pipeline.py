"""Tests for veyrun.pipeline - guarded payment execution."""

import httpx
import pytest

from veyrun.codec import encode_payment_response_header
from veyrun.cooldown import CooldownLedger
from veyrun.pipeline import PaymentPipeline, reconcile_receipt
from veyrun.schemas import (
    CooldownActiveError,
    InsufficientBalanceError,
    MissingReceiptError,
    NoWalletProvisionedError,
    PaymentError,
    PaymentRequirement,
    SettlementReceipt,
    UnlockRejectedError,
)
from veyrun.wallet import WalletStore

URL = "https://merchant.example/article"
PAY_TO = "0x1234567890123456789012345678901234567890"
PRIVATE_KEY = "0x" + "11" * 32


def make_requirement(amount: str = "1.00") -> PaymentRequirement:
    return PaymentRequirement(
        asset="USDC",
        amount=amount,
        chain="base-sepolia",
        recipient=PAY_TO,
        nonce="n-1",
        expires_at="2030-01-01T00:00:00Z",
        description="Premium article",
    )


async def make_pipeline(storage, clock, client, with_wallet: bool = True) -> PaymentPipeline:
    wallet = WalletStore(storage, clock=clock)
    if with_wallet:
        await wallet.import_key(PRIVATE_KEY)
    return PaymentPipeline(wallet, client, CooldownLedger(clock), clock)


class TestExecuteGuards:
    """Test the checks that run before the paid request."""

    @pytest.mark.asyncio
    async def test_no_wallet(self, storage, clock, make_payment_client):
        client = make_payment_client()
        pipeline = await make_pipeline(storage, clock, client, with_wallet=False)

        with pytest.raises(NoWalletProvisionedError):
            await pipeline.execute(URL)

        assert client.calls == []

    @pytest.mark.asyncio
    async def test_cooldown_blocks_second_attempt(
        self, storage, clock, make_payment_client, make_response
    ):
        client = make_payment_client(make_response({"receiptId": "r1", "proof": "0x1"}))
        pipeline = await make_pipeline(storage, clock, client)

        await pipeline.execute(URL, cooldown=3)
        clock.advance(2)
        with pytest.raises(CooldownActiveError):
            await pipeline.execute(URL, cooldown=3)

        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_cooldown_elapsed(self, storage, clock, make_payment_client, make_response):
        client = make_payment_client(make_response({"receiptId": "r1", "proof": "0x1"}))
        pipeline = await make_pipeline(storage, clock, client)

        await pipeline.execute(URL, cooldown=3)
        clock.advance(3.1)
        await pipeline.execute(URL, cooldown=3)

        assert len(client.calls) == 2


class TestExecuteFailures:
    """Test failure classification."""

    @pytest.mark.asyncio
    async def test_insufficient_funds_text(self, storage, clock, make_payment_client):
        client = make_payment_client(error=RuntimeError("ERC20: transfer amount exceeds balance"))
        pipeline = await make_pipeline(storage, clock, client)

        with pytest.raises(InsufficientBalanceError):
            await pipeline.execute(URL)

    @pytest.mark.asyncio
    async def test_generic_client_failure(self, storage, clock, make_payment_client):
        client = make_payment_client(error=RuntimeError("connection reset"))
        pipeline = await make_pipeline(storage, clock, client)

        with pytest.raises(PaymentError, match="Failed to handle payment: connection reset") as exc:
            await pipeline.execute(URL)

        assert not isinstance(exc.value, InsufficientBalanceError)

    @pytest.mark.asyncio
    async def test_payment_error_passes_through(self, storage, clock, make_payment_client):
        client = make_payment_client(error=PaymentError("No supported payment option"))
        pipeline = await make_pipeline(storage, clock, client)

        with pytest.raises(PaymentError, match="^No supported payment option$"):
            await pipeline.execute(URL)

    @pytest.mark.asyncio
    async def test_non_success_status(self, storage, clock, make_payment_client, make_response):
        client = make_payment_client(make_response(status=500))
        pipeline = await make_pipeline(storage, clock, client)

        with pytest.raises(UnlockRejectedError) as exc:
            await pipeline.execute(URL)

        assert exc.value.status == 500
        assert str(exc.value) == "Unlock failed (500)"

    @pytest.mark.asyncio
    async def test_missing_receipt(self, storage, clock, make_payment_client, make_response):
        client = make_payment_client(make_response())
        pipeline = await make_pipeline(storage, clock, client)

        with pytest.raises(MissingReceiptError, match="Missing receipt"):
            await pipeline.execute(URL)


class TestExecuteSuccess:
    """Test settled payments."""

    @pytest.mark.asyncio
    async def test_receipt_backfilled_from_requirement(
        self, storage, clock, make_payment_client, make_response
    ):
        client = make_payment_client(
            make_response({"receiptId": "r1", "proof": "0xabc"}, body={"content": "unlocked"})
        )
        pipeline = await make_pipeline(storage, clock, client)

        outcome = await pipeline.execute(URL, "GET", make_requirement())

        assert outcome.receipt.amount == "1.00"
        assert outcome.receipt.asset == "USDC"
        assert outcome.receipt.merchant_id == PAY_TO
        assert outcome.receipt.resource == URL
        assert outcome.receipt.description == "Premium article"
        assert outcome.body == {"content": "unlocked"}

    @pytest.mark.asyncio
    async def test_legacy_response_header(self, storage, clock, make_payment_client):
        header = encode_payment_response_header({"transaction": "0xfeedface01", "success": True})
        client = make_payment_client(httpx.Response(200, headers={"X-Payment-Response": header}))
        pipeline = await make_pipeline(storage, clock, client)

        outcome = await pipeline.execute(URL)

        assert outcome.receipt.proof == "0xfeedface01"
        assert outcome.body is None

    @pytest.mark.asyncio
    async def test_method_forwarded(self, storage, clock, make_payment_client, make_response):
        client = make_payment_client(make_response({"receiptId": "r1", "proof": "0x1"}))
        pipeline = await make_pipeline(storage, clock, client)

        await pipeline.execute(URL, "POST")

        assert client.calls == [(URL, "POST")]


class TestReconcileReceipt:
    """Test receipt reconciliation."""

    def test_contract_asset_converted(self):
        receipt = SettlementReceipt(
            receipt_id="r1",
            proof="0x1",
            amount="1500000",
            asset="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        )

        reconciled = reconcile_receipt(receipt, None, URL)

        assert reconciled.asset == "USDC"
        assert reconciled.amount == "1.5"

    def test_server_amount_wins_over_requirement(self):
        receipt = SettlementReceipt(receipt_id="r1", proof="0x1", amount="2.00", asset="USDC")

        reconciled = reconcile_receipt(receipt, make_requirement("1.00"), URL)

        assert reconciled.amount == "2.00"

    def test_testnet_demo_amount_as_last_resort(self):
        receipt = SettlementReceipt(receipt_id="r1", proof="0x1", network="eip155:84532")

        reconciled = reconcile_receipt(receipt, None, URL)

        assert reconciled.amount == "0.001"
        assert reconciled.asset == "USDC"

    def test_mainnet_amount_left_unknown(self):
        receipt = SettlementReceipt(receipt_id="r1", proof="0x1", network="eip155:8453")

        assert reconcile_receipt(receipt, None, URL).amount is None
