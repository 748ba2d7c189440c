"""Tests for veyrun.schemas - commands, replies and errors."""

import pytest
from pydantic import ValidationError

from veyrun.networks import canonical_chain_name, is_testnet_network
from veyrun.schemas import (
    ConfirmPendingPayment,
    InsufficientBalanceError,
    PayWithVeyrunDirect,
    PaymentError,
    Reply,
    SettlementReceipt,
    WalletImport,
    is_insufficient_balance,
    parse_command,
)


class TestParseCommand:
    """Test message validation."""

    def test_camel_case_fields(self):
        command = parse_command({"type": "confirmPendingPayment", "tabId": 3})

        assert isinstance(command, ConfirmPendingPayment)
        assert command.tab_id == 3

    def test_wallet_import(self):
        command = parse_command({"type": "walletImport", "privateKey": "0xabc"})

        assert isinstance(command, WalletImport)
        assert command.private_key == "0xabc"

    def test_direct_defaults(self):
        command = parse_command(
            {"type": "payWithVeyrunDirect", "tabId": 1, "requirement": {}, "url": "https://a"}
        )

        assert isinstance(command, PayWithVeyrunDirect)
        assert command.method == "GET"
        assert command.window is None

    def test_sender_alias(self):
        assert parse_command({"type": "ping", "from": "popup"}).sender == "popup"

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            parse_command({"type": "nope"})


class TestReply:
    """Test the reply envelope."""

    def test_success_payload(self):
        receipt = SettlementReceipt(receipt_id="r1", proof="0x1", merchant_id="0xm")

        wire = Reply.success(receipts=[receipt]).to_wire()

        assert wire == {
            "ok": True,
            "receipts": [{"receiptId": "r1", "proof": "0x1", "merchantId": "0xm"}],
        }

    def test_failure(self):
        wire = Reply.failure("Missing receipt", code="missing_receipt").to_wire()

        assert wire == {"ok": False, "error": "Missing receipt", "code": "missing_receipt"}


class TestInsufficientBalance:
    """Test the insufficient-balance heuristic."""

    @pytest.mark.parametrize(
        "text",
        [
            "insufficient funds for gas * price + value",
            "Insufficient balance",
            "ERC20: transfer amount exceeds balance",
            "INSUFFICIENT_BALANCE",
        ],
    )
    def test_matches(self, text):
        assert is_insufficient_balance(RuntimeError(text))

    def test_generic_failure(self):
        assert not is_insufficient_balance(PaymentError("Unlock failed (500)"))
        assert not is_insufficient_balance(None)

    def test_typed_error(self):
        assert is_insufficient_balance(InsufficientBalanceError("wallet empty"))


class TestNetworks:
    def test_canonical_names(self):
        assert canonical_chain_name("eip155:84532") == "base-sepolia"
        assert canonical_chain_name("eip155:80002") == "polygon-amoy"
        assert canonical_chain_name("eip155:8453") == "eip155:8453"

    def test_testnets(self):
        assert is_testnet_network("base-sepolia")
        assert is_testnet_network("eip155:43113")
        assert not is_testnet_network("base")
