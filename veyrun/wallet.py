"""Wallet record custody - create, import, sign and balance lookups.

The wallet is a single persisted record. Create and import replace it in
one write; nothing ever updates part of it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable

from eth_account import Account
from eth_account.messages import encode_defunct
from pydantic import ValidationError
from web3 import AsyncHTTPProvider, AsyncWeb3

from .codec import format_units
from .constants import (
    BASE_SEPOLIA_CHAIN_ID,
    DEFAULT_RPC_URL,
    ERC20_BALANCE_ABI,
    USDC_BASE_SEPOLIA,
    WALLET_STORAGE_KEY,
)
from .networks import ChainInfo, chain_info
from .schemas import BaseVeyrunModel, NoWalletProvisionedError, WalletError
from .storage import StorageArea

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
BalanceReader = Callable[[str], Awaitable[str]]


class WalletRecord(BaseVeyrunModel):
    """Persisted wallet record.

    Attributes:
        private_key: 0x-prefixed 32-byte hex key.
        address: Checksummed address derived from the key.
        created_at: Creation time in milliseconds since the epoch.
        chain_id: Chain the wallet operates on.
    """

    private_key: str
    address: str
    created_at: int
    chain_id: int = BASE_SEPOLIA_CHAIN_ID


class WalletStatusView(BaseVeyrunModel):
    """Public view of the wallet; never carries key material."""

    has_wallet: bool
    address: str | None = None
    created_at: int | None = None
    chain_id: int = BASE_SEPOLIA_CHAIN_ID


def _with_0x(value: str) -> str:
    return value if value.startswith("0x") else f"0x{value}"


def make_usdc_balance_reader(rpc_url: str = DEFAULT_RPC_URL) -> BalanceReader:
    """Create a reader for the USDC balance of an address on Base Sepolia.

    Args:
        rpc_url: JSON-RPC endpoint.

    Returns:
        Async function mapping an address to a human decimal balance.
    """

    async def read_balance(address: str) -> str:
        w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(USDC_BASE_SEPOLIA),
            abi=ERC20_BALANCE_ABI,
        )
        decimals, balance = await asyncio.gather(
            contract.functions.decimals().call(),
            contract.functions.balanceOf(AsyncWeb3.to_checksum_address(address)).call(),
        )
        return format_units(str(balance), int(decimals))

    return read_balance


class WalletStore:
    """Wallet record kept in a storage area."""

    def __init__(
        self,
        storage: StorageArea,
        rpc_url: str = DEFAULT_RPC_URL,
        balance_reader: BalanceReader | None = None,
        clock: Clock = time.time,
        key: str = WALLET_STORAGE_KEY,
    ) -> None:
        self._storage = storage
        self._rpc_url = rpc_url
        self._balance_reader = balance_reader or make_usdc_balance_reader(rpc_url)
        self._clock = clock
        self._key = key

    async def load(self) -> WalletRecord | None:
        raw = await self._storage.get(self._key)
        if raw is None:
            return None
        try:
            return WalletRecord.model_validate(raw)
        except ValidationError as e:
            raise WalletError("Stored wallet record is unreadable.") from e

    async def _save(self, record: WalletRecord) -> WalletRecord:
        await self._storage.set(self._key, record.model_dump(by_alias=True))
        logger.info("Wallet record replaced for %s", record.address)
        return record

    def _record_for(self, account: "LocalAccount") -> WalletRecord:
        return WalletRecord(
            private_key=_with_0x(account.key.hex()),
            address=account.address,
            created_at=int(self._clock() * 1000),
            chain_id=BASE_SEPOLIA_CHAIN_ID,
        )

    async def status(self) -> WalletStatusView:
        record = await self.load()
        if record is None:
            return WalletStatusView(has_wallet=False)
        return WalletStatusView(
            has_wallet=True,
            address=record.address,
            created_at=record.created_at,
            chain_id=record.chain_id,
        )

    async def create(self) -> WalletRecord:
        """Generate a fresh key and replace the stored record with it."""
        return await self._save(self._record_for(Account.create()))

    async def ensure(self) -> WalletRecord:
        """Return the stored record, creating one if none exists."""
        record = await self.load()
        if record is not None:
            return record
        return await self.create()

    async def import_key(self, private_key: str) -> WalletRecord:
        """Replace the stored record with one derived from ``private_key``.

        Raises:
            WalletError: If the key is not a 0x-prefixed 32-byte hex string.
        """
        if not private_key.startswith("0x") or len(private_key) != 66:
            raise WalletError("Private key must be a 32-byte hex string.")
        try:
            account = Account.from_key(private_key)
        except ValueError as e:
            raise WalletError("Private key must be a 32-byte hex string.") from e
        return await self._save(self._record_for(account))

    async def export_key(self) -> str:
        record = await self.load()
        if record is None:
            raise NoWalletProvisionedError()
        return record.private_key

    async def account(self) -> "LocalAccount | None":
        record = await self.load()
        if record is None:
            return None
        return Account.from_key(record.private_key)

    async def sign(self, payload: str) -> str:
        """Sign a personal message (EIP-191) with the stored key.

        Returns:
            0x-prefixed signature hex.
        """
        account = await self.account()
        if account is None:
            raise NoWalletProvisionedError("No wallet found.")
        signed = account.sign_message(encode_defunct(text=payload))
        return _with_0x(signed.signature.hex())

    def chain(self) -> ChainInfo:
        return chain_info(self._rpc_url)

    async def balance(self) -> str:
        """USDC balance of the stored wallet as a decimal string."""
        record = await self.load()
        if record is None:
            raise NoWalletProvisionedError()
        return await self._balance_reader(record.address)
