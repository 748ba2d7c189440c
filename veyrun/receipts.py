"""Persisted, deduplicated history of settled payments."""

from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from .constants import (
    DEFAULT_ASSET_SYMBOL,
    DEFAULT_RECEIPT_DESCRIPTION,
    MOCK_PROOF,
    RECEIPTS_STORAGE_KEY,
)
from .schemas import ReceiptRecord
from .storage import StorageArea

logger = logging.getLogger(__name__)


def is_mock_receipt(receipt: ReceiptRecord | dict) -> bool:
    """Check whether a receipt came from the demo server's mock payment path."""
    proof = receipt.get("proof") if isinstance(receipt, dict) else receipt.proof
    return proof == MOCK_PROOF


class ReceiptStore:
    """Newest-first receipt log kept in a storage area.

    Every append re-reads the persisted list before writing it back, and
    appends within this process are serialized, so no concurrently added
    entry is lost. Mock receipts never enter the log and are never listed.
    """

    def __init__(self, storage: StorageArea, key: str = RECEIPTS_STORAGE_KEY) -> None:
        self._storage = storage
        self._key = key
        self._lock = asyncio.Lock()

    async def _load_raw(self) -> list[dict]:
        raw = await self._storage.get(self._key)
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("Ignoring malformed receipt list under %s", self._key)
            return []
        return [entry for entry in raw if isinstance(entry, dict)]

    async def append(self, receipt: ReceiptRecord) -> bool:
        """Prepend a settled receipt.

        Mock receipts are skipped. Any mock entries already stored, and any
        earlier entry with the same receipt id, are removed.

        Args:
            receipt: Receipt to record.

        Returns:
            True if the receipt was written.

        Raises:
            StorageError: If the storage area cannot be read or written.
        """
        if is_mock_receipt(receipt):
            logger.debug("Skipping mock receipt %s", receipt.receipt_id)
            return False

        async with self._lock:
            entries = await self._load_raw()
            kept = [
                entry
                for entry in entries
                if not is_mock_receipt(entry) and entry.get("receiptId") != receipt.receipt_id
            ]
            await self._storage.set(self._key, [receipt.to_wire(), *kept])
        return True

    async def list(self) -> list[ReceiptRecord]:
        """All real receipts, newest first, with asset and description defaulted."""
        records: list[ReceiptRecord] = []
        for entry in await self._load_raw():
            if is_mock_receipt(entry):
                continue
            try:
                record = ReceiptRecord.model_validate(entry)
            except ValidationError:
                logger.warning("Skipping unreadable receipt entry")
                continue
            if record.asset is None:
                record.asset = DEFAULT_ASSET_SYMBOL
            if record.description is None:
                record.description = DEFAULT_RECEIPT_DESCRIPTION
            records.append(record)
        return records

    async def clear(self) -> None:
        async with self._lock:
            await self._storage.remove(self._key)
