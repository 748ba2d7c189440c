"""Payment-protocol client boundary.

The pipeline only depends on the ``PaymentClient`` protocol: perform a
request, paying for it if the server asks. ``x402HttpxPaymentClient`` is the
default implementation, a thin adapter over the x402 SDK's httpx client.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Protocol

import httpx
from x402 import x402Client
from x402.http.clients.httpx import x402AsyncTransport, x402HttpxClient
from x402.mechanisms.evm.exact.register import register_exact_evm_client
from x402.mechanisms.evm.signers import EthAccountSigner

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)


class PaymentClient(Protocol):
    """Performs a request, attaching payment when the server requires it."""

    async def fetch_with_payment(
        self,
        url: str,
        method: str,
        account: "LocalAccount",
    ) -> httpx.Response:
        """Request ``url`` and pay for it with ``account`` if needed.

        Returns:
            The final response (after the paid retry, if one happened).
        """
        ...


def build_x402_client(account: "LocalAccount") -> x402Client:
    """Create an x402 client that pays with ``account`` on EVM networks."""
    client = x402Client()
    register_exact_evm_client(client, EthAccountSigner(account))
    return client


class x402HttpxPaymentClient:
    """``PaymentClient`` backed by the x402 SDK's httpx integration.

    A fresh x402 client is built per call, since the paying account can
    change between calls (wallet import or reset).
    """

    def __init__(
        self,
        timeout: float = 30.0,
        client_factory: Callable[["LocalAccount"], x402Client] = build_x402_client,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            timeout: Request timeout in seconds.
            client_factory: Builds the x402 client for a paying account.
            transport: Underlying httpx transport; the network when None.
        """
        self._timeout = timeout
        self._client_factory = client_factory
        self._transport = transport

    def _http_client(self, account: "LocalAccount") -> httpx.AsyncClient:
        x402_client = self._client_factory(account)
        if self._transport is None:
            return x402HttpxClient(x402_client, timeout=self._timeout)
        return httpx.AsyncClient(
            transport=x402AsyncTransport(x402_client, self._transport),
            timeout=self._timeout,
        )

    async def fetch_with_payment(
        self,
        url: str,
        method: str,
        account: "LocalAccount",
    ) -> httpx.Response:
        logger.debug("Fetching %s %s with payment from %s", method, url, account.address)
        async with self._http_client(account) as http:
            return await http.request(method, url)
