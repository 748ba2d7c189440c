"""Network helpers - testnet detection and canonical chain names."""

from typing_extensions import (
    TypedDict,
)  # use `typing_extensions.TypedDict` instead of `typing.TypedDict` on Python < 3.12

from .constants import BASE_SEPOLIA_CHAIN_ID, BASE_SEPOLIA_NAME, DEFAULT_RPC_URL

# Testnet chain ids and the human readable names they are rewritten to
TESTNET_CHAIN_NAMES: dict[str, str] = {
    "84532": "base-sepolia",
    "43113": "avalanche-fuji",
    "80002": "polygon-amoy",
}


class ChainInfo(TypedDict):
    id: int
    name: str
    rpcUrl: str


def canonical_chain_name(network: str) -> str:
    """Rewrite a network identifier to a canonical chain name.

    Identifiers containing a known testnet chain id (``"eip155:84532"``,
    ``"84532"``) become the chain's human readable name. Anything else is
    returned unchanged.

    Args:
        network: Network identifier as sent by the server.

    Returns:
        Canonical chain name or the original value.
    """
    for chain_id, name in TESTNET_CHAIN_NAMES.items():
        if chain_id in network:
            return name
    return network


def is_testnet_network(network: str | None) -> bool:
    """Check whether a network identifier names a known testnet."""
    if not network:
        return False
    if network in TESTNET_CHAIN_NAMES.values():
        return True
    return any(chain_id in network for chain_id in TESTNET_CHAIN_NAMES)


def chain_info(rpc_url: str = DEFAULT_RPC_URL) -> ChainInfo:
    """Describe the chain the wallet operates on."""
    return {"id": BASE_SEPOLIA_CHAIN_ID, "name": BASE_SEPOLIA_NAME, "rpcUrl": rpc_url}
