"""Header codec for Payment-Required and Payment-Response headers.

Header values are controlled by whatever server returned the 402, so every
decoder here returns ``None`` on malformed input instead of raising.

Accepted transport encodings, tried in order:

1. Raw JSON text.
2. base64 / base64url encoded JSON (padding optional).
3. Either of the above percent-encoded as a whole.

Each of these may be wrapped in one layer of quote characters.
"""

from __future__ import annotations

import base64
import json
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable
from urllib.parse import unquote

from pydantic import BaseModel

from .constants import (
    DEFAULT_ASSET_SYMBOL,
    DEFAULT_DECIMALS,
    DEFAULT_EXPIRY_SECONDS,
    MAX_TOKEN_DECIMALS,
    SYNTHETIC_NONCE_PREFIX,
)
from .networks import canonical_chain_name
from .schemas import PaymentRequired, PaymentRequirement, SettlementReceipt

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_QUOTES = "\"'"
_PERCENT_ESCAPE = re.compile(r"%[0-9A-Fa-f]{2}")
_HEX_ADDRESS = re.compile(r"^0x[0-9a-fA-F]+$")

# Alternate spellings resolved before shape matching: canonical -> aliases
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "payTo": ("pay_to", "pay_to_address"),
    "network": ("chain_id",),
}


# ============================================================================
# Transport decoding
# ============================================================================


def safe_base64_encode(data: str | bytes, url_safe: bool = False) -> str:
    """Base64 encode a string or bytes to a str."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    if url_safe:
        return base64.urlsafe_b64encode(data).decode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def safe_base64_decode(data: str) -> str:
    """Decode base64 or base64url text to a utf-8 string.

    Accepts both alphabets and missing padding.

    Raises:
        ValueError: If the input is not valid base64 or not utf-8.
    """
    normalized = data.replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    return base64.b64decode(normalized, validate=True).decode("utf-8")


def _strip_quotes(value: str) -> str:
    cleaned = value.strip()
    if len(cleaned) >= 2 and cleaned[0] in _QUOTES and cleaned[-1] == cleaned[0]:
        cleaned = cleaned[1:-1].strip()
    return cleaned


def _parse_json_or_base64(cleaned: str) -> Any:
    if cleaned.startswith("{"):
        return json.loads(cleaned)
    return json.loads(safe_base64_decode(cleaned))


def decode_header_json(raw: str | None) -> dict[str, Any] | None:
    """Decode a header value into a JSON object.

    Args:
        raw: Raw header text.

    Returns:
        The decoded JSON object, or None if no encoding produced one.
    """
    if not raw:
        return None

    cleaned = _strip_quotes(raw)
    if not cleaned:
        return None

    try:
        parsed = _parse_json_or_base64(cleaned)
    except ValueError:
        if not _PERCENT_ESCAPE.search(cleaned):
            logger.debug("Header is neither JSON nor base64")
            return None
        try:
            parsed = _parse_json_or_base64(_strip_quotes(unquote(cleaned)))
        except ValueError:
            logger.debug("Percent-decoded header is neither JSON nor base64")
            return None

    if not isinstance(parsed, dict):
        return None
    return parsed


# ============================================================================
# Amount helpers
# ============================================================================


def format_units(raw: str, decimals: int = DEFAULT_DECIMALS) -> str:
    """Convert a base-unit integer string to a human decimal string.

    ``format_units("1500000", 6) == "1.5"``, ``format_units("1000000", 6) == "1"``
    and ``format_units("10", 6) == "0.00001"``. Values that are not plain
    integer strings are returned unchanged.

    Args:
        raw: Amount in the token's smallest unit.
        decimals: Token decimals; values outside the ERC-20 range fall back
            to the default.

    Returns:
        Decimal string without trailing fractional zeros.
    """
    if not raw.isdigit():
        return raw
    if decimals > MAX_TOKEN_DECIMALS:
        decimals = DEFAULT_DECIMALS
    if decimals <= 0:
        return raw.lstrip("0") or "0"

    digits = raw.lstrip("0").rjust(decimals + 1, "0")
    whole, fraction = digits[:-decimals], digits[-decimals:].rstrip("0")
    return f"{whole}.{fraction}" if fraction else whole


def is_contract_address(value: str) -> bool:
    """Check whether an asset value is a hex contract address."""
    return bool(_HEX_ADDRESS.match(value))


def _decimals_hint(option: dict[str, Any]) -> int:
    extra = option.get("extra")
    if not isinstance(extra, dict):
        return DEFAULT_DECIMALS
    decimals = extra.get("decimals")
    if isinstance(decimals, str) and decimals.isascii() and decimals.isdigit():
        decimals = int(decimals) if len(decimals) <= 3 else None
    if isinstance(decimals, int) and not isinstance(decimals, bool):
        if 0 <= decimals <= MAX_TOKEN_DECIMALS:
            return decimals
    return DEFAULT_DECIMALS


def _as_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _present(option: dict[str, Any], *keys: str) -> bool:
    return all(_as_str(option.get(key)) is not None for key in keys)


def _first(option: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = _as_str(option.get(key))
        if value is not None:
            return value
    return None


def _asset_and_amount(option: dict[str, Any], amount: str) -> tuple[str, str]:
    asset = str(option["asset"])
    if is_contract_address(asset):
        return DEFAULT_ASSET_SYMBOL, format_units(amount, _decimals_hint(option))
    return asset, amount


# ============================================================================
# Accept option shapes
# ============================================================================


@dataclass(frozen=True)
class ShapeMatcher:
    """One recognized accept-option shape.

    Attributes:
        name: Shape name, for logging.
        matches: Predicate over the alias-resolved option.
        transform: Builds the partial requirement (asset, amount, chain,
            recipient) from a matching option.
    """

    name: str
    matches: Callable[[dict[str, Any]], bool]
    transform: Callable[[dict[str, Any]], dict[str, str]]


def _native_matches(option: dict[str, Any]) -> bool:
    return (
        _present(option, "amount", "asset")
        and _first(option, "recipient", "payTo") is not None
        and _first(option, "chain", "network") is not None
    )


def _native_transform(option: dict[str, Any]) -> dict[str, str]:
    asset, amount = _asset_and_amount(option, str(option["amount"]))
    return {
        "asset": asset,
        "amount": amount,
        "recipient": _first(option, "recipient", "payTo"),
        "chain": _first(option, "chain", "network"),
    }


def _price_matches(option: dict[str, Any]) -> bool:
    return _present(option, "price", "payTo", "network")


def _price_transform(option: dict[str, Any]) -> dict[str, str]:
    return {
        "asset": DEFAULT_ASSET_SYMBOL,
        "amount": str(option["price"]).strip().lstrip("$").strip(),
        "recipient": str(option["payTo"]),
        "chain": str(option["network"]),
    }


def _hybrid_matches(option: dict[str, Any]) -> bool:
    return _present(option, "maxAmountRequired", "asset", "payTo", "network")


def _hybrid_transform(option: dict[str, Any]) -> dict[str, str]:
    asset, amount = _asset_and_amount(option, str(option["maxAmountRequired"]))
    return {
        "asset": asset,
        "amount": amount,
        "recipient": str(option["payTo"]),
        "chain": str(option["network"]),
    }


# Tried in order; the first match wins.
SHAPE_MATCHERS: list[ShapeMatcher] = [
    ShapeMatcher("native", _native_matches, _native_transform),
    ShapeMatcher("price", _price_matches, _price_transform),
    ShapeMatcher("hybrid", _hybrid_matches, _hybrid_transform),
]


def resolve_aliases(option: dict[str, Any]) -> dict[str, Any]:
    """Copy an accept option with alias fields renamed to canonical names."""
    resolved = dict(option)
    for canonical, aliases in FIELD_ALIASES.items():
        if _as_str(resolved.get(canonical)) is not None:
            continue
        for alias in aliases:
            if _as_str(resolved.get(alias)) is not None:
                resolved[canonical] = resolved[alias]
                break
    return resolved


def _iso(timestamp: float) -> str:
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_accept(
    option: dict[str, Any],
    description: str | None = None,
    clock: Clock = time.time,
) -> PaymentRequirement | None:
    """Normalize one accept option to a PaymentRequirement.

    Args:
        option: Raw accept option from the header.
        description: Resource description to attach when the option has none.
        clock: Time source (seconds).

    Returns:
        The normalized requirement, or None if no known shape matches.
    """
    resolved = resolve_aliases(option)

    for matcher in SHAPE_MATCHERS:
        if not matcher.matches(resolved):
            continue
        fields = matcher.transform(resolved)
        now = clock()
        return PaymentRequirement(
            asset=fields["asset"],
            amount=fields["amount"],
            recipient=fields["recipient"],
            chain=canonical_chain_name(fields["chain"]),
            nonce=_as_str(resolved.get("nonce")) or f"{SYNTHETIC_NONCE_PREFIX}{int(now * 1000)}",
            expires_at=_as_str(resolved.get("expiresAt")) or _iso(now + DEFAULT_EXPIRY_SECONDS),
            description=_as_str(resolved.get("description")) or description,
        )

    logger.debug("Dropping accept option with unrecognized shape: %s", sorted(option))
    return None


# ============================================================================
# Header decoders
# ============================================================================


def _resource_description(data: dict[str, Any]) -> str | None:
    resource = data.get("resource")
    if isinstance(resource, dict):
        return _as_str(resource.get("description"))
    return _as_str(data.get("description"))


def decode_payment_required_header(
    raw: str | None,
    clock: Clock = time.time,
) -> PaymentRequired | None:
    """Decode a Payment-Required header into its canonical form.

    Options that match no known shape are dropped; the result may therefore
    carry an empty ``accepts`` list when the header itself was well formed.

    Args:
        raw: Raw header text.
        clock: Time source (seconds), used for synthesized nonce and expiry.

    Returns:
        Decoded PaymentRequired, or None if the header did not decode to an
        object with a non-empty ``accepts`` array.
    """
    data = decode_header_json(raw)
    if data is None:
        return None

    accepts = data.get("accepts")
    if not isinstance(accepts, list) or not accepts:
        return None

    description = _resource_description(data)
    requirements = [
        requirement
        for requirement in (
            normalize_accept(option, description, clock)
            for option in accepts
            if isinstance(option, dict)
        )
        if requirement is not None
    ]

    version = _first(data, "version", "x402Version") or "0.1"
    return PaymentRequired(version=version, accepts=requirements)


def decode_payment_response_header(
    raw: str | None,
    clock: Clock = time.time,
) -> SettlementReceipt | None:
    """Decode a Payment-Response header into a settlement receipt.

    Both the flat receipt shape (``receiptId``/``proof``) and the x402
    settle-response shape (``transaction``/``network``) are understood.

    Args:
        raw: Raw header text.
        clock: Time source (seconds), used when the receipt has no timestamp.

    Returns:
        Decoded receipt, or None if the header carries no proof.
    """
    data = decode_header_json(raw)
    if data is None:
        return None

    proof = _first(data, "proof", "transaction")
    if proof is None:
        return None

    receipt_id = _as_str(data.get("receiptId"))
    if receipt_id is None:
        receipt_id = f"rcpt_{proof.removeprefix('0x')[:8]}"

    success = data.get("success")
    return SettlementReceipt(
        receipt_id=receipt_id,
        proof=proof,
        amount=_as_str(data.get("amount")),
        asset=_as_str(data.get("asset")),
        timestamp=_as_str(data.get("timestamp")) or _iso(clock()),
        merchant_id=_first(data, "merchantId", "payTo"),
        resource=_as_str(data.get("resource")),
        network=_as_str(data.get("network")),
        description=_as_str(data.get("description")),
        success=success if isinstance(success, bool) else None,
    )


# ============================================================================
# Encoders
# ============================================================================


def _payload_json(payload: dict[str, Any] | BaseModel) -> str:
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(by_alias=True, exclude_none=True)
    return json.dumps(payload)


def encode_payment_required_header(
    payload: dict[str, Any] | BaseModel,
    url_safe: bool = False,
) -> str:
    """Encode a payment-required payload as a base64 header value."""
    return safe_base64_encode(_payload_json(payload), url_safe=url_safe)


def encode_payment_response_header(
    payload: dict[str, Any] | BaseModel,
    url_safe: bool = False,
) -> str:
    """Encode a receipt payload as a base64 header value."""
    return safe_base64_encode(_payload_json(payload), url_safe=url_safe)
