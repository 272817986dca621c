"""Utility functions for the LxLy swap client."""

import re
from collections.abc import Mapping, Sequence
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any

from eth_typing import HexStr
from hexbytes import HexBytes

from .exceptions import ValidationError

MAX_UINT256 = 2**256 - 1

_NEXT_NONCE_PATTERNS = (
    re.compile(r"next nonce (\d+)", re.IGNORECASE),
    re.compile(r"state:\s*(\d+)", re.IGNORECASE),
    re.compile(r"expected nonce (?:of )?(\d+)", re.IGNORECASE),
)


def to_base_units(amount: str | int | float | Decimal, decimals: int = 18) -> int:
    """Convert a human readable token amount into its smallest unit."""
    try:
        quantity = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (ValueError, InvalidOperation) as exc:
        raise ValidationError(
            "Invalid token amount", field="amount", value=amount, details={"error": str(exc)}
        ) from exc

    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError("Amount must be positive", field="amount", value=str(amount))

    scaled = (quantity * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    if scaled <= 0:
        raise ValidationError(
            "Amount is smaller than the token's smallest unit", field="amount", value=str(amount)
        )
    return int(scaled)


def from_base_units(value: int, decimals: int = 18) -> Decimal:
    """Convert a smallest-unit integer into a Decimal token amount."""
    return Decimal(int(value)) / (Decimal(10) ** decimals)


def format_units(value: int, decimals: int = 18) -> str:
    """Render a smallest-unit integer without exponent notation."""
    return format(from_base_units(value, decimals).normalize(), "f")


def extract_next_nonce(message: str) -> int | None:
    """Parse the chain-suggested nonce out of a "nonce too low" error."""
    for pattern in _NEXT_NONCE_PATTERNS:
        match = pattern.search(message)
        if match:
            return int(match.group(1))
    return None


def to_hex(value: Any) -> HexStr:
    """Return a 0x-prefixed hex string for hashes returned by web3."""
    if isinstance(value, str):
        return HexStr(value if value.startswith("0x") else f"0x{value}")
    return HexStr(HexBytes(value).to_0x_hex())


def serialise_receipt(receipt: Any) -> Any:
    """Serialise web3 receipt objects into JSON-friendly structures."""
    if receipt is None:
        return None
    if isinstance(receipt, Mapping):
        return {key: serialise_receipt(value) for key, value in receipt.items()}
    if isinstance(receipt, Sequence) and not isinstance(
        receipt, str | bytes | bytearray | HexBytes
    ):
        return [serialise_receipt(item) for item in receipt]
    if isinstance(receipt, bytes | bytearray | HexBytes):
        return HexBytes(receipt).to_0x_hex()
    return receipt


def minimal_receipt(receipt: Mapping[str, Any] | None) -> dict[str, Any]:
    """Reduce a receipt to block number, transaction hash and status."""
    if not receipt:
        return {}
    tx_hash = receipt.get("transactionHash")
    return {
        "blockNumber": receipt.get("blockNumber"),
        "transactionHash": to_hex(tx_hash) if tx_hash is not None else None,
        "status": receipt.get("status"),
    }
