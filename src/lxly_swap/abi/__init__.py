"""Contract ABI fragments used by the LxLy swap client."""

from __future__ import annotations

from typing import Any


def _param(name: str, type_: str, *, indexed: bool | None = None) -> dict[str, Any]:
    entry: dict[str, Any] = {"internalType": type_, "name": name, "type": type_}
    if indexed is not None:
        entry["indexed"] = indexed
    return entry


def _function(
    name: str,
    inputs: list[dict[str, Any]],
    outputs: list[dict[str, Any]],
    mutability: str,
) -> dict[str, Any]:
    return {
        "inputs": inputs,
        "name": name,
        "outputs": outputs,
        "stateMutability": mutability,
        "type": "function",
    }


ERC20_abi = [
    _function("name", [], [_param("", "string")], "view"),
    _function("symbol", [], [_param("", "string")], "view"),
    _function("decimals", [], [_param("", "uint8")], "view"),
    _function("balanceOf", [_param("account", "address")], [_param("", "uint256")], "view"),
    _function(
        "allowance",
        [_param("owner", "address"), _param("spender", "address")],
        [_param("", "uint256")],
        "view",
    ),
    _function(
        "approve",
        [_param("spender", "address"), _param("amount", "uint256")],
        [_param("", "bool")],
        "nonpayable",
    ),
]

UniswapV2Router02_abi = [
    _function(
        "swapExactTokensForTokens",
        [
            _param("amountIn", "uint256"),
            _param("amountOutMin", "uint256"),
            _param("path", "address[]"),
            _param("to", "address"),
            _param("deadline", "uint256"),
        ],
        [_param("amounts", "uint256[]")],
        "nonpayable",
    ),
]

BridgeExtension_abi = [
    _function(
        "bridgeAndCall",
        [
            _param("token", "address"),
            _param("amount", "uint256"),
            _param("destinationNetwork", "uint32"),
            _param("callAddress", "address"),
            _param("fallbackAddress", "address"),
            _param("callData", "bytes"),
            _param("forceUpdateGlobalExitRoot", "bool"),
            _param("permitData", "bytes"),
        ],
        [],
        "payable",
    ),
]

PolygonZkEVMBridgeV2_abi = [
    _function(
        "claimMessage",
        [
            _param("smtProofLocalExitRoot", "bytes32[32]"),
            _param("smtProofRollupExitRoot", "bytes32[32]"),
            _param("globalIndex", "uint256"),
            _param("mainnetExitRoot", "bytes32"),
            _param("rollupExitRoot", "bytes32"),
            _param("originNetwork", "uint32"),
            _param("originAddress", "address"),
            _param("destinationNetwork", "uint32"),
            _param("destinationAddress", "address"),
            _param("amount", "uint256"),
            _param("metadata", "bytes"),
        ],
        [],
        "nonpayable",
    ),
    {
        "anonymous": False,
        "inputs": [
            _param("leafType", "uint8", indexed=False),
            _param("originNetwork", "uint32", indexed=False),
            _param("originAddress", "address", indexed=False),
            _param("destinationNetwork", "uint32", indexed=False),
            _param("destinationAddress", "address", indexed=False),
            _param("amount", "uint256", indexed=False),
            _param("metadata", "bytes", indexed=False),
            _param("depositCount", "uint32", indexed=False),
        ],
        "name": "BridgeEvent",
        "type": "event",
    },
]

__all__ = [
    "BridgeExtension_abi",
    "ERC20_abi",
    "PolygonZkEVMBridgeV2_abi",
    "UniswapV2Router02_abi",
]
