"""Constants and token catalog for the LxLy swap client."""

from typing import Any

from .types import TokenSelection

SEPOLIA_NETWORK_ID = 0
CARDONA_NETWORK_ID = 1

# Index of the BridgeEvent carrying the call payload in a bridge-and-call
# transaction; index 0 is the asset transfer.
MESSAGE_BRIDGE_INDEX = 1

APPROVAL_GAS_LIMIT = 300_000
BRIDGE_GAS_LIMIT = 1_500_000

SOURCE_APPROVAL_MULTIPLIER = 100
DESTINATION_MIN_ALLOWANCE = "100"
DESTINATION_WARN_ALLOWANCE = "1"

DEFAULT_TOKEN_DECIMALS = 18
DEFAULT_TOKEN_SYMBOL = "Unknown"

NETWORK_NAMES = {
    SEPOLIA_NETWORK_ID: "Sepolia",
    CARDONA_NETWORK_ID: "Cardona",
}

CHAIN_IDS = {
    SEPOLIA_NETWORK_ID: 11155111,
    CARDONA_NETWORK_ID: 2442,
}

EXPLORER_URLS = {
    SEPOLIA_NETWORK_ID: "https://sepolia.etherscan.io/tx/",
    CARDONA_NETWORK_ID: "https://explorer.cardona.zkevm-rpc.com/tx/",
}

TOKEN_A_NAME = "Token A"
TOKEN_B_NAME = "Token B"

TOKENS: dict[int, dict[str, str]] = {
    SEPOLIA_NETWORK_ID: {
        "TOKEN_A": "0x794203e2982EDA39b4cfC3e1F802D6ab635FcDcB",
        "TOKEN_B": "0x5eE2DeAd28817153F6317a3A21F1e8609da0c498",
    },
    CARDONA_NETWORK_ID: {
        "TOKEN_A": "0x19956fa010ECAeA67bd8eAa91b18A0026F1c31D7",
        "TOKEN_B": "0xD6395Ee1b7DFDB64ba691fdB5B71b3624F168C4C",
    },
}

_SELECTION_KEYS = {
    TokenSelection.TOKEN_A_TO_B: ("TOKEN_A", "TOKEN_B"),
    TokenSelection.TOKEN_B_TO_A: ("TOKEN_B", "TOKEN_A"),
}

_TOKEN_NAMES = {"TOKEN_A": TOKEN_A_NAME, "TOKEN_B": TOKEN_B_NAME}


def resolve_route(
    selection: TokenSelection,
    source_network: int = SEPOLIA_NETWORK_ID,
    destination_network: int = CARDONA_NETWORK_ID,
) -> dict[str, str]:
    """Return the token addresses involved in a swap direction.

    ``bridged_token`` is the source token as it arrives on the destination
    network; ``final_token`` is what the destination swap converts it into.
    """
    source_key, target_key = _SELECTION_KEYS[selection]
    return {
        "source_token": TOKENS[source_network][source_key],
        "bridged_token": TOKENS[destination_network][source_key],
        "final_token": TOKENS[destination_network][target_key],
        "source_name": _TOKEN_NAMES[source_key],
        "destination_name": _TOKEN_NAMES[target_key],
    }


def token_options() -> list[dict[str, Any]]:
    """Static catalog of the swap directions exposed to the UI."""
    options = []
    for selection, (source_key, target_key) in _SELECTION_KEYS.items():
        options.append(
            {
                "value": selection.value,
                "label": f"{_TOKEN_NAMES[source_key]} to {_TOKEN_NAMES[target_key]}",
                "sourceToken": {
                    "address": TOKENS[SEPOLIA_NETWORK_ID][source_key],
                    "name": _TOKEN_NAMES[source_key],
                    "network": NETWORK_NAMES[SEPOLIA_NETWORK_ID],
                },
                "destinationToken": {
                    "address": TOKENS[CARDONA_NETWORK_ID][target_key],
                    "name": _TOKEN_NAMES[target_key],
                    "network": NETWORK_NAMES[CARDONA_NETWORK_ID],
                },
            }
        )
    return options
