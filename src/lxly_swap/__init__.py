"""LxLy bridge-and-call swap backend.

Bridges a token from the source network to the destination network and
swaps it there in the same bridge-and-call, then tracks and claims the
message half of the transfer.
"""

from .evm import (
    ChainEndpoint,
    LxLySwapClient,
    StatusPoller,
    SwapClientConfig,
    TransactionStatusTracker,
    load_config,
)
from .exceptions import (
    ClaimError,
    ConfigurationError,
    ErrorKind,
    LxLySwapError,
    NetworkError,
    NonceConflictError,
    StatusLookupError,
    TransactionError,
    UpstreamUnavailableError,
    ValidationError,
    classify_error,
)
from .types import (
    BridgeRequest,
    BridgeResult,
    ClaimPayload,
    ClaimResult,
    DirectSwapResult,
    OnError,
    SwapResult,
    TokenSelection,
    TransactionState,
    TransactionStatus,
)
from .utils import format_units, to_base_units

__version__ = "0.1.0"

__all__ = [
    # Client and configuration
    "LxLySwapClient",
    "ChainEndpoint",
    "SwapClientConfig",
    "load_config",
    "StatusPoller",
    "TransactionStatusTracker",
    # Types and enums
    "BridgeRequest",
    "BridgeResult",
    "ClaimPayload",
    "ClaimResult",
    "DirectSwapResult",
    "OnError",
    "SwapResult",
    "TokenSelection",
    "TransactionState",
    "TransactionStatus",
    # Exceptions
    "LxLySwapError",
    "ConfigurationError",
    "ValidationError",
    "NetworkError",
    "UpstreamUnavailableError",
    "StatusLookupError",
    "TransactionError",
    "NonceConflictError",
    "ClaimError",
    "ErrorKind",
    "classify_error",
    # Utility functions
    "to_base_units",
    "format_units",
]
