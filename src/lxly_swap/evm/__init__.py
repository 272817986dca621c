"""EVM side of the LxLy swap client: connections, submission and workflow."""

from .client import LxLySwapClient
from .config import ChainEndpoint, SwapClientConfig, load_config
from .retry import ResilientCaller, RetryPolicy
from .status import PollHandle, StatusPoller, TransactionStatusTracker

__all__ = [
    "ChainEndpoint",
    "LxLySwapClient",
    "PollHandle",
    "ResilientCaller",
    "RetryPolicy",
    "StatusPoller",
    "SwapClientConfig",
    "TransactionStatusTracker",
    "load_config",
]
