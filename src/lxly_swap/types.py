"""Type definitions and data models for the LxLy swap client."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TransactionState(str, Enum):
    """Lifecycle of a bridge transaction as reported by the attestation API."""

    PENDING = "PENDING"
    BRIDGED = "BRIDGED"
    READY_TO_CLAIM = "READY_TO_CLAIM"
    CLAIMED = "CLAIMED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionState.CLAIMED, TransactionState.FAILED)

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]


_STATE_RANK = {
    TransactionState.PENDING: 0,
    TransactionState.BRIDGED: 1,
    TransactionState.READY_TO_CLAIM: 2,
    TransactionState.CLAIMED: 3,
    TransactionState.FAILED: 3,
}


class TokenSelection(str, Enum):
    """Swap directions offered by the token catalog."""

    TOKEN_A_TO_B = "TOKEN_A_TO_B"
    TOKEN_B_TO_A = "TOKEN_B_TO_A"


class OnError(Enum):
    """Failure policy for best-effort steps."""

    PROPAGATE = "propagate"
    DEGRADE = "degrade"


@dataclass(frozen=True)
class BridgeRequest:
    """A single bridge-and-call intent, immutable once submitted."""

    source_token: str
    amount: int
    destination_token: str
    destination_network: int
    recipient: str
    calldata: bytes = b""
    force_update_global_exit_root: bool = True
    permit_data: bytes = b""
    source_network: int = 0
    final_token: str | None = None
    min_amount_out: int = 0


@dataclass
class TransactionAttempt:
    """One broadcast of a transaction with an explicit nonce."""

    nonce: int
    gas_limit: int | None
    submitted_at: float
    tx_hash: str | None = None


@dataclass
class SubmittedTransaction:
    """Outcome of a submission through the nonce-safe submitter."""

    tx_hash: str
    nonce: int
    action: str
    attempts: list[TransactionAttempt] = field(default_factory=list)
    receipt: dict[str, Any] | None = None
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def block_number(self) -> int | None:
        return self.receipt.get("blockNumber") if self.receipt else None

    @property
    def status(self) -> int | None:
        return self.receipt.get("status") if self.receipt else None


@dataclass
class AllowanceResult:
    """Result of an allowance check, and approval when one was needed."""

    spender: str
    label: str
    allowance_before: int | None
    allowance_after: int | None = None
    approval_tx_hash: str | None = None
    error: str | None = None

    @property
    def approved(self) -> bool:
        return self.approval_tx_hash is not None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BridgeResult:
    """Confirmed bridge-and-call transaction."""

    tx_hash: str
    receipt: dict[str, Any]
    nonce: int
    calldata: bytes = b""
    message: str = ""


@dataclass
class SwapResult:
    """Outcome of a cross-chain swap request."""

    token_selection: TokenSelection
    source_token: str
    destination_token: str
    amount: str
    bridge: BridgeResult

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "tokenSelection": self.token_selection.value,
            "sourceToken": self.source_token,
            "destinationToken": self.destination_token,
            "amount": self.amount,
            "hash": self.bridge.tx_hash,
            "txHash": self.bridge.tx_hash,
            "receipt": dict(self.bridge.receipt),
            "message": self.bridge.message,
        }


@dataclass
class DirectSwapResult:
    """Confirmed router swap on a single network."""

    network_id: int
    token_in: str
    token_out: str
    amount_in: int
    tx_hash: str
    receipt: dict[str, Any]
    approval: AllowanceResult | None = None

    @property
    def block_number(self) -> int | None:
        return self.receipt.get("blockNumber")

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "transactionHash": self.tx_hash,
            "blockNumber": self.block_number,
            "receipt": dict(self.receipt),
        }


@dataclass
class TransactionStatus:
    """Normalised view of a bridge transaction record."""

    state: TransactionState
    destination_tx_hash: str | None = None
    details: dict[str, Any] | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"state": self.state.value}
        if self.destination_tx_hash is not None:
            payload["destinationTxHash"] = self.destination_tx_hash
        if self.details is not None:
            payload["details"] = dict(self.details)
        return payload


@dataclass(frozen=True)
class ClaimPayload:
    """Proof material and routing fields required to claim a bridge leaf."""

    smt_proof: list[bytes]
    smt_proof_rollup: list[bytes]
    global_index: int
    mainnet_exit_root: bytes
    rollup_exit_root: bytes
    origin_network: int
    origin_token_address: str
    destination_network: int
    destination_address: str
    amount: int
    metadata: bytes
    deposit_count: int = 0

    def as_claim_args(self) -> tuple[Any, ...]:
        """Return the positional arguments of ``claimMessage``."""

        return (
            self.smt_proof,
            self.smt_proof_rollup,
            self.global_index,
            self.mainnet_exit_root,
            self.rollup_exit_root,
            self.origin_network,
            self.origin_token_address,
            self.destination_network,
            self.destination_address,
            self.amount,
            self.metadata,
        )


@dataclass
class ClaimResult:
    """Confirmed message claim transaction."""

    tx_hash: str
    receipt: dict[str, Any]
    bridge_tx_hash: str

