"""Message claims for the call half of a bridge-and-call."""

from __future__ import annotations

import logging

from ..constants import MESSAGE_BRIDGE_INDEX
from ..exceptions import ClaimError, LxLySwapError, classify_error
from ..types import ClaimResult
from ..utils import minimal_receipt
from .lxly import Bridge, BridgeUtil

logger = logging.getLogger(__name__)


class MessageClaimService:
    """Build the message claim payload and submit it on the destination network.

    Every failure is raised as a :class:`ClaimError` whose ``kind`` tells the
    caller whether the message was already claimed, missing, or genuinely broken.
    """

    def __init__(
        self,
        bridge_util: BridgeUtil,
        bridge: Bridge,
        *,
        source_network: int,
        destination_network: int,
        bridge_index: int = MESSAGE_BRIDGE_INDEX,
    ) -> None:
        self._bridge_util = bridge_util
        self._bridge = bridge
        self._source_network = source_network
        self._destination_network = destination_network
        self._bridge_index = bridge_index

    def claim_message(self, bridge_tx_hash: str) -> ClaimResult:
        logger.debug(
            "Stage CLAIM: build payload (tx=%s, source=%s, index=%s)",
            bridge_tx_hash,
            self._source_network,
            self._bridge_index,
        )
        try:
            payload = self._bridge_util.build_payload_for_claim(
                bridge_tx_hash, self._source_network, self._bridge_index
            )
            logger.debug(
                "Stage CLAIM: submit claimMessage on network %s (globalIndex=%s)",
                self._destination_network,
                payload.global_index,
            )
            submitted = self._bridge.claim_message(self._destination_network, payload)
        except Exception as exc:
            kind = classify_error(exc)
            logger.error("Message claim for %s failed (%s): %s", bridge_tx_hash, kind.value, exc)
            raise ClaimError(
                f"Failed to claim message for {bridge_tx_hash}: {exc}",
                bridge_tx_hash=bridge_tx_hash,
                reason=str(exc),
                details=dict(exc.details) if isinstance(exc, LxLySwapError) else {},
                kind=kind,
            ) from exc

        logger.info(
            "Message claim for %s confirmed (tx=%s, block=%s)",
            bridge_tx_hash,
            submitted.tx_hash,
            submitted.block_number,
        )
        receipt = minimal_receipt(submitted.receipt) or {
            "blockNumber": None,
            "transactionHash": submitted.tx_hash,
            "status": None,
        }
        return ClaimResult(tx_hash=submitted.tx_hash, receipt=receipt, bridge_tx_hash=bridge_tx_hash)
