"""ERC-20 allowance inspection and approval workflow."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from ..constants import APPROVAL_GAS_LIMIT
from ..exceptions import ValidationError
from ..types import AllowanceResult, OnError
from ..utils import MAX_UINT256
from .connections import Web3Connections
from .retry import ResilientCaller
from .transactions import NonceSafeSubmitter

logger = logging.getLogger(__name__)


class AllowanceManager:
    """Make sure spenders may move the signer's tokens before they need to."""

    def __init__(
        self,
        connections: Web3Connections,
        caller: ResilientCaller,
        submitter: NonceSafeSubmitter,
        *,
        propagation_delay: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._connections = connections
        self._caller = caller
        self._submitter = submitter
        self._propagation_delay = propagation_delay
        self._sleep = sleep

    def allowance(self, network_id: int, token: str, owner: str, spender: str) -> int:
        contract = self._connections.erc20(network_id, token)
        return int(
            self._caller.call(
                contract.functions.allowance(owner, spender).call, action="allowance read"
            )
        )

    def ensure_allowance(
        self,
        network_id: int,
        token: str,
        owner: str,
        spender: str,
        min_amount: int,
        *,
        approval_amount: int = MAX_UINT256,
        on_error: OnError = OnError.PROPAGATE,
        label: str = "spender",
    ) -> AllowanceResult:
        """Raise the allowance of ``spender`` to at least ``min_amount``.

        At most one approval is submitted. With ``OnError.DEGRADE`` failures are
        logged and reported on the returned result instead of raised.
        """

        result = AllowanceResult(spender=spender, label=label, allowance_before=None)
        try:
            self._ensure(network_id, token, owner, spender, min_amount, approval_amount, result)
        except Exception as exc:
            if on_error is OnError.PROPAGATE:
                raise
            logger.error("Error ensuring %s allowance for %s: %s", label, spender, exc)
            result.error = str(exc)
        return result

    def ensure_allowances(
        self,
        network_id: int,
        token: str,
        owner: str,
        spenders: Sequence[tuple[str, str]],
        min_amount: int,
        *,
        approval_amount: int = MAX_UINT256,
        on_error: OnError = OnError.DEGRADE,
    ) -> list[AllowanceResult]:
        """Run :meth:`ensure_allowance` for ``(label, spender)`` pairs in order."""

        return [
            self.ensure_allowance(
                network_id,
                token,
                owner,
                spender,
                min_amount,
                approval_amount=approval_amount,
                on_error=on_error,
                label=label,
            )
            for label, spender in spenders
        ]

    def _ensure(
        self,
        network_id: int,
        token: str,
        owner: str,
        spender: str,
        min_amount: int,
        approval_amount: int,
        result: AllowanceResult,
    ) -> None:
        if approval_amount < min_amount:
            raise ValidationError(
                "Approval amount must cover the required allowance",
                field="approval_amount",
                value=approval_amount,
                details={"required": min_amount},
            )

        current = self.allowance(network_id, token, owner, spender)
        result.allowance_before = current
        logger.info(
            "Current %s allowance for %s: %s (required %s)", result.label, spender, current, min_amount
        )
        if current >= min_amount:
            result.allowance_after = current
            logger.info("%s already has sufficient allowance", result.label)
            return

        logger.info("Approving %s to spend %s of %s", result.label, approval_amount, token)
        contract = self._connections.erc20(network_id, token)
        submitted = self._submitter.submit(
            network_id,
            lambda: contract.functions.approve(spender, approval_amount),
            action=f"approve {result.label}",
            gas_limit=APPROVAL_GAS_LIMIT,
            context={"token": token, "spender": spender, "amount": approval_amount},
        )
        result.approval_tx_hash = submitted.tx_hash
        logger.info(
            "Approval for %s confirmed in block %s (tx=%s)",
            result.label,
            submitted.block_number,
            submitted.tx_hash,
        )

        if self._propagation_delay > 0:
            logger.debug("Waiting %.1fs for approval to propagate", self._propagation_delay)
            self._sleep(self._propagation_delay)

        refreshed = self.allowance(network_id, token, owner, spender)
        result.allowance_after = refreshed
        if refreshed < min_amount:
            raise ValidationError(
                f"Approval failed: allowance ({refreshed}) is still less than required amount "
                f"({min_amount})",
                field="allowance",
                value=refreshed,
                details={"required": min_amount, "spender": spender, "tx_hash": submitted.tx_hash},
            )
