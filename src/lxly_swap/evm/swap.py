"""Direct token swaps through a Uniswap V2 style router on one network."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..abi import UniswapV2Router02_abi
from ..exceptions import ValidationError
from ..types import DirectSwapResult, OnError
from ..utils import format_units, minimal_receipt
from .allowance import AllowanceManager
from .config import SwapClientConfig
from .connections import Web3Connections
from .tokens import TokenReader
from .transactions import NonceSafeSubmitter

logger = logging.getLogger(__name__)


class RouterSwapper:
    """Approve the router for exactly the swap amount, then swap."""

    def __init__(
        self,
        config: SwapClientConfig,
        connections: Web3Connections,
        tokens: TokenReader,
        allowances: AllowanceManager,
        submitter: NonceSafeSubmitter,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._connections = connections
        self._tokens = tokens
        self._allowances = allowances
        self._submitter = submitter
        self._clock = clock

    def swap_exact_tokens(
        self,
        network_id: int,
        token_in: str,
        token_out: str,
        amount_in: int,
        recipient: str,
        *,
        min_amount_out: int = 0,
    ) -> DirectSwapResult:
        if amount_in <= 0:
            raise ValidationError("Swap amount must be positive", field="amount", value=amount_in)
        if min_amount_out < 0:
            raise ValidationError(
                "Minimum output must be non-negative", field="minAmountOut", value=min_amount_out
            )
        if token_in.lower() == token_out.lower():
            raise ValidationError(
                "Input and output tokens must differ", field="tokenOut", value=token_out
            )

        router_address = self._config.swap_router(network_id)
        self._connections.ensure_connected()
        signer = self._connections.signer_address

        decimals, symbol = self._tokens.details(network_id, token_in)
        self._tokens.require_balance(
            network_id, token_in, signer, amount_in, decimals=decimals, symbol=symbol
        )

        approval = self._allowances.ensure_allowance(
            network_id,
            token_in,
            signer,
            router_address,
            amount_in,
            approval_amount=amount_in,
            on_error=OnError.PROPAGATE,
            label="router",
        )

        deadline = int(self._clock()) + self._config.swap_deadline_seconds
        router = self._connections.contract(network_id, router_address, UniswapV2Router02_abi)
        logger.info(
            "Swapping %s %s for %s on network %s (minOut=%s, deadline=%s)",
            format_units(amount_in, decimals),
            symbol,
            token_out,
            network_id,
            min_amount_out,
            deadline,
        )
        submitted = self._submitter.submit(
            network_id,
            lambda: router.functions.swapExactTokensForTokens(
                amount_in, min_amount_out, [token_in, token_out], recipient, deadline
            ),
            action="router swap",
            context={"tokenIn": token_in, "tokenOut": token_out, "amount": amount_in},
        )

        receipt = minimal_receipt(submitted.receipt)
        if not receipt:
            receipt = {"blockNumber": None, "transactionHash": submitted.tx_hash, "status": None}
        logger.info(
            "Swap transaction confirmed (tx=%s, block=%s)", submitted.tx_hash, receipt["blockNumber"]
        )

        return DirectSwapResult(
            network_id=network_id,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            tx_hash=submitted.tx_hash,
            receipt=receipt,
            approval=approval,
        )
