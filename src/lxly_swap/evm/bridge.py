"""Bridge-and-call orchestration for cross-chain swaps."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from hexbytes import HexBytes
from web3 import Web3

from ..abi import UniswapV2Router02_abi
from ..constants import SOURCE_APPROVAL_MULTIPLIER
from ..exceptions import ValidationError
from ..types import BridgeRequest, BridgeResult, OnError
from ..utils import format_units, minimal_receipt
from .allowance import AllowanceManager
from .config import SwapClientConfig
from .connections import Web3Connections
from .lxly import BridgeExtension
from .retry import ResilientCaller
from .tokens import TokenReader

logger = logging.getLogger(__name__)

_BRIDGE_MESSAGE = (
    "Bridge and call transaction confirmed{retry}. The token will be bridged to {destination} "
    "and swapped automatically."
)


class SwapCalldataBuilder:
    """Encode destination router calls without a provider."""

    def __init__(self, router_address: str) -> None:
        self._router = Web3().eth.contract(
            address=Web3.to_checksum_address(router_address), abi=UniswapV2Router02_abi
        )

    def swap_exact_tokens_for_tokens(
        self,
        amount_in: int,
        min_amount_out: int,
        path: Sequence[str],
        recipient: str,
        deadline: int,
    ) -> bytes:
        if amount_in <= 0:
            raise ValidationError("Swap amount must be positive", field="amount_in", value=amount_in)
        if min_amount_out < 0:
            raise ValidationError(
                "Minimum output must be non-negative", field="min_amount_out", value=min_amount_out
            )
        if len(path) < 2:
            raise ValidationError("Swap path needs at least two tokens", field="path", value=path)

        encoded = self._router.encode_abi(
            "swapExactTokensForTokens",
            args=[
                amount_in,
                min_amount_out,
                [Web3.to_checksum_address(token) for token in path],
                Web3.to_checksum_address(recipient),
                deadline,
            ],
        )
        return bytes(HexBytes(encoded))


class BridgeAndCallOrchestrator:
    """Validate, approve and submit a bridge-and-call from the source network."""

    def __init__(
        self,
        config: SwapClientConfig,
        connections: Web3Connections,
        caller: ResilientCaller,
        allowances: AllowanceManager,
        bridge_extension: BridgeExtension,
        calldata_builder: SwapCalldataBuilder,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._connections = connections
        self._allowances = allowances
        self._bridge_extension = bridge_extension
        self._calldata_builder = calldata_builder
        self._clock = clock
        self._tokens = TokenReader(connections, caller)

    def execute(self, request: BridgeRequest) -> BridgeResult:
        network_id = request.source_network
        self._connections.ensure_connected()
        signer = self._connections.signer_address

        extension_address = self._connections.bridge_extension_address(network_id)
        logger.debug(
            "Stage BRIDGE: resolved bridge extension %s on network %s",
            extension_address,
            network_id,
        )

        decimals, symbol = self.token_details(network_id, request.source_token)
        self._tokens.require_balance(
            network_id,
            request.source_token,
            signer,
            request.amount,
            decimals=decimals,
            symbol=symbol,
        )

        logger.debug("Stage BRIDGE: ensure bridge extension allowance (amount=%s)", request.amount)
        self._allowances.ensure_allowance(
            network_id,
            request.source_token,
            signer,
            extension_address,
            request.amount,
            approval_amount=request.amount * SOURCE_APPROVAL_MULTIPLIER,
            on_error=OnError.PROPAGATE,
            label="bridge extension",
        )

        calldata = request.calldata or self._encode_swap(request)
        logger.info(
            "Bridging %s %s from network %s to network %s",
            format_units(request.amount, decimals),
            symbol,
            network_id,
            request.destination_network,
        )

        submitted = self._bridge_extension.bridge_and_call(
            network_id,
            request.source_token,
            request.amount,
            request.destination_network,
            self._config.router_address,
            request.recipient,
            calldata,
            request.force_update_global_exit_root,
            request.permit_data,
        )

        endpoint = self._connections.endpoint(network_id)
        link = endpoint.explorer_link(submitted.tx_hash)
        if link:
            logger.info("Bridge transaction explorer link: %s", link)

        receipt = minimal_receipt(submitted.receipt)
        if not receipt:
            receipt = {"blockNumber": None, "transactionHash": submitted.tx_hash, "status": None}

        destination = self._connections.endpoint(request.destination_network).name
        retry = " (retry successful)" if len(submitted.attempts) > 1 else ""
        message = _BRIDGE_MESSAGE.format(retry=retry, destination=destination)

        logger.debug(
            "Stage BRIDGE: completed (tx=%s, nonce=%s, attempts=%s)",
            submitted.tx_hash,
            submitted.nonce,
            len(submitted.attempts),
        )
        return BridgeResult(
            tx_hash=submitted.tx_hash,
            receipt=receipt,
            nonce=submitted.nonce,
            calldata=calldata,
            message=message,
        )

    def token_details(
        self, network_id: int, token: str, *, on_error: OnError = OnError.DEGRADE
    ) -> tuple[int, str]:
        return self._tokens.details(network_id, token, on_error=on_error)

    def _encode_swap(self, request: BridgeRequest) -> bytes:
        if not request.final_token:
            raise ValidationError(
                "A final token is required to encode the destination swap",
                field="final_token",
                value=request.final_token,
            )

        deadline = int(self._clock()) + self._config.swap_deadline_seconds
        logger.debug(
            "Stage BRIDGE: encode swap (path=%s -> %s, minOut=%s, deadline=%s)",
            request.destination_token,
            request.final_token,
            request.min_amount_out,
            deadline,
        )
        return self._calldata_builder.swap_exact_tokens_for_tokens(
            request.amount,
            request.min_amount_out,
            [request.destination_token, request.final_token],
            request.recipient,
            deadline,
        )
