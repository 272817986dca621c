"""Client facade wiring the LxLy swap workflow together."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import requests
from web3 import Web3

from ..constants import (
    DESTINATION_MIN_ALLOWANCE,
    DESTINATION_WARN_ALLOWANCE,
    resolve_route,
    token_options,
)
from ..exceptions import ValidationError
from ..types import (
    AllowanceResult,
    BridgeRequest,
    ClaimResult,
    DirectSwapResult,
    OnError,
    SwapResult,
    TokenSelection,
    TransactionStatus,
)
from ..utils import MAX_UINT256, format_units, to_base_units
from .allowance import AllowanceManager
from .bridge import BridgeAndCallOrchestrator, SwapCalldataBuilder
from .claims import MessageClaimService
from .config import SwapClientConfig
from .connections import Web3Connections
from .lxly import Bridge, BridgeExtension, BridgeUtil
from .retry import ResilientCaller, RetryPolicy
from .status import StatusPoller, TransactionStatusTracker
from .swap import RouterSwapper
from .tokens import TokenReader
from .transactions import NonceSafeSubmitter

logger = logging.getLogger(__name__)


class LxLySwapClient:
    """Long-lived service owning the nonce locks, status cache and pollers."""

    def __init__(
        self,
        config: SwapClientConfig,
        *,
        session: requests.Session | None = None,
        connections: Web3Connections | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._connections = connections or Web3Connections(config)
        self._caller = ResilientCaller(
            RetryPolicy(
                max_retries=config.max_retries, initial_delay=config.initial_retry_delay
            ),
            sleep=sleep,
        )
        self._submitter = NonceSafeSubmitter(
            self._connections,
            self._caller,
            wait_for_receipt=config.wait_for_receipt,
            receipt_timeout=config.receipt_timeout,
            clock=clock,
        )
        self._allowances = AllowanceManager(
            self._connections,
            self._caller,
            self._submitter,
            propagation_delay=config.approval_propagation_delay,
            sleep=sleep,
        )
        self._bridge_extension = BridgeExtension(self._connections, self._submitter)
        self._bridge_util = BridgeUtil(
            self._connections,
            self._caller,
            self._session,
            proof_api_url=config.proof_api_url,
            request_timeout=config.request_timeout,
        )
        self._bridge = Bridge(self._connections, self._submitter)
        self._tokens = TokenReader(self._connections, self._caller)
        self._swapper = RouterSwapper(
            config,
            self._connections,
            self._tokens,
            self._allowances,
            self._submitter,
            clock=clock,
        )
        self._orchestrator = BridgeAndCallOrchestrator(
            config,
            self._connections,
            self._caller,
            self._allowances,
            self._bridge_extension,
            SwapCalldataBuilder(config.router_address),
            clock=clock,
        )
        self._status = TransactionStatusTracker(
            self._session,
            api_url=config.status_api_url,
            api_key=config.status_api_key,
            request_timeout=config.request_timeout,
            cache_ttl=config.status_cache_ttl,
        )
        self._claims = MessageClaimService(
            self._bridge_util,
            self._bridge,
            source_network=config.source_network,
            destination_network=config.destination_network,
        )
        self._pollers: list[StatusPoller] = []
        self._pollers_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------
    def connect(self) -> None:
        self._connections.connect()
        logger.info("Signer %s connected", self._connections.signer_address)

    def disconnect(self) -> None:
        with self._pollers_lock:
            pollers, self._pollers = self._pollers, []
        for poller in pollers:
            poller.cancel_all()
        self._connections.disconnect()

    def is_connected(self) -> bool:
        return self._connections.is_connected()

    @property
    def config(self) -> SwapClientConfig:
        return self._config

    @property
    def status_tracker(self) -> TransactionStatusTracker:
        return self._status

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------
    def token_options(self) -> list[dict[str, Any]]:
        return token_options()

    def cross_chain_swap(
        self,
        token_selection: TokenSelection | str,
        amount: str | Decimal,
        user_address: str,
        *,
        min_amount_out: int = 0,
    ) -> SwapResult:
        """Bridge the selected token and swap it on the destination network."""

        try:
            selection = TokenSelection(token_selection)
        except ValueError:
            raise ValidationError(
                "Invalid token selection", field="tokenSelection", value=token_selection
            ) from None
        recipient = _checksum(user_address, "userAddress")

        source_network = self._config.source_network
        destination_network = self._config.destination_network
        route = resolve_route(selection, source_network, destination_network)
        logger.info(
            "Selected option: %s (%s) -> %s (%s)",
            route["source_name"],
            self._connections.endpoint(source_network).name,
            route["destination_name"],
            self._connections.endpoint(destination_network).name,
        )

        requested = str(amount)
        effective = requested
        if self._config.amount_override:
            effective = self._config.amount_override
            logger.warning(
                "Amount override active: bridging %s instead of requested %s", effective, requested
            )

        self._connections.ensure_connected()
        decimals, symbol = self._tokens.details(source_network, route["source_token"])
        amount_units = to_base_units(effective, decimals)
        self._tokens.require_balance(
            source_network,
            route["source_token"],
            self._connections.signer_address,
            amount_units,
            decimals=decimals,
            symbol=symbol,
        )

        spenders = self._destination_spenders()
        self.preapprove_destination(route["bridged_token"], spenders)
        self.validate_destination_allowances(route["bridged_token"], spenders)

        request = BridgeRequest(
            source_token=route["source_token"],
            amount=amount_units,
            destination_token=route["bridged_token"],
            destination_network=destination_network,
            recipient=recipient,
            source_network=source_network,
            final_token=route["final_token"],
            min_amount_out=min_amount_out,
        )
        result = self._orchestrator.execute(request)
        logger.info("Bridge and call completed (tx=%s)", result.tx_hash)

        return SwapResult(
            token_selection=selection,
            source_token=route["source_name"],
            destination_token=route["destination_name"],
            amount=effective,
            bridge=result,
        )

    def swap_tokens(
        self,
        token_in: str,
        token_out: str,
        amount: str | Decimal,
        user_address: str,
        *,
        network_id: int | None = None,
        min_amount_out: int = 0,
    ) -> DirectSwapResult:
        """Swap ``token_in`` for ``token_out`` through the router on one network."""

        token_in = _checksum(token_in, "tokenIn")
        token_out = _checksum(token_out, "tokenOut")
        recipient = _checksum(user_address, "userAddress")
        if network_id is None:
            network_id = self._config.source_network

        self._connections.ensure_connected()
        decimals, _ = self._tokens.details(network_id, token_in)
        amount_units = to_base_units(str(amount), decimals)
        return self._swapper.swap_exact_tokens(
            network_id,
            token_in,
            token_out,
            amount_units,
            recipient,
            min_amount_out=min_amount_out,
        )

    def preapprove_destination(
        self,
        token: str,
        spenders: list[tuple[str, str]],
        *,
        on_error: OnError = OnError.DEGRADE,
    ) -> list[AllowanceResult]:
        """Approve the bridge executor and router to move ``token`` on the destination."""

        network_id = self._config.destination_network
        decimals, _ = self._tokens.details(network_id, token)
        threshold = to_base_units(DESTINATION_MIN_ALLOWANCE, decimals)
        logger.debug("Stage PREAPPROVE: %s spenders (threshold=%s)", len(spenders), threshold)

        results = self._allowances.ensure_allowances(
            network_id,
            token,
            self._connections.signer_address,
            spenders,
            threshold,
            approval_amount=MAX_UINT256,
            on_error=on_error,
        )
        for result in results:
            if not result.ok:
                logger.error(
                    "Pre-approval of %s failed; continuing, the swap may fail: %s",
                    result.label,
                    result.error,
                )
        return results

    def validate_destination_allowances(
        self,
        token: str,
        spenders: list[tuple[str, str]],
        *,
        on_error: OnError = OnError.DEGRADE,
    ) -> dict[str, int]:
        """Warn about spenders whose destination allowance looks too low."""

        network_id = self._config.destination_network
        owner = self._connections.signer_address
        decimals, _ = self._tokens.details(network_id, token)
        warn_below = to_base_units(DESTINATION_WARN_ALLOWANCE, decimals)
        observed: dict[str, int] = {}

        try:
            for label, spender in spenders:
                current = self._allowances.allowance(network_id, token, owner, spender)
                observed[label] = current
                logger.info("%s allowance: %s", label, format_units(current, decimals))
                if current < warn_below:
                    logger.warning("%s allowance is low or zero; swap may fail", label)
        except Exception as exc:
            if on_error is OnError.PROPAGATE:
                raise
            logger.error("Error validating approvals, continuing: %s", exc)
        return observed

    def check_transaction_status(self, tx_hash: str, address: str) -> TransactionStatus:
        return self._status.get_status(tx_hash, address)

    def claim_message(self, bridge_tx_hash: str) -> ClaimResult:
        self._connections.ensure_connected()
        return self._claims.claim_message(bridge_tx_hash)

    def create_poller(self, interval: float, *, max_polls: int | None = None) -> StatusPoller:
        """Return a poller whose background polls stop when the client disconnects."""

        poller = StatusPoller(self._status, interval=interval, max_polls=max_polls)
        with self._pollers_lock:
            self._pollers.append(poller)
        return poller

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _destination_spenders(self) -> list[tuple[str, str]]:
        network_id = self._config.destination_network
        return [
            ("bridge executor", self._connections.bridge_extension_address(network_id)),
            ("router", self._config.router_address),
        ]


def _checksum(address: str, field: str) -> str:
    try:
        return Web3.to_checksum_address(address)
    except (ValueError, TypeError) as exc:
        raise ValidationError(
            "Invalid address", field=field, value=address, details={"error": str(exc)}
        ) from exc
