"""Nonce-safe transaction submission for the LxLy swap client."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any

from web3.exceptions import TimeExhausted

from ..exceptions import (
    ErrorKind,
    NonceConflictError,
    TransactionError,
    classify_error,
)
from ..types import SubmittedTransaction, TransactionAttempt
from ..utils import extract_next_nonce, serialise_receipt, to_hex
from .connections import Web3Connections
from .retry import ResilientCaller

logger = logging.getLogger(__name__)

TxBuilder = Callable[[], Any]


class NonceSafeSubmitter:
    """Serialise transactions per signer and network with explicit nonces.

    The per-pair lock is held from the nonce lookup until the receipt is
    available, so at most one transaction per signer and network is in flight.
    Rate-limit retries happen inside the :class:`ResilientCaller`; this class
    only handles stale nonces, and retries those exactly once.
    """

    def __init__(
        self,
        connections: Web3Connections,
        caller: ResilientCaller,
        *,
        wait_for_receipt: bool,
        receipt_timeout: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._connections = connections
        self._caller = caller
        self._wait_for_receipt = wait_for_receipt
        self._receipt_timeout = receipt_timeout
        self._clock = clock
        self._locks: dict[tuple[str, int], threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._next_nonces: dict[tuple[str, int], int] = {}

    def lock_for(self, address: str, network_id: int) -> threading.Lock:
        key = (address.lower(), network_id)
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def latest_nonce(self, network_id: int, address: str | None = None) -> int:
        """Return the confirmed transaction count for the signer on ``network_id``."""

        web3 = self._connections.web3(network_id)
        owner = address or self._connections.signer_address
        return int(
            self._caller.call(
                web3.eth.get_transaction_count, owner, "latest", action="nonce lookup"
            )
        )

    def submit(
        self,
        network_id: int,
        build: TxBuilder,
        *,
        action: str,
        gas_limit: int | None = None,
        value: int = 0,
        context: Mapping[str, Any] | None = None,
    ) -> SubmittedTransaction:
        """Build, sign and broadcast a contract call with an explicit nonce.

        ``build`` is invoked once per attempt and must return a contract
        function exposing ``transact``.
        """

        self._connections.ensure_connected()
        address = self._connections.signer_address
        key = (address.lower(), network_id)
        attempts: list[TransactionAttempt] = []

        with self.lock_for(address, network_id):
            base_params = self._base_params(network_id, address)
            nonce = self._select_nonce(network_id, address)
            logger.info("Using nonce %s for %s on network %s", nonce, action, network_id)

            try:
                tx_hash = self._broadcast(build, base_params, nonce, gas_limit, value, attempts)
            except Exception as exc:
                kind = classify_error(exc)
                if kind is not ErrorKind.NONCE_TOO_LOW:
                    logger.error("Failed to submit %s with nonce %s: %s", action, nonce, exc)
                    raise TransactionError(
                        f"Failed to submit {action}: {exc}",
                        action=action,
                        nonce=nonce,
                        tx_hash=attempts[-1].tx_hash if attempts else None,
                        reason=str(exc),
                        details={"network_id": network_id, **dict(context or {})},
                        kind=kind,
                    ) from exc

                nonce = self._recover_nonce(network_id, address, exc)
                logger.info("Retrying %s with nonce %s", action, nonce)
                try:
                    tx_hash = self._broadcast(build, base_params, nonce, gas_limit, value, attempts)
                except Exception as retry_exc:
                    retry_kind = classify_error(retry_exc)
                    error_cls = (
                        NonceConflictError
                        if retry_kind is ErrorKind.NONCE_TOO_LOW
                        else TransactionError
                    )
                    logger.error(
                        "Retry of %s with nonce %s also failed: %s", action, nonce, retry_exc
                    )
                    raise error_cls(
                        f"Failed to submit {action}, even with retry using nonce {nonce}: "
                        f"{retry_exc}",
                        action=action,
                        nonce=nonce,
                        tx_hash=attempts[-1].tx_hash if attempts else None,
                        reason=str(retry_exc),
                        details={
                            "network_id": network_id,
                            "first_error": str(exc),
                            "attempted_nonces": [attempt.nonce for attempt in attempts],
                            **dict(context or {}),
                        },
                        kind=retry_kind,
                    ) from retry_exc

            self._next_nonces[key] = nonce + 1
            logger.info("Transaction sent for action=%s hash=%s nonce=%s", action, tx_hash, nonce)
            receipt = self._await_receipt(network_id, tx_hash, nonce, action)

        return SubmittedTransaction(
            tx_hash=tx_hash,
            nonce=nonce,
            action=action,
            attempts=attempts,
            receipt=receipt,
            context=dict(context or {}),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _select_nonce(self, network_id: int, address: str) -> int:
        chain_nonce = self.latest_nonce(network_id, address)
        tracked = self._next_nonces.get((address.lower(), network_id))
        if tracked is not None and tracked > chain_nonce:
            logger.debug(
                "Chain nonce %s behind tracked nonce %s on network %s",
                chain_nonce,
                tracked,
                network_id,
            )
            return tracked
        return chain_nonce

    def _recover_nonce(self, network_id: int, address: str, exc: BaseException) -> int:
        suggested = extract_next_nonce(str(exc))
        if suggested is not None:
            logger.info("Extracted correct nonce from error: %s", suggested)
            return suggested

        refreshed = self.latest_nonce(network_id, address)
        logger.info("Re-fetched latest nonce: %s", refreshed)
        return refreshed

    def _base_params(self, network_id: int, address: str) -> dict[str, Any]:
        endpoint = self._connections.endpoint(network_id)
        params: dict[str, Any] = {"from": address}
        if endpoint.chain_id is not None:
            params["chainId"] = endpoint.chain_id
        if not endpoint.eip1559_supported:
            web3 = self._connections.web3(network_id)
            params["gasPrice"] = int(
                self._caller.call(lambda: web3.eth.gas_price, action="gas price")
            )
            logger.debug("Legacy gas price %s on network %s", params["gasPrice"], network_id)
        return params

    def _broadcast(
        self,
        build: TxBuilder,
        base_params: Mapping[str, Any],
        nonce: int,
        gas_limit: int | None,
        value: int,
        attempts: list[TransactionAttempt],
    ) -> str:
        params: dict[str, Any] = {**base_params, "nonce": nonce}
        if gas_limit is not None:
            params["gas"] = gas_limit
        if value:
            params["value"] = value

        attempt = TransactionAttempt(nonce=nonce, gas_limit=gas_limit, submitted_at=self._clock())
        attempts.append(attempt)

        function = build()
        raw_hash = self._caller.call(function.transact, params, action="transaction broadcast")
        attempt.tx_hash = to_hex(raw_hash)
        return attempt.tx_hash

    def _await_receipt(
        self, network_id: int, tx_hash: str, nonce: int, action: str
    ) -> dict[str, Any] | None:
        if not self._wait_for_receipt:
            return None

        web3 = self._connections.web3(network_id)
        try:
            receipt = self._caller.call(
                web3.eth.wait_for_transaction_receipt,
                tx_hash,
                timeout=self._receipt_timeout,
                action="receipt wait",
            )
        except TimeExhausted as exc:
            raise TransactionError(
                f"Timed out waiting for {action} confirmation",
                action=action,
                nonce=nonce,
                tx_hash=tx_hash,
                reason=str(exc),
            ) from exc

        serialised = serialise_receipt(receipt) or {}
        logger.info(
            "Transaction confirmed for action=%s hash=%s block=%s",
            action,
            tx_hash,
            serialised.get("blockNumber"),
        )
        if serialised.get("status") == 0:
            raise TransactionError(
                f"Transaction for {action} reverted",
                action=action,
                nonce=nonce,
                tx_hash=tx_hash,
                reason="execution reverted",
                details={"receipt": serialised},
                kind=ErrorKind.REVERTED,
            )
        return serialised
