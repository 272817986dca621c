"""Thin wrappers over the LxLy bridge contracts and proof API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from hexbytes import HexBytes
from web3 import Web3
from web3.logs import DISCARD

from ..constants import BRIDGE_GAS_LIMIT
from ..exceptions import ErrorKind, NetworkError, ValidationError
from ..types import ClaimPayload, SubmittedTransaction
from .connections import Web3Connections
from .retry import ResilientCaller
from .transactions import NonceSafeSubmitter

logger = logging.getLogger(__name__)

_ZERO_HASH = bytes(32)
_PROOF_DEPTH = 32
_MAINNET_FLAG = 2**64


def compute_global_index(deposit_count: int, source_network: int) -> int:
    """Global index of a bridge leaf as expected by ``claimAsset``/``claimMessage``."""
    if source_network == 0:
        return deposit_count + _MAINNET_FLAG
    return deposit_count + (source_network - 1) * 2**32


class BridgeExtension:
    """Submit ``bridgeAndCall`` through the source network's bridge extension."""

    def __init__(self, connections: Web3Connections, submitter: NonceSafeSubmitter) -> None:
        self._connections = connections
        self._submitter = submitter

    def bridge_and_call(
        self,
        network_id: int,
        token: str,
        amount: int,
        destination_network: int,
        call_address: str,
        fallback_address: str,
        calldata: bytes,
        force_update_global_exit_root: bool,
        permit_data: bytes = b"",
        *,
        gas_limit: int = BRIDGE_GAS_LIMIT,
    ) -> SubmittedTransaction:
        contract = self._connections.bridge_extension_contract(network_id)
        token_address = Web3.to_checksum_address(token)
        call_target = Web3.to_checksum_address(call_address)
        fallback = Web3.to_checksum_address(fallback_address)
        value = amount if int(token_address, 16) == 0 else 0

        logger.debug(
            "Stage BRIDGE: bridgeAndCall(token=%s, amount=%s, dest=%s, call=%s, fallback=%s, "
            "calldata=%s bytes, forceUpdate=%s)",
            token_address,
            amount,
            destination_network,
            call_target,
            fallback,
            len(calldata),
            force_update_global_exit_root,
        )
        return self._submitter.submit(
            network_id,
            lambda: contract.functions.bridgeAndCall(
                token_address,
                amount,
                destination_network,
                call_target,
                fallback,
                calldata,
                force_update_global_exit_root,
                permit_data,
            ),
            action="bridge and call",
            gas_limit=gas_limit,
            value=value,
            context={
                "token": token_address,
                "amount": amount,
                "destination_network": destination_network,
            },
        )


class BridgeUtil:
    """Assemble claim payloads from a source transaction and the proof API."""

    def __init__(
        self,
        connections: Web3Connections,
        caller: ResilientCaller,
        session: requests.Session,
        *,
        proof_api_url: str,
        request_timeout: float,
    ) -> None:
        self._connections = connections
        self._caller = caller
        self._session = session
        self._proof_api_url = proof_api_url.rstrip("/")
        self._request_timeout = request_timeout

    def build_payload_for_claim(
        self, tx_hash: str, source_network: int, bridge_index: int = 0
    ) -> ClaimPayload:
        event_args = self._bridge_event(tx_hash, source_network, bridge_index)
        deposit_count = int(event_args["depositCount"])
        proof = self._fetch_merkle_proof(source_network, deposit_count)

        payload = ClaimPayload(
            smt_proof=_proof_list(proof.get("merkle_proof")),
            smt_proof_rollup=_proof_list(proof.get("rollup_merkle_proof")),
            global_index=compute_global_index(deposit_count, source_network),
            mainnet_exit_root=_bytes32(proof.get("main_exit_root")),
            rollup_exit_root=_bytes32(proof.get("rollup_exit_root")),
            origin_network=int(event_args["originNetwork"]),
            origin_token_address=Web3.to_checksum_address(event_args["originAddress"]),
            destination_network=int(event_args["destinationNetwork"]),
            destination_address=Web3.to_checksum_address(event_args["destinationAddress"]),
            amount=int(event_args["amount"]),
            metadata=bytes(event_args["metadata"]),
            deposit_count=deposit_count,
        )
        logger.debug(
            "Built claim payload for %s (index=%s, depositCount=%s, globalIndex=%s, "
            "destination=%s:%s, metadata=%s bytes)",
            tx_hash,
            bridge_index,
            deposit_count,
            payload.global_index,
            payload.destination_network,
            payload.destination_address,
            len(payload.metadata),
        )
        return payload

    def _bridge_event(self, tx_hash: str, source_network: int, bridge_index: int) -> Mapping[str, Any]:
        web3 = self._connections.web3(source_network)
        receipt = self._caller.call(
            web3.eth.get_transaction_receipt, tx_hash, action="bridge receipt lookup"
        )
        bridge = self._connections.bridge_contract(source_network)
        events = bridge.events.BridgeEvent().process_receipt(receipt, errors=DISCARD)

        if len(events) <= bridge_index:
            raise ValidationError(
                f"Bridge event {bridge_index} not found in transaction {tx_hash}",
                field="bridge_index",
                value=bridge_index,
                details={"events": len(events)},
                kind=ErrorKind.NOT_FOUND,
            )
        return events[bridge_index]["args"]

    def _fetch_merkle_proof(self, network_id: int, deposit_count: int) -> Mapping[str, Any]:
        url = f"{self._proof_api_url}/merkle-proof"
        params = {"networkId": network_id, "depositCount": deposit_count}
        logger.debug("Fetching merkle proof from %s (%s)", url, params)

        def _request() -> Any:
            response = self._session.get(url, params=params, timeout=self._request_timeout)
            response.raise_for_status()
            return response.json()

        try:
            body = self._caller.call(_request, action="merkle proof lookup")
        except requests.RequestException as exc:
            status = getattr(getattr(exc, "response", None), "status_code", None)
            raise NetworkError(
                f"Failed to fetch merkle proof: {exc}",
                endpoint=url,
                status_code=status,
                details={"params": params},
                kind=ErrorKind.NOT_FOUND if status == 404 else ErrorKind.FATAL,
            ) from exc

        proof = body.get("proof") if isinstance(body, Mapping) else None
        if not isinstance(proof, Mapping):
            raise ValidationError(
                "Unexpected merkle proof response format", field="proof", value=body
            )
        return proof


class Bridge:
    """Submit claims against a network's bridge contract."""

    def __init__(self, connections: Web3Connections, submitter: NonceSafeSubmitter) -> None:
        self._connections = connections
        self._submitter = submitter

    def claim_message(self, network_id: int, payload: ClaimPayload) -> SubmittedTransaction:
        contract = self._connections.bridge_contract(network_id)
        return self._submitter.submit(
            network_id,
            lambda: contract.functions.claimMessage(*payload.as_claim_args()),
            action="claim message",
            context={
                "global_index": payload.global_index,
                "deposit_count": payload.deposit_count,
            },
        )


def _proof_list(values: Any) -> list[bytes]:
    if not values:
        return [_ZERO_HASH] * _PROOF_DEPTH
    if not isinstance(values, list | tuple):
        raise ValidationError("Merkle proof must be a list", field="proof", value=values)
    return [_bytes32(value) for value in values]


def _bytes32(value: Any) -> bytes:
    if value is None:
        return _ZERO_HASH
    raw = bytes(HexBytes(value))
    if len(raw) != 32:
        raise ValidationError(
            "Expected a 32-byte hash", field="proof", value=value, details={"length": len(raw)}
        )
    return raw
