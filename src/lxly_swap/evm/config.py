"""Configuration containers for the LxLy swap client."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from dotenv import dotenv_values
from web3 import Web3
from web3.types import ChecksumAddress

from ..constants import (
    CARDONA_NETWORK_ID,
    CHAIN_IDS,
    EXPLORER_URLS,
    NETWORK_NAMES,
    SEPOLIA_NETWORK_ID,
)
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_RECEIPT_TIMEOUT = 120.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_INITIAL_RETRY_DELAY = 2.0
DEFAULT_STATUS_CACHE_TTL = 30.0
DEFAULT_APPROVAL_PROPAGATION_DELAY = 5.0
DEFAULT_SWAP_DEADLINE_SECONDS = 60 * 60
STATUS_API_TESTNET = "https://api-gateway.polygon.technology/api/v3/transactions/testnet"
PROOF_API_TESTNET = "https://api-gateway.polygon.technology/api/v3/proof/testnet"

DEFAULT_FALLBACK_RPCS: dict[int, tuple[str, ...]] = {
    SEPOLIA_NETWORK_ID: (
        "https://rpc.ankr.com/eth_sepolia",
        "https://ethereum-sepolia.publicnode.com",
        "https://sepolia.gateway.tenderly.co",
        "https://eth-sepolia.g.alchemy.com/v2/demo",
    ),
    CARDONA_NETWORK_ID: ("https://cardona-testnet.rpc.caldera.xyz/http",),
}

_EIP1559_DEFAULTS = {SEPOLIA_NETWORK_ID: True, CARDONA_NETWORK_ID: False}


@dataclass(frozen=True)
class ChainEndpoint:
    """Static description of one network the bridge connects."""

    network_id: int
    name: str
    rpc_url: str
    bridge_address: ChecksumAddress
    fallback_rpc_urls: tuple[str, ...] = ()
    bridge_extension_address: ChecksumAddress | None = None
    wrapper_address: ChecksumAddress | None = None
    router_address: ChecksumAddress | None = None
    eip1559_supported: bool = True
    chain_id: int | None = None
    explorer_url: str | None = None

    @property
    def rpc_urls(self) -> tuple[str, ...]:
        """Primary URL followed by fallbacks, blanks and duplicates removed."""

        urls: list[str] = []
        for url in (self.rpc_url, *self.fallback_rpc_urls):
            if url and url not in urls:
                urls.append(url)
        return tuple(urls)

    def explorer_link(self, tx_hash: str) -> str | None:
        return f"{self.explorer_url}{tx_hash}" if self.explorer_url else None


@dataclass(frozen=True)
class SwapClientConfig:
    """Aggregated configuration used to construct the swap client."""

    private_key: str
    endpoints: Mapping[int, ChainEndpoint]
    router_address: ChecksumAddress
    status_api_key: str
    status_api_url: str = STATUS_API_TESTNET
    proof_api_url: str = PROOF_API_TESTNET
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    wait_for_receipt: bool = True
    max_retries: int = DEFAULT_MAX_RETRIES
    initial_retry_delay: float = DEFAULT_INITIAL_RETRY_DELAY
    status_cache_ttl: float = DEFAULT_STATUS_CACHE_TTL
    approval_propagation_delay: float = DEFAULT_APPROVAL_PROPAGATION_DELAY
    swap_deadline_seconds: int = DEFAULT_SWAP_DEADLINE_SECONDS
    source_network: int = SEPOLIA_NETWORK_ID
    destination_network: int = CARDONA_NETWORK_ID
    amount_override: str | None = None

    def endpoint(self, network_id: int) -> ChainEndpoint:
        try:
            return self.endpoints[network_id]
        except KeyError:
            raise ConfigurationError(
                f"Network {network_id} is not configured",
                setting=f"NETWORK_{network_id}_RPC",
                details={"configured": sorted(self.endpoints)},
            ) from None

    def swap_router(self, network_id: int) -> ChecksumAddress:
        """Router used for same-chain swaps on ``network_id``.

        The destination network falls back to ``ROUTER_ADDRESS``.
        """
        router = self.endpoint(network_id).router_address
        if router is None and network_id == self.destination_network:
            router = self.router_address
        if router is None:
            raise ConfigurationError(
                f"No swap router configured for network {network_id}",
                setting=f"NETWORK_{network_id}_ROUTER",
            )
        return router


def load_config(
    environ: Mapping[str, str] | None = None,
    *,
    dotenv_path: str | None = None,
) -> SwapClientConfig:
    """Build a :class:`SwapClientConfig` from environment variables.

    Values from ``.env.local``/``.env`` (or ``dotenv_path``) are used as
    defaults underneath the process environment. Every missing required
    variable is reported in a single :class:`ConfigurationError`.
    """

    env = _collect_environment(environ, dotenv_path)

    required = [
        "USER1_PRIVATE_KEY",
        "NETWORK_0_RPC",
        "NETWORK_1_RPC",
        "NETWORK_0_BRIDGE",
        "NETWORK_1_BRIDGE",
        "NETWORK_0_BRIDGE_EXTENSION",
        "NETWORK_1_BRIDGE_EXTENSION",
        "ROUTER_ADDRESS",
        "POLYGON_API_KEY",
    ]
    missing = [name for name in required if not env.get(name)]
    if missing:
        raise ConfigurationError(
            f"Missing required configuration: {', '.join(missing)}",
            setting=missing[0],
            details={"missing": missing},
        )

    endpoints = {
        network_id: _load_endpoint(env, network_id)
        for network_id in (SEPOLIA_NETWORK_ID, CARDONA_NETWORK_ID)
    }

    amount_override = env.get("BRIDGE_AMOUNT_OVERRIDE") or None
    if amount_override:
        logger.warning(
            "BRIDGE_AMOUNT_OVERRIDE is set; every swap will bridge %s instead of the requested amount",
            amount_override,
        )

    return SwapClientConfig(
        private_key=env["USER1_PRIVATE_KEY"],
        endpoints=endpoints,
        router_address=_checksum(env["ROUTER_ADDRESS"], "ROUTER_ADDRESS"),
        status_api_key=env["POLYGON_API_KEY"],
        status_api_url=(env.get("STATUS_API_URL") or STATUS_API_TESTNET).rstrip("/"),
        proof_api_url=(env.get("PROOF_API_URL") or PROOF_API_TESTNET).rstrip("/"),
        request_timeout=_float(env, "REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        receipt_timeout=_float(env, "RECEIPT_TIMEOUT", DEFAULT_RECEIPT_TIMEOUT),
        max_retries=int(_float(env, "RPC_MAX_RETRIES", DEFAULT_MAX_RETRIES)),
        initial_retry_delay=_float(env, "RPC_INITIAL_RETRY_DELAY", DEFAULT_INITIAL_RETRY_DELAY),
        status_cache_ttl=_float(env, "STATUS_CACHE_TTL", DEFAULT_STATUS_CACHE_TTL),
        approval_propagation_delay=_float(
            env, "APPROVAL_PROPAGATION_DELAY", DEFAULT_APPROVAL_PROPAGATION_DELAY
        ),
        swap_deadline_seconds=int(
            _float(env, "SWAP_DEADLINE_SECONDS", DEFAULT_SWAP_DEADLINE_SECONDS)
        ),
        amount_override=amount_override,
    )


def _collect_environment(
    environ: Mapping[str, str] | None, dotenv_path: str | None
) -> dict[str, str]:
    if environ is not None:
        return {key: value for key, value in environ.items() if value is not None}

    merged: dict[str, str] = {}
    paths = [dotenv_path] if dotenv_path else [".env", ".env.local"]
    for path in paths:
        if os.path.exists(path):
            logger.debug("Loading configuration defaults from %s", path)
            merged.update({k: v for k, v in dotenv_values(path).items() if v is not None})
    merged.update(os.environ)
    return merged


def _load_endpoint(env: Mapping[str, str], network_id: int) -> ChainEndpoint:
    prefix = f"NETWORK_{network_id}"
    raw_fallbacks = env.get(f"{prefix}_FALLBACK_RPCS")
    if raw_fallbacks is None:
        fallbacks = DEFAULT_FALLBACK_RPCS.get(network_id, ())
    else:
        fallbacks = tuple(url.strip() for url in raw_fallbacks.split(",") if url.strip())

    wrapper = env.get(f"{prefix}_WRAPPER")
    router = env.get(f"{prefix}_ROUTER")
    eip1559 = env.get(f"{prefix}_EIP1559")

    return ChainEndpoint(
        network_id=network_id,
        name=NETWORK_NAMES.get(network_id, f"network-{network_id}"),
        rpc_url=env[f"{prefix}_RPC"],
        fallback_rpc_urls=fallbacks,
        bridge_address=_checksum(env[f"{prefix}_BRIDGE"], f"{prefix}_BRIDGE"),
        bridge_extension_address=_checksum(
            env[f"{prefix}_BRIDGE_EXTENSION"], f"{prefix}_BRIDGE_EXTENSION"
        ),
        wrapper_address=_checksum(wrapper, f"{prefix}_WRAPPER") if wrapper else None,
        router_address=_checksum(router, f"{prefix}_ROUTER") if router else None,
        eip1559_supported=(
            eip1559.strip().lower() in {"1", "true", "yes"}
            if eip1559
            else _EIP1559_DEFAULTS.get(network_id, True)
        ),
        chain_id=CHAIN_IDS.get(network_id),
        explorer_url=EXPLORER_URLS.get(network_id),
    )


def _checksum(value: str, setting: str) -> ChecksumAddress:
    try:
        return Web3.to_checksum_address(value)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(
            f"{setting} is not a valid address",
            setting=setting,
            details={"value": value, "error": str(exc)},
        ) from exc


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return float(default)
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{name} must be numeric", setting=name, details={"value": raw}
        ) from exc
