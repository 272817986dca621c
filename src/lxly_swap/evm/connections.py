"""Connection helpers for the source and destination chains."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, cast

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import HTTPProvider, Web3
from web3.contract import Contract
from web3.middleware import SignAndSendRawMiddlewareBuilder
from web3.types import ChecksumAddress

from ..abi import BridgeExtension_abi, ERC20_abi, PolygonZkEVMBridgeV2_abi
from ..exceptions import NetworkError, ValidationError
from .config import ChainEndpoint, SwapClientConfig

logger = logging.getLogger(__name__)


class Web3Connections:
    """Manage Web3 providers, account middleware, and contract handles per network."""

    def __init__(self, config: SwapClientConfig):
        self.config = config
        self._web3: dict[int, Web3] = {}
        self._account: LocalAccount | None = None
        self._connected = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Initialise providers and signing middleware for every configured network."""

        try:
            signer = cast(LocalAccount, Account.from_key(self.config.private_key))  # type: ignore[arg-type]
        except Exception as exc:  # pragma: no cover
            raise ValidationError(
                "Failed to derive signer account from provided private key",
                field="private_key",
                details={"error": str(exc)},
            ) from exc

        self._account = signer

        for network_id, endpoint in self.config.endpoints.items():
            url, web3 = self._build_web3_provider(endpoint)
            self._apply_account_middleware(web3, signer)
            self._web3[network_id] = web3
            logger.info(
                "Connected to %s RPC at %s (chain id %s, EIP-1559 %s, wrapper %s)",
                endpoint.name,
                url,
                endpoint.chain_id,
                endpoint.eip1559_supported,
                endpoint.wrapper_address or "none",
            )

        self._connected = True

    def disconnect(self) -> None:
        self._web3.clear()
        self._account = None
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected and self._account is not None and bool(self._web3)

    def ensure_connected(self) -> None:
        if not self.is_connected():
            raise NetworkError("EVM connector is not connected; call connect() first")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def account(self) -> LocalAccount:
        if self._account is None:
            raise NetworkError("Signer account is not initialised; call connect() first")
        return self._account

    @property
    def signer_address(self) -> ChecksumAddress:
        return cast(ChecksumAddress, self.account.address)

    def endpoint(self, network_id: int) -> ChainEndpoint:
        return self.config.endpoint(network_id)

    def web3(self, network_id: int) -> Web3:
        web3 = self._web3.get(network_id)
        if web3 is None:
            endpoint = self.config.endpoint(network_id)
            raise NetworkError(f"{endpoint.name} RPC provider not connected", endpoint=endpoint.rpc_url)
        return web3

    # ------------------------------------------------------------------
    # Contract handles
    # ------------------------------------------------------------------
    def contract(self, network_id: int, address: str, abi: Sequence[dict[str, Any]]) -> Contract:
        checksum = self._checksum(address, field="address")
        return self.web3(network_id).eth.contract(address=checksum, abi=abi)

    def erc20(self, network_id: int, token: str) -> Contract:
        return self.contract(network_id, token, ERC20_abi)

    def bridge_contract(self, network_id: int) -> Contract:
        endpoint = self.config.endpoint(network_id)
        return self.contract(network_id, endpoint.bridge_address, PolygonZkEVMBridgeV2_abi)

    def bridge_extension_address(self, network_id: int) -> ChecksumAddress:
        endpoint = self.config.endpoint(network_id)
        if not endpoint.bridge_extension_address:
            raise ValidationError(
                f"Bridge extension address not configured for {endpoint.name}",
                field="bridge_extension_address",
                value=network_id,
            )
        return endpoint.bridge_extension_address

    def bridge_extension_contract(self, network_id: int) -> Contract:
        return self.contract(
            network_id, self.bridge_extension_address(network_id), BridgeExtension_abi
        )

    # ------------------------------------------------------------------
    # Internal wiring
    # ------------------------------------------------------------------
    def _build_web3_provider(self, endpoint: ChainEndpoint) -> tuple[str, Web3]:
        urls = endpoint.rpc_urls
        if not urls:
            raise NetworkError(f"No valid RPC URLs provided for {endpoint.name}")

        logger.debug("Creating %s provider with %s candidate RPCs", endpoint.name, len(urls))
        failures: dict[str, str] = {}
        for url in urls:
            provider = HTTPProvider(url, request_kwargs={"timeout": self.config.request_timeout})
            web3 = Web3(provider)
            try:
                if not web3.is_connected():
                    failures[url] = "not connected"
                else:
                    chain_id = web3.eth.chain_id if endpoint.chain_id is not None else None
                    if chain_id == endpoint.chain_id:
                        return url, web3
                    failures[url] = f"chain id {chain_id}, expected {endpoint.chain_id}"
            except Exception as exc:  # pragma: no cover - network failure
                failures[url] = str(exc)
            logger.warning("RPC %s for %s unavailable, trying next fallback", url, endpoint.name)

        raise NetworkError(
            f"Unable to connect to {endpoint.name} RPC",
            endpoint=endpoint.rpc_url,
            details={"failures": failures},
        )

    def _apply_account_middleware(self, web3: Web3, account: LocalAccount) -> None:
        web3.middleware_onion.inject(SignAndSendRawMiddlewareBuilder.build(account), layer=0)  # type: ignore[arg-type]
        web3.eth.default_account = account.address

    @staticmethod
    def _checksum(address: str, *, field: str) -> ChecksumAddress:
        try:
            return Web3.to_checksum_address(address)
        except (ValueError, TypeError) as exc:
            raise ValidationError(
                "Invalid address", field=field, value=address, details={"error": str(exc)}
            ) from exc
