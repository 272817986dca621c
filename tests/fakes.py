"""In-memory fakes for chains, contracts and HTTP sessions used across the tests."""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, cast

import requests
from hexbytes import HexBytes
from web3.exceptions import TimeExhausted, TransactionNotFound
from web3.types import ChecksumAddress

from lxly_swap.evm.config import ChainEndpoint, SwapClientConfig
from lxly_swap.exceptions import ValidationError

SIGNER = cast(ChecksumAddress, "0x1111111111111111111111111111111111111111")
USER = cast(ChecksumAddress, "0x2222222222222222222222222222222222222222")
ROUTER = cast(ChecksumAddress, "0x4444444444444444444444444444444444444444")
BRIDGE_0 = cast(ChecksumAddress, "0x5555555555555555555555555555555555555555")
BRIDGE_1 = cast(ChecksumAddress, "0x6666666666666666666666666666666666666666")
EXTENSION_0 = cast(ChecksumAddress, "0x7777777777777777777777777777777777777777")
EXTENSION_1 = cast(ChecksumAddress, "0x8888888888888888888888888888888888888888")
SWAP_ROUTER_0 = cast(ChecksumAddress, "0x4545454545454545454545454545454545454545")
BRIDGE_TX = "0x" + "ab" * 32


@dataclass
class Broadcast:
    network_id: int
    address: str
    name: str
    args: tuple[Any, ...]
    params: dict[str, Any]
    tx_hash: str


@dataclass
class FakeChain:
    """In-memory stand-in for two EVM networks and their token contracts."""

    nonces: dict[int, int] = field(default_factory=lambda: defaultdict(int))
    balances: dict[tuple[int, str, str], int] = field(default_factory=dict)
    allowances: dict[tuple[int, str, str, str], int] = field(default_factory=dict)
    token_meta: dict[str, tuple[str, int]] = field(default_factory=dict)
    broadcasts: list[Broadcast] = field(default_factory=list)
    transact_errors: list[Any] = field(default_factory=list)
    reads: list[tuple[int, str, tuple[Any, ...]]] = field(default_factory=list)
    read_hook: Callable[[int, str, tuple[Any, ...]], None] | None = None
    receipts: dict[str, dict[str, Any]] = field(default_factory=dict)
    source_receipts: dict[str, dict[str, Any]] = field(default_factory=dict)
    bridge_events: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    receipt_status: int = 1
    auto_confirm: bool = True
    apply_approvals: bool = True
    receipt_timeout: bool = False
    nonce_delay: float = 0.0
    block_number: int = 100
    gas_price: int = 1_000_000_000
    lock: threading.Lock = field(default_factory=threading.Lock)

    def set_balance(self, network_id: int, token: str, owner: str, amount: int) -> None:
        self.balances[(network_id, token.lower(), owner.lower())] = amount

    def set_allowance(
        self, network_id: int, token: str, owner: str, spender: str, amount: int
    ) -> None:
        self.allowances[(network_id, token.lower(), owner.lower(), spender.lower())] = amount

    def allowance_of(self, network_id: int, token: str, owner: str, spender: str) -> int:
        return self.allowances.get(
            (network_id, token.lower(), owner.lower(), spender.lower()), 0
        )

    def names(self) -> list[tuple[int, str]]:
        return [(entry.network_id, entry.name) for entry in self.broadcasts]

    def read(self, network_id: int, address: str, name: str, args: tuple[Any, ...]) -> Any:
        self.reads.append((network_id, name, args))
        if self.read_hook is not None:
            self.read_hook(network_id, name, args)
        token = address.lower()
        if name == "symbol":
            return self.token_meta.get(token, ("TKN", 18))[0]
        if name == "decimals":
            return self.token_meta.get(token, ("TKN", 18))[1]
        if name == "balanceOf":
            return self.balances.get((network_id, token, args[0].lower()), 0)
        if name == "allowance":
            return self.allowance_of(network_id, token, args[0], args[1])
        raise AssertionError(f"unexpected read {name}")

    def transact(
        self,
        network_id: int,
        address: str,
        name: str,
        args: tuple[Any, ...],
        params: dict[str, Any],
    ) -> HexBytes:
        with self.lock:
            if self.transact_errors:
                error = self.transact_errors.pop(0)
                if isinstance(error, BaseException):
                    raise error
                error()

            nonce = params["nonce"]
            if nonce < self.nonces[network_id]:
                raise ValueError(f"nonce too low: next nonce {self.nonces[network_id]}")

            tx_hash = f"0x{len(self.broadcasts) + 1:064x}"
            self.broadcasts.append(
                Broadcast(network_id, address, name, args, dict(params), tx_hash)
            )
            if self.auto_confirm:
                self.nonces[network_id] = nonce + 1
            if name == "approve" and self.apply_approvals:
                self.set_allowance(network_id, address, params["from"], args[0], args[1])

            self.block_number += 1
            self.receipts[tx_hash] = {
                "blockNumber": self.block_number,
                "transactionHash": HexBytes(tx_hash),
                "status": self.receipt_status,
            }
            return HexBytes(tx_hash)


class FakeFunction:
    def __init__(
        self, chain: FakeChain, network_id: int, address: str, name: str, args: tuple[Any, ...]
    ) -> None:
        self._chain = chain
        self._network_id = network_id
        self._address = address
        self.name = name
        self.args = args

    def call(self) -> Any:
        return self._chain.read(self._network_id, self._address, self.name, self.args)

    def transact(self, params: dict[str, Any]) -> HexBytes:
        return self._chain.transact(self._network_id, self._address, self.name, self.args, params)


class FakeFunctions:
    def __init__(self, chain: FakeChain, network_id: int, address: str) -> None:
        self._chain = chain
        self._network_id = network_id
        self._address = address

    def __getattr__(self, name: str) -> Callable[..., FakeFunction]:
        def _bind(*args: Any) -> FakeFunction:
            return FakeFunction(self._chain, self._network_id, self._address, name, args)

        return _bind


class FakeBridgeEvent:
    def __init__(self, chain: FakeChain) -> None:
        self._chain = chain

    def process_receipt(self, receipt: dict[str, Any], errors: Any = None) -> list[dict[str, Any]]:
        return list(self._chain.bridge_events.get(str(receipt["transactionHash"]), []))


class FakeContract:
    def __init__(self, chain: FakeChain, network_id: int, address: str) -> None:
        self.address = address
        self.functions = FakeFunctions(chain, network_id, address)
        self.events = SimpleNamespace(BridgeEvent=lambda: FakeBridgeEvent(chain))


class FakeEth:
    def __init__(self, chain: FakeChain, network_id: int) -> None:
        self._chain = chain
        self._network_id = network_id

    @property
    def gas_price(self) -> int:
        return self._chain.gas_price

    def get_transaction_count(self, address: str, block_identifier: str = "latest") -> int:
        nonce = self._chain.nonces[self._network_id]
        if self._chain.nonce_delay:
            time.sleep(self._chain.nonce_delay)
        return nonce

    def wait_for_transaction_receipt(self, tx_hash: str, timeout: float = 120) -> dict[str, Any]:
        if self._chain.receipt_timeout:
            raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
        return self._chain.receipts[tx_hash]

    def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any]:
        receipt = self._chain.source_receipts.get(tx_hash)
        if receipt is None:
            raise TransactionNotFound(f"Transaction with hash: '{tx_hash}' not found.")
        return receipt


class FakeConnections:
    """Duck-typed replacement for :class:`Web3Connections` backed by a FakeChain."""

    def __init__(self, chain: FakeChain, config: SwapClientConfig) -> None:
        self.chain = chain
        self.config = config
        self.connected = True
        self.disconnect_calls = 0

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False
        self.disconnect_calls += 1

    def is_connected(self) -> bool:
        return self.connected

    def ensure_connected(self) -> None:
        if not self.connected:
            raise AssertionError("not connected")

    @property
    def signer_address(self) -> ChecksumAddress:
        return SIGNER

    def endpoint(self, network_id: int) -> ChainEndpoint:
        return self.config.endpoint(network_id)

    def web3(self, network_id: int) -> SimpleNamespace:
        return SimpleNamespace(eth=FakeEth(self.chain, network_id))

    def contract(self, network_id: int, address: str, abi: Any = None) -> FakeContract:
        return FakeContract(self.chain, network_id, address)

    def erc20(self, network_id: int, token: str) -> FakeContract:
        return FakeContract(self.chain, network_id, token)

    def bridge_contract(self, network_id: int) -> FakeContract:
        return FakeContract(self.chain, network_id, self.config.endpoint(network_id).bridge_address)

    def bridge_extension_address(self, network_id: int) -> ChecksumAddress:
        address = self.config.endpoint(network_id).bridge_extension_address
        if address is None:
            raise ValidationError(
                "Bridge extension address not configured",
                field="bridge_extension_address",
                value=network_id,
            )
        return address

    def bridge_extension_contract(self, network_id: int) -> FakeContract:
        return FakeContract(self.chain, network_id, self.bridge_extension_address(network_id))


class DummyResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)  # type: ignore[arg-type]

    def json(self) -> Any:
        return self._payload


class DummySession:
    """Replays queued responses; the last one repeats once the queue is drained."""

    def __init__(self, responses: list[Any] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def get(self, url: str, params=None, headers=None, timeout=None):  # type: ignore[no-untyped-def]
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        if not self.responses:
            raise AssertionError(f"unexpected request to {url}")
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def status_payload(*records: dict[str, Any], success: bool = True) -> DummyResponse:
    return DummyResponse({"success": success, "result": list(records)})


def status_record(tx_hash: str, status: str, **extra: Any) -> dict[str, Any]:
    record = {
        "transactionHash": tx_hash,
        "status": status,
        "sourceNetwork": 0,
        "destinationNetwork": 1,
        "timestamp": "2024-05-01T10:00:00Z",
        "amounts": ["68625000000000000"],
        "originTokenAddress": "0x794203e2982EDA39b4cfC3e1F802D6ab635FcDcB",
        "claimTransactionHash": None,
        "claimTransactionTimestamp": None,
    }
    record.update(extra)
    return record


def make_config(**overrides: Any) -> SwapClientConfig:
    endpoints = {
        0: ChainEndpoint(
            network_id=0,
            name="Sepolia",
            rpc_url="https://sepolia.invalid",
            bridge_address=BRIDGE_0,
            bridge_extension_address=EXTENSION_0,
            router_address=SWAP_ROUTER_0,
            chain_id=11155111,
            explorer_url="https://sepolia.etherscan.io/tx/",
        ),
        1: ChainEndpoint(
            network_id=1,
            name="Cardona",
            rpc_url="https://cardona.invalid",
            bridge_address=BRIDGE_1,
            bridge_extension_address=EXTENSION_1,
            eip1559_supported=False,
            chain_id=2442,
        ),
    }
    values: dict[str, Any] = {
        "private_key": "0x" + "11" * 32,
        "endpoints": endpoints,
        "router_address": ROUTER,
        "status_api_key": "test-key",
        "status_api_url": "https://status.invalid/transactions",
        "proof_api_url": "https://proof.invalid/proof",
        "request_timeout": 1.0,
        "receipt_timeout": 5.0,
        "initial_retry_delay": 0.5,
        "approval_propagation_delay": 0.0,
    }
    values.update(overrides)
    return SwapClientConfig(**values)



def add_bridge_tx(chain: FakeChain, tx_hash: str = BRIDGE_TX, deposit_count: int = 42) -> None:
    """Register a bridge-and-call transaction with an asset leaf and a message leaf."""
    chain.source_receipts[tx_hash] = {"transactionHash": tx_hash, "status": 1, "blockNumber": 7}
    chain.bridge_events[tx_hash] = [
        {
            "args": {
                "leafType": 0,
                "originNetwork": 0,
                "originAddress": "0x794203e2982EDA39b4cfC3e1F802D6ab635FcDcB",
                "destinationNetwork": 1,
                "destinationAddress": EXTENSION_1,
                "amount": 68625,
                "metadata": b"",
                "depositCount": deposit_count - 1,
            }
        },
        {
            "args": {
                "leafType": 1,
                "originNetwork": 0,
                "originAddress": EXTENSION_0,
                "destinationNetwork": 1,
                "destinationAddress": EXTENSION_1,
                "amount": 0,
                "metadata": b"\x12\x34",
                "depositCount": deposit_count,
            }
        },
    ]


def proof_response(**overrides: Any) -> DummyResponse:
    proof: dict[str, Any] = {
        "merkle_proof": ["0x" + "01" * 32] * 32,
        "rollup_merkle_proof": ["0x" + "02" * 32] * 32,
        "main_exit_root": "0x" + "aa" * 32,
        "rollup_exit_root": "0x" + "bb" * 32,
    }
    proof.update(overrides)
    return DummyResponse({"proof": proof})
