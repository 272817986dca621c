from __future__ import annotations

import threading
from typing import Any

import pytest
from fakes import SIGNER, FakeChain, FakeContract
from web3.exceptions import ContractLogicError

from lxly_swap.evm.connections import Web3Connections
from lxly_swap.evm.retry import ResilientCaller
from lxly_swap.evm.transactions import NonceSafeSubmitter
from lxly_swap.exceptions import ErrorKind, NonceConflictError, TransactionError

TOKEN = "0x9999999999999999999999999999999999999999"
SPENDER = "0x3333333333333333333333333333333333333333"


def _approve(contract: FakeContract, amount: int = 1) -> Any:
    return lambda: contract.functions.approve(SPENDER, amount)


def test_submit_uses_chain_nonce_and_waits_for_receipt(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    chain.nonces[0] = 3
    token = connections.erc20(0, TOKEN)

    result = submitter.submit(0, _approve(token), action="approve", gas_limit=300_000)

    broadcast = chain.broadcasts[-1]
    assert broadcast.params == {"from": SIGNER, "chainId": 11155111, "nonce": 3, "gas": 300_000}
    assert result.nonce == 3
    assert result.tx_hash == broadcast.tx_hash
    assert result.status == 1
    assert result.block_number == chain.receipts[broadcast.tx_hash]["blockNumber"]
    assert [attempt.nonce for attempt in result.attempts] == [3]
    assert result.attempts[0].tx_hash == broadcast.tx_hash


def test_legacy_network_sends_gas_price_instead_of_fee_market_fields(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    chain.nonces[1] = 4
    chain.gas_price = 2_500_000_000
    token = connections.erc20(1, TOKEN)

    submitter.submit(1, _approve(token), action="approve")

    params = chain.broadcasts[-1].params
    assert params["gasPrice"] == 2_500_000_000
    assert params["chainId"] == 2442
    assert "maxFeePerGas" not in params
    assert "maxPriorityFeePerGas" not in params


def test_fee_market_network_leaves_fees_to_the_node(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    token = connections.erc20(0, TOKEN)

    submitter.submit(0, _approve(token), action="approve")

    assert "gasPrice" not in chain.broadcasts[-1].params


def test_nonce_retry_keeps_legacy_gas_price(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    chain.nonces[1] = 5
    chain.transact_errors.append(ValueError("nonce too low: next nonce 6, tx nonce 5"))
    token = connections.erc20(1, TOKEN)

    submitter.submit(1, _approve(token), action="claim")

    assert chain.broadcasts[-1].params["nonce"] == 6
    assert chain.broadcasts[-1].params["gasPrice"] == chain.gas_price


def test_nonce_too_low_retries_once_with_suggested_nonce(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    chain.nonces[0] = 5
    chain.transact_errors.append(ValueError("nonce too low: next nonce 7, tx nonce 5"))
    token = connections.erc20(0, TOKEN)

    result = submitter.submit(0, _approve(token), action="bridge and call")

    assert len(chain.broadcasts) == 1
    assert chain.broadcasts[0].params["nonce"] == 7
    assert result.nonce == 7
    assert [attempt.nonce for attempt in result.attempts] == [5, 7]
    assert result.attempts[0].tx_hash is None


def test_nonce_too_low_without_hint_refetches(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    chain.nonces[0] = 2

    def racing_broadcast() -> None:
        chain.nonces[0] = 4
        raise ValueError("nonce too low")

    chain.transact_errors.append(racing_broadcast)
    token = connections.erc20(0, TOKEN)

    result = submitter.submit(0, _approve(token), action="approve")

    assert result.nonce == 4
    assert [attempt.nonce for attempt in result.attempts] == [2, 4]


def test_second_nonce_failure_is_fatal(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    chain.transact_errors.extend(
        [ValueError("nonce too low: next nonce 1"), ValueError("nonce too low: next nonce 2")]
    )
    token = connections.erc20(0, TOKEN)

    with pytest.raises(NonceConflictError) as excinfo:
        submitter.submit(0, _approve(token), action="bridge and call")

    err = excinfo.value
    assert err.nonce == 1
    assert err.kind is ErrorKind.NONCE_TOO_LOW
    assert err.details["attempted_nonces"] == [0, 1]
    assert "next nonce 1" in err.details["first_error"]
    assert "even with retry using nonce 1" in err.message
    assert chain.broadcasts == []


def test_other_broadcast_errors_are_not_retried(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    chain.transact_errors.append(ContractLogicError("execution reverted: already claimed"))
    token = connections.erc20(0, TOKEN)

    with pytest.raises(TransactionError) as excinfo:
        submitter.submit(0, _approve(token), action="claim message", context={"deposit": 9})

    err = excinfo.value
    assert err.kind is ErrorKind.ALREADY_CLAIMED
    assert err.nonce == 0
    assert err.details["deposit"] == 9
    assert chain.transact_errors == []
    assert chain.broadcasts == []


def test_reverted_receipt_raises_with_hash(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    chain.receipt_status = 0
    token = connections.erc20(0, TOKEN)

    with pytest.raises(TransactionError) as excinfo:
        submitter.submit(0, _approve(token), action="approve")

    assert excinfo.value.kind is ErrorKind.REVERTED
    assert excinfo.value.tx_hash == chain.broadcasts[0].tx_hash


def test_receipt_timeout_is_reported(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    chain.receipt_timeout = True
    token = connections.erc20(0, TOKEN)

    with pytest.raises(TransactionError, match="Timed out") as excinfo:
        submitter.submit(0, _approve(token), action="approve")

    assert excinfo.value.tx_hash == chain.broadcasts[0].tx_hash


def test_tracked_nonce_covers_unconfirmed_transactions(
    chain: FakeChain, connections: Web3Connections, caller: ResilientCaller
) -> None:
    chain.auto_confirm = False
    submitter = NonceSafeSubmitter(connections, caller, wait_for_receipt=False, receipt_timeout=1)
    token = connections.erc20(0, TOKEN)

    first = submitter.submit(0, _approve(token), action="approve")
    second = submitter.submit(0, _approve(token), action="approve")
    other_network = submitter.submit(1, _approve(connections.erc20(1, TOKEN)), action="approve")

    assert (first.nonce, second.nonce, other_network.nonce) == (0, 1, 0)
    assert first.receipt is None


def test_concurrent_submissions_never_share_a_nonce(
    chain: FakeChain, connections: Web3Connections, submitter: NonceSafeSubmitter
) -> None:
    chain.nonce_delay = 0.002
    token = connections.erc20(0, TOKEN)
    errors: list[BaseException] = []
    barrier = threading.Barrier(8)

    def worker(index: int) -> None:
        barrier.wait()
        try:
            submitter.submit(0, _approve(token, index + 1), action=f"approve {index}")
        except BaseException as exc:  # pragma: no cover - surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    nonces = [entry.params["nonce"] for entry in chain.broadcasts]
    assert sorted(nonces) == list(range(8))
    assert len(set(nonces)) == len(nonces)
