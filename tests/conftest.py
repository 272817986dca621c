from __future__ import annotations

from typing import cast

import pytest
from fakes import FakeChain, FakeConnections, make_config

from lxly_swap.evm.config import SwapClientConfig
from lxly_swap.evm.connections import Web3Connections
from lxly_swap.evm.retry import ResilientCaller, RetryPolicy
from lxly_swap.evm.transactions import NonceSafeSubmitter


@pytest.fixture
def config() -> SwapClientConfig:
    return make_config()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def connections(chain: FakeChain, config: SwapClientConfig) -> Web3Connections:
    return cast(Web3Connections, FakeConnections(chain, config))


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def caller(sleeps: list[float]) -> ResilientCaller:
    return ResilientCaller(RetryPolicy(max_retries=5, initial_delay=0.5), sleep=sleeps.append)


@pytest.fixture
def submitter(connections: Web3Connections, caller: ResilientCaller) -> NonceSafeSubmitter:
    return NonceSafeSubmitter(connections, caller, wait_for_receipt=True, receipt_timeout=5.0)
