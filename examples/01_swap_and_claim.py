"""Example: Bridge Token A to Cardona, swap it into Token B, and claim the message if needed."""

from __future__ import annotations

import logging
import os
import threading

from dotenv import load_dotenv

from lxly_swap import (
    ClaimError,
    ErrorKind,
    LxLySwapClient,
    LxLySwapError,
    TransactionState,
    TransactionStatus,
    load_config,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger("swap_and_claim")


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} not found in environment variables")
    return value


def main() -> None:
    user_address = _require_env("SWAP_USER_ADDRESS")
    selection = os.getenv("SWAP_TOKEN_SELECTION", "TOKEN_A_TO_B")
    amount = os.getenv("SWAP_AMOUNT", "0.01")
    poll_interval = float(os.getenv("SWAP_POLL_INTERVAL", "30"))

    client = LxLySwapClient(load_config())
    client.connect()
    try:
        logger.info("Swapping %s (%s) for %s", amount, selection, user_address)
        try:
            swap = client.cross_chain_swap(selection, amount, user_address)
        except LxLySwapError as exc:
            logger.error("Swap failed: %s", exc)
            return
        logger.info("%s", swap.bridge.message)
        logger.info("  bridge tx: %s", swap.bridge.tx_hash)

        ready = threading.Event()

        def _report(status: TransactionStatus) -> None:
            logger.info("  status: %s", status.state.value)
            if status.state is TransactionState.READY_TO_CLAIM:
                ready.set()

        poller = client.create_poller(poll_interval)
        final = poller.poll(swap.bridge.tx_hash, user_address, on_update=_report, cancel=ready)
        if final is None or final.state is not TransactionState.READY_TO_CLAIM:
            if final is not None and final.state is TransactionState.CLAIMED:
                logger.info("Message claimed automatically: %s", final.destination_tx_hash)
            return

        try:
            claim = client.claim_message(swap.bridge.tx_hash)
        except ClaimError as exc:
            if exc.kind is ErrorKind.ALREADY_CLAIMED:
                logger.info("Message was already claimed")
                return
            logger.error("Claim failed (%s): %s", exc.kind.value, exc.reason)
            return
        logger.info("Message claimed: %s", claim.tx_hash)
    finally:
        client.disconnect()
        logger.info("Disconnected")


if __name__ == "__main__":
    main()
