"""Bridge transaction status tracking against the attestation API."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import requests

from ..exceptions import StatusLookupError
from ..types import TransactionState, TransactionStatus

logger = logging.getLogger(__name__)

_API_STATES = {
    "BRIDGED": TransactionState.BRIDGED,
    "READY_TO_CLAIM": TransactionState.READY_TO_CLAIM,
    "CLAIMED": TransactionState.CLAIMED,
    "FAILED": TransactionState.FAILED,
}


@dataclass
class _CacheEntry:
    status: TransactionStatus
    checked_at: float


class TransactionStatusTracker:
    """Map attestation API records onto :class:`TransactionState` with a TTL cache.

    Cached terminal states are returned without a lookup, and a fresh record
    never moves a transaction backwards in the state order. When the API
    cannot be read, the last cached state is returned if there is one.
    """

    def __init__(
        self,
        session: requests.Session,
        *,
        api_url: str,
        api_key: str,
        request_timeout: float,
        cache_ttl: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._api_url = api_url
        self._api_key = api_key
        self._request_timeout = request_timeout
        self._cache_ttl = cache_ttl
        self._clock = clock
        self._cache: dict[tuple[str, str], _CacheEntry] = {}
        self._lock = threading.Lock()

    def get_status(self, tx_hash: str, address: str) -> TransactionStatus:
        key = (tx_hash.lower(), address.lower())
        now = self._clock()
        with self._lock:
            cached = self._cache.get(key)

        if cached is not None:
            if cached.status.state.is_terminal:
                return cached.status
            if now - cached.checked_at < self._cache_ttl:
                return cached.status

        logger.info("Checking status for transaction %s for user %s", tx_hash, address)
        try:
            records = self._fetch_transactions(address)
        except StatusLookupError as exc:
            logger.error("Error fetching transaction status for %s: %s", tx_hash, exc)
            if cached is not None:
                logger.info("Returning cached state %s for %s", cached.status.state.value, tx_hash)
                return cached.status
            raise

        record = next(
            (
                entry
                for entry in records
                if str(entry.get("transactionHash", "")).lower() == key[0]
            ),
            None,
        )

        if record is None:
            logger.info("Transaction %s not found in response, it may still be processing", tx_hash)
            if cached is not None:
                return cached.status
            status = TransactionStatus(state=TransactionState.PENDING)
        else:
            status = _status_from_record(record)

        with self._lock:
            previous = self._cache.get(key)
            if previous is not None and status.state.rank < previous.status.state.rank:
                logger.debug(
                    "Ignoring regression of %s from %s to %s",
                    tx_hash,
                    previous.status.state.value,
                    status.state.value,
                )
                status = previous.status
            self._cache[key] = _CacheEntry(status=status, checked_at=now)

        logger.info("Transaction %s status: %s", tx_hash, status.state.value)
        return status

    def cached_status(self, tx_hash: str, address: str) -> TransactionStatus | None:
        with self._lock:
            entry = self._cache.get((tx_hash.lower(), address.lower()))
        return entry.status if entry else None

    def _fetch_transactions(self, address: str) -> list[Mapping[str, Any]]:
        try:
            response = self._session.get(
                self._api_url,
                params={"userAddress": address},
                headers={"x-api-key": self._api_key},
                timeout=self._request_timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise StatusLookupError(
                f"Status API request failed: {exc}",
                endpoint=self._api_url,
                status_code=status_code,
            ) from exc
        except ValueError as exc:
            raise StatusLookupError(
                "Status API returned invalid JSON", endpoint=self._api_url
            ) from exc

        if not isinstance(body, Mapping) or not body.get("success"):
            raise StatusLookupError(
                "API returned unsuccessful response",
                endpoint=self._api_url,
                details={"response": body},
            )

        result = body.get("result") or []
        if not isinstance(result, list):
            raise StatusLookupError(
                "Unexpected status response format",
                endpoint=self._api_url,
                details={"result": result},
            )
        return [entry for entry in result if isinstance(entry, Mapping)]


def _status_from_record(record: Mapping[str, Any]) -> TransactionStatus:
    state = _API_STATES.get(str(record.get("status", "")).upper(), TransactionState.PENDING)
    amounts = record.get("amounts")
    details = {
        "sourceNetwork": record.get("sourceNetwork"),
        "destinationNetwork": record.get("destinationNetwork"),
        "timestamp": record.get("timestamp"),
        "amount": amounts[0] if isinstance(amounts, list) and amounts else None,
        "tokenAddress": record.get("originTokenAddress"),
        "claimTimestamp": record.get("claimTransactionTimestamp"),
    }
    destination = record.get("claimTransactionHash") if state is TransactionState.CLAIMED else None
    return TransactionStatus(state=state, destination_tx_hash=destination, details=details)


class PollHandle:
    """Handle to a background poll started by :meth:`StatusPoller.start`."""

    def __init__(self, cancel_event: threading.Event) -> None:
        self._cancel = cancel_event
        self._thread: threading.Thread | None = None
        self._result: TransactionStatus | None = None
        self._error: BaseException | None = None

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the poll to stop; return ``True`` once it has."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self.done

    @property
    def done(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()

    @property
    def result(self) -> TransactionStatus | None:
        """Last status observed, ``None`` if no lookup succeeded."""
        return self._result

    @property
    def error(self) -> BaseException | None:
        return self._error


class StatusPoller:
    """Periodically poll a tracker until a terminal state or cancellation."""

    def __init__(
        self,
        tracker: TransactionStatusTracker,
        *,
        interval: float,
        max_polls: int | None = None,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must be non-negative")
        self._tracker = tracker
        self._interval = interval
        self._max_polls = max_polls
        self._handles: list[PollHandle] = []
        self._lock = threading.Lock()

    def poll(
        self,
        tx_hash: str,
        address: str,
        *,
        on_update: Callable[[TransactionStatus], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> TransactionStatus | None:
        cancel = cancel or threading.Event()
        last: TransactionStatus | None = None
        polls = 0

        while not cancel.is_set():
            polls += 1
            try:
                status = self._tracker.get_status(tx_hash, address)
            except StatusLookupError as exc:
                logger.warning("Status poll %s for %s failed: %s", polls, tx_hash, exc)
            else:
                last = status
                if on_update is not None:
                    on_update(status)
                if status.state.is_terminal:
                    logger.debug("Stopping poll for %s at terminal state %s", tx_hash, status.state.value)
                    break

            if self._max_polls is not None and polls >= self._max_polls:
                logger.debug("Stopping poll for %s after %s polls", tx_hash, polls)
                break
            if cancel.wait(self._interval):
                logger.debug("Poll for %s cancelled", tx_hash)
                break

        return last

    def start(
        self,
        tx_hash: str,
        address: str,
        on_update: Callable[[TransactionStatus], None] | None = None,
    ) -> PollHandle:
        handle = PollHandle(threading.Event())

        def _record(status: TransactionStatus) -> None:
            handle._result = status
            if on_update is not None:
                on_update(status)

        def _run() -> None:
            try:
                self.poll(tx_hash, address, on_update=_record, cancel=handle._cancel)
            except Exception as exc:
                logger.exception("Status poll for %s stopped unexpectedly", tx_hash)
                handle._error = exc

        thread = threading.Thread(target=_run, name=f"status-poll-{tx_hash[:10]}", daemon=True)
        handle._thread = thread
        with self._lock:
            self._handles = [h for h in self._handles if not h.done]
            self._handles.append(handle)
            thread.start()
        return handle

    def cancel_all(self) -> None:
        with self._lock:
            handles, self._handles = self._handles, []
        for handle in handles:
            handle.cancel()
