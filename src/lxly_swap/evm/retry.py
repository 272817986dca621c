"""Retry wrapper for chain RPC calls that hit rate limits or upstream 5xx errors."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..exceptions import ErrorKind, UpstreamUnavailableError, classify_error
from .config import DEFAULT_INITIAL_RETRY_DELAY, DEFAULT_MAX_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff parameters."""

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay: float = DEFAULT_INITIAL_RETRY_DELAY
    backoff_factor: float = 2.0

    def delay_for(self, retry: int) -> float:
        """Delay before the ``retry``-th retry (1-based)."""
        return self.initial_delay * self.backoff_factor ** (retry - 1)


class ResilientCaller:
    """Run callables, retrying only failures classified as transient."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    def call(self, fn: Callable[..., T], *args: Any, action: str = "rpc call", **kwargs: Any) -> T:
        retries = 0
        while True:
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                if isinstance(exc, UpstreamUnavailableError):
                    raise
                if classify_error(exc) is not ErrorKind.TRANSIENT:
                    raise

                if retries >= self._policy.max_retries:
                    logger.error(
                        "Upstream still unavailable for %s after %s retries: %s",
                        action,
                        retries,
                        exc,
                    )
                    raise UpstreamUnavailableError(
                        f"Upstream unavailable for {action} after {retries} retries: {exc}",
                        attempts=retries + 1,
                        last_error=exc,
                    ) from exc

                retries += 1
                delay = self._policy.delay_for(retries)
                logger.warning(
                    "RPC rate limiting detected for %s. Retry %s/%s after %.1fs delay",
                    action,
                    retries,
                    self._policy.max_retries,
                    delay,
                )
                self._sleep(delay)
