"""Exception hierarchy and error classification for the LxLy swap client."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

import requests
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3RPCError


class ErrorKind(str, Enum):
    """Structured tag describing how a failure should be handled."""

    TRANSIENT = "transient"
    NONCE_TOO_LOW = "nonce_too_low"
    ALREADY_CLAIMED = "already_claimed"
    REVERTED = "reverted"
    NOT_FOUND = "not_found"
    FATAL = "fatal"


class LxLySwapError(Exception):
    """Base exception for all LxLy swap errors."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        *,
        kind: ErrorKind = ErrorKind.FATAL,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.kind = kind


class ConfigurationError(LxLySwapError):
    """Raised when required configuration is missing or malformed."""

    def __init__(self, message: str, setting: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.setting = setting


class ValidationError(LxLySwapError):
    """Raised when a precondition on inputs or chain state is violated."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
        *,
        kind: ErrorKind = ErrorKind.FATAL,
    ):
        super().__init__(message, details, kind=kind)
        self.field = field
        self.value = value


class NetworkError(LxLySwapError):
    """Raised when network/connection issues occur."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
        *,
        kind: ErrorKind = ErrorKind.FATAL,
    ):
        super().__init__(message, details, kind=kind)
        self.endpoint = endpoint
        self.status_code = status_code


class UpstreamUnavailableError(NetworkError):
    """Raised when transient upstream failures outlast the retry limit."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        last_error: BaseException | None,
        endpoint: str | None = None,
    ):
        super().__init__(
            message,
            endpoint=endpoint,
            details={"attempts": attempts, "error": str(last_error)},
            kind=ErrorKind.TRANSIENT,
        )
        self.attempts = attempts
        self.last_error = last_error


class StatusLookupError(NetworkError):
    """Raised when the attestation API cannot be read and nothing is cached."""


class TransactionError(LxLySwapError):
    """Raised when a transaction cannot be broadcast or confirmed."""

    def __init__(
        self,
        message: str,
        *,
        action: str | None = None,
        nonce: int | None = None,
        tx_hash: str | None = None,
        reason: str | None = None,
        details: dict | None = None,
        kind: ErrorKind = ErrorKind.FATAL,
    ):
        super().__init__(message, details, kind=kind)
        self.action = action
        self.nonce = nonce
        self.tx_hash = tx_hash
        self.reason = reason


class NonceConflictError(TransactionError):
    """Raised when a transaction still collides on nonce after recovery."""


class ClaimError(LxLySwapError):
    """Raised when a bridge message cannot be claimed."""

    def __init__(
        self,
        message: str,
        *,
        bridge_tx_hash: str,
        reason: str | None = None,
        details: dict | None = None,
        kind: ErrorKind = ErrorKind.FATAL,
    ):
        super().__init__(message, details, kind=kind)
        self.bridge_tx_hash = bridge_tx_hash
        self.reason = reason


# Ordered: the first matching pattern wins.
_TEXT_PATTERNS: tuple[tuple[ErrorKind, re.Pattern[str]], ...] = (
    (ErrorKind.NONCE_TOO_LOW, re.compile(r"nonce too low", re.IGNORECASE)),
    (ErrorKind.ALREADY_CLAIMED, re.compile(r"already\s*claimed", re.IGNORECASE)),
    (
        ErrorKind.REVERTED,
        re.compile(r"revert|CALL_EXCEPTION|UNPREDICTABLE_GAS_LIMIT", re.IGNORECASE),
    ),
    (
        ErrorKind.TRANSIENT,
        re.compile(
            r"too many requests|rate limit|server error|bad gateway|service unavailable"
            r"|gateway timeout|(?:status|http|code)[^\w\d]{0,3}(?:429|50[234])\b",
            re.IGNORECASE,
        ),
    ),
    (ErrorKind.NOT_FOUND, re.compile(r"not found|no transaction", re.IGNORECASE)),
)

_TRANSIENT_RPC_CODES = {-32005, 429}


def classify_error(exc: BaseException) -> ErrorKind:
    """Return the :class:`ErrorKind` for an exception.

    Structured information wins: our own tagged errors, HTTP status codes and
    web3 exception types. Errors from libraries that only expose free text fall
    back to pattern matching on the message, following the ``__cause__`` chain.
    """

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        kind = _classify_structured(current)
        if kind is not None:
            return kind
        current = current.__cause__

    return classify_message(str(exc))


def classify_message(message: str) -> ErrorKind:
    for kind, pattern in _TEXT_PATTERNS:
        if pattern.search(message):
            return kind
    return ErrorKind.FATAL


def _classify_structured(exc: BaseException) -> ErrorKind | None:
    if isinstance(exc, LxLySwapError) and exc.kind is not ErrorKind.FATAL:
        return exc.kind

    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        status = exc.response.status_code
        if status == 429 or status >= 500:
            return ErrorKind.TRANSIENT
        if status == 404:
            return ErrorKind.NOT_FOUND

    if isinstance(exc, ContractLogicError):
        text = classify_message(str(exc))
        return ErrorKind.ALREADY_CLAIMED if text is ErrorKind.ALREADY_CLAIMED else ErrorKind.REVERTED

    if isinstance(exc, TransactionNotFound):
        return ErrorKind.NOT_FOUND

    if isinstance(exc, Web3RPCError):
        error = exc.rpc_response.get("error") if isinstance(exc.rpc_response, dict) else None
        code = error.get("code") if isinstance(error, dict) else None
        if code in _TRANSIENT_RPC_CODES:
            return ErrorKind.TRANSIENT

    return None
