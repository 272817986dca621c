import pytest
import requests
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3RPCError

from lxly_swap.exceptions import (
    ErrorKind,
    NetworkError,
    TransactionError,
    ValidationError,
    classify_error,
)


def _http_error(status: int) -> requests.HTTPError:
    response = requests.Response()
    response.status_code = status
    return requests.HTTPError(f"{status} Error", response=response)


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (ValueError("nonce too low: next nonce 4"), ErrorKind.NONCE_TOO_LOW),
        (ValueError("429 Client Error: Too Many Requests"), ErrorKind.TRANSIENT),
        (ValueError("execution reverted"), ErrorKind.REVERTED),
        (ValueError("header not found"), ErrorKind.NOT_FOUND),
        (ValueError("insufficient funds for gas"), ErrorKind.FATAL),
        (ValueError("insufficient funds for gas * price + value: have 503 want 1000"), ErrorKind.FATAL),
        (ValueError("request failed with status code 503"), ErrorKind.TRANSIENT),
        (ValueError("HTTP 429"), ErrorKind.TRANSIENT),
        (ContractLogicError("execution reverted: already claimed"), ErrorKind.ALREADY_CLAIMED),
        (ContractLogicError("execution reverted: ERC20: transfer amount"), ErrorKind.REVERTED),
        (TransactionNotFound("Transaction with hash: '0x1' not found."), ErrorKind.NOT_FOUND),
        (_http_error(503), ErrorKind.TRANSIENT),
        (_http_error(429), ErrorKind.TRANSIENT),
        (_http_error(404), ErrorKind.NOT_FOUND),
        (_http_error(400), ErrorKind.FATAL),
    ],
)
def test_classify_error(exc, kind):
    assert classify_error(exc) is kind


def test_rpc_rate_limit_code_is_transient():
    exc = Web3RPCError(
        "limit exceeded", rpc_response={"error": {"code": -32005, "message": "limit exceeded"}}
    )

    assert classify_error(exc) is ErrorKind.TRANSIENT


def test_tagged_errors_keep_their_kind():
    exc = ValidationError("missing leaf", kind=ErrorKind.NOT_FOUND)

    assert classify_error(exc) is ErrorKind.NOT_FOUND


def test_cause_chain_is_followed():
    try:
        try:
            raise _http_error(502)
        except requests.HTTPError as inner:
            raise NetworkError("proof lookup failed") from inner
    except NetworkError as outer:
        assert classify_error(outer) is ErrorKind.TRANSIENT


def test_wrapping_error_text_is_used_last():
    exc = TransactionError("Failed to submit claim message: execution reverted: already claimed")

    assert classify_error(exc) is ErrorKind.ALREADY_CLAIMED
