"""HTTP surface for the cross-chain swap backend."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .evm import LxLySwapClient, load_config
from .exceptions import (
    ClaimError,
    ConfigurationError,
    ErrorKind,
    LxLySwapError,
    StatusLookupError,
    UpstreamUnavailableError,
    ValidationError,
)
from .types import TransactionState

logger = logging.getLogger(__name__)


class CrossChainSwapRequest(BaseModel):
    """Body of ``POST /api/cross-chain-swap``."""

    tokenSelection: str = Field(..., description="TOKEN_A_TO_B or TOKEN_B_TO_A")
    amount: Decimal = Field(..., description="Human readable amount of the source token")
    userAddress: str = Field(..., description="Recipient of the swapped tokens")
    minAmountOut: int = Field(0, ge=0, description="Minimum swap output in base units")


class SwapTokensRequest(BaseModel):
    """Body of ``POST /api/swap-tokens``."""

    tokenIn: str = Field(..., min_length=1)
    tokenOut: str = Field(..., min_length=1)
    amount: Decimal = Field(..., description="Human readable amount of ``tokenIn``")
    userAddress: str = Field(..., min_length=1)
    minAmountOut: int = Field(0, ge=0)


class ClaimMessageRequest(BaseModel):
    """Body of ``POST /api/claim-message``."""

    bridgeTransactionHash: str = Field(..., min_length=1)
    userAddress: str = Field(..., min_length=1)


_NOT_CLAIMABLE = {
    TransactionState.PENDING: (
        "Transaction is not yet claimable",
        "The transaction is still being processed. Please wait until it is ready to claim "
        "before claiming the message.",
    ),
    TransactionState.BRIDGED: (
        "Transaction is not yet claimable",
        "The transaction has been bridged but is not ready to claim yet. Please try again shortly.",
    ),
    TransactionState.FAILED: (
        "Transaction failed",
        "The bridge transaction has failed. Cannot claim message for a failed transaction.",
    ),
}


def create_app(client: LxLySwapClient) -> FastAPI:
    """Build the FastAPI application around a connected client."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        client.disconnect()

    app = FastAPI(title="LxLy Swap API", version="0.1.0", lifespan=lifespan)
    app.state.client = client

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Missing or invalid parameters",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    @app.get("/api/token-options")
    def get_token_options() -> dict:
        return {"options": client.token_options()}

    @app.post("/api/cross-chain-swap")
    def cross_chain_swap(body: CrossChainSwapRequest) -> JSONResponse:
        try:
            result = client.cross_chain_swap(
                body.tokenSelection,
                str(body.amount),
                body.userAddress,
                min_amount_out=body.minAmountOut,
            )
        except ValidationError as exc:
            logger.warning("Rejected cross-chain swap: %s", exc)
            return _error(400, "Failed to execute chain swap", exc)
        except UpstreamUnavailableError as exc:
            logger.error("Cross-chain swap failed, upstream unavailable: %s", exc)
            return _error(503, "Upstream RPC unavailable", exc)
        except LxLySwapError as exc:
            logger.error("Chain swap error: %s", exc)
            return _error(500, "Failed to execute chain swap", exc)
        except Exception as exc:
            logger.exception("Unexpected cross-chain swap failure")
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": "Failed to execute chain swap", "message": str(exc)},
            )

        return JSONResponse(status_code=200, content=jsonable_encoder(result.as_dict()))

    @app.post("/api/swap-tokens")
    def swap_tokens(body: SwapTokensRequest) -> JSONResponse:
        try:
            result = client.swap_tokens(
                body.tokenIn,
                body.tokenOut,
                str(body.amount),
                body.userAddress,
                min_amount_out=body.minAmountOut,
            )
        except ValidationError as exc:
            logger.warning("Rejected token swap: %s", exc)
            return _error(400, "Failed to execute swap", exc)
        except UpstreamUnavailableError as exc:
            logger.error("Token swap failed, upstream unavailable: %s", exc)
            return _error(503, "Upstream RPC unavailable", exc)
        except LxLySwapError as exc:
            logger.error("Swap error: %s", exc)
            return _error(500, "Failed to execute swap", exc)
        except Exception as exc:
            logger.exception("Unexpected token swap failure")
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": "Failed to execute swap", "message": str(exc)},
            )

        return JSONResponse(status_code=200, content=jsonable_encoder(result.as_dict()))

    @app.get("/api/check-transaction-status")
    def check_transaction_status(
        txHash: str | None = None, address: str | None = None
    ) -> JSONResponse:
        if not txHash or not address:
            return JSONResponse(
                status_code=400, content={"error": "Missing txHash or address parameter"}
            )
        try:
            status = client.check_transaction_status(txHash, address)
        except StatusLookupError as exc:
            logger.error("Error checking transaction status: %s", exc)
            return _error(500, "Failed to check transaction status", exc)
        return JSONResponse(status_code=200, content=jsonable_encoder(status.as_dict()))

    @app.post("/api/claim-message")
    def claim_message(body: ClaimMessageRequest) -> JSONResponse:
        tx_hash = body.bridgeTransactionHash
        try:
            status = client.check_transaction_status(tx_hash, body.userAddress)
        except StatusLookupError as exc:
            logger.warning("Could not check transaction status: %s", exc)
            logger.info("Proceeding with message claim attempt anyway")
        else:
            logger.info("Transaction %s status: %s", tx_hash, status.state.value)
            blocked = _NOT_CLAIMABLE.get(status.state)
            if blocked is not None:
                error, message = blocked
                return JSONResponse(
                    status_code=400,
                    content={
                        "success": False,
                        "error": error,
                        "message": message,
                        "currentState": status.state.value,
                    },
                )

        try:
            result = client.claim_message(tx_hash)
        except ClaimError as exc:
            return _claim_error(exc)
        except LxLySwapError as exc:
            logger.error("Message claim error: %s", exc)
            return _error(500, "Failed to claim message", exc)

        return JSONResponse(
            status_code=200,
            content=jsonable_encoder(
                {
                    "success": True,
                    "messageClaimTxHash": result.tx_hash,
                    "receipt": result.receipt,
                }
            ),
        )

    return app


def _error(status_code: int, error: str, exc: LxLySwapError) -> JSONResponse:
    content = {
        "success": False,
        "error": error,
        "message": exc.message,
        "kind": exc.kind.value,
    }
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def _claim_error(exc: ClaimError) -> JSONResponse:
    if exc.kind in (ErrorKind.ALREADY_CLAIMED, ErrorKind.REVERTED):
        logger.info("Message for %s already claimed or reverted: %s", exc.bridge_tx_hash, exc.reason)
        status_code, error, message = (
            409,
            "Message was already claimed",
            "This message appears to have been already claimed or the transaction has reverted. "
            "This is often normal if the automatic claim process worked.",
        )
    elif exc.kind is ErrorKind.NOT_FOUND:
        logger.warning("Bridge transaction %s not found: %s", exc.bridge_tx_hash, exc.reason)
        status_code, error, message = (
            404,
            "Transaction not found",
            "The bridge transaction could not be found. Please check that you provided the "
            "correct transaction hash and that it has been confirmed on the source chain.",
        )
    else:
        logger.error("Message claim error for %s: %s", exc.bridge_tx_hash, exc)
        status_code, error, message = 500, "Failed to claim message", exc.message

    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "message": message,
            "kind": exc.kind.value,
            "originalError": exc.reason,
        },
    )


def main() -> None:
    """Load configuration, connect the client and serve the API with uvicorn."""

    logging.basicConfig(
        level=os.getenv("LOGLEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config()
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc

    client = LxLySwapClient(config)
    client.connect()
    app = create_app(client)
    uvicorn.run(
        app,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOGLEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
