"""ERC20 metadata and balance reads shared by the swap flows."""

from __future__ import annotations

import logging

from ..constants import DEFAULT_TOKEN_DECIMALS, DEFAULT_TOKEN_SYMBOL
from ..exceptions import ValidationError
from ..types import OnError
from ..utils import format_units
from .connections import Web3Connections
from .retry import ResilientCaller

logger = logging.getLogger(__name__)


class TokenReader:
    """Read token details and enforce balances through the retrying caller."""

    def __init__(self, connections: Web3Connections, caller: ResilientCaller) -> None:
        self._connections = connections
        self._caller = caller

    def details(
        self, network_id: int, token: str, *, on_error: OnError = OnError.DEGRADE
    ) -> tuple[int, str]:
        """Return ``(decimals, symbol)`` for ``token``, or defaults when degraded."""

        contract = self._connections.erc20(network_id, token)
        try:
            symbol = str(self._caller.call(contract.functions.symbol().call, action="token symbol"))
            decimals = int(
                self._caller.call(contract.functions.decimals().call, action="token decimals")
            )
        except Exception as exc:
            if on_error is OnError.PROPAGATE:
                raise
            logger.warning("Could not get token details for %s, using defaults: %s", token, exc)
            return DEFAULT_TOKEN_DECIMALS, DEFAULT_TOKEN_SYMBOL

        logger.debug("Token %s: %s with %s decimals", token, symbol, decimals)
        return decimals, symbol

    def balance(self, network_id: int, token: str, owner: str) -> int:
        contract = self._connections.erc20(network_id, token)
        return int(
            self._caller.call(contract.functions.balanceOf(owner).call, action="balance read")
        )

    def require_balance(
        self,
        network_id: int,
        token: str,
        owner: str,
        amount: int,
        *,
        decimals: int,
        symbol: str,
    ) -> int:
        """Raise :class:`ValidationError` unless ``owner`` holds at least ``amount``."""

        balance = self.balance(network_id, token, owner)
        logger.debug(
            "Balance check on network %s (balance=%s, required=%s)", network_id, balance, amount
        )
        if balance < amount:
            raise ValidationError(
                f"Insufficient token balance. You have {format_units(balance, decimals)} {symbol} "
                f"but need {format_units(amount, decimals)} {symbol}",
                field="amount",
                value=amount,
                details={"balance": balance, "required": amount, "token": token},
            )
        return balance
