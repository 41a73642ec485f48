"""Wallet provider capability set and a web3-backed implementation."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Protocol

from donation_backend.errors import UserRejected, WalletQueryFailed
from donation_backend.utils.logger import get_logger

logger = get_logger(__name__)

ACCOUNTS_CHANGED = "accountsChanged"
CHAIN_CHANGED = "chainChanged"

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001

EventHandler = Callable[[Any], Awaitable[None]]


class WalletProvider(Protocol):
    """What the wallet session needs from an injected wallet."""

    async def request_accounts(self) -> List[str]:
        ...

    async def list_accounts(self) -> List[str]:
        ...

    async def get_balance(self, address: str) -> int:
        ...

    async def get_chain_id(self) -> int:
        ...

    def on(self, event: str, handler: EventHandler) -> None:
        ...

    def remove_all_listeners(self) -> None:
        ...


class Web3WalletProvider:
    """Adapts a web3 instance (a node with managed accounts, or a bridge to a
    browser wallet) to the ``WalletProvider`` protocol.

    The host pushes extension events through :meth:`emit`; handlers are
    awaited in registration order.
    """

    def __init__(self, w3: Any) -> None:
        self._w3 = w3
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)

    async def request_accounts(self) -> List[str]:
        response = await asyncio.to_thread(self._w3.provider.make_request, "eth_requestAccounts", [])
        error = response.get("error") if isinstance(response, dict) else None
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            if code == USER_REJECTED_CODE:
                raise UserRejected(message)
            raise WalletQueryFailed(f"eth_requestAccounts failed: {message}")
        return [str(account) for account in response.get("result") or []]

    async def list_accounts(self) -> List[str]:
        accounts = await asyncio.to_thread(lambda: self._w3.eth.accounts)
        return [str(account) for account in accounts]

    async def get_balance(self, address: str) -> int:
        return int(await asyncio.to_thread(self._w3.eth.get_balance, address))

    async def get_chain_id(self) -> int:
        return int(await asyncio.to_thread(lambda: self._w3.eth.chain_id))

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def remove_all_listeners(self) -> None:
        self._handlers.clear()

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    async def emit(self, event: str, payload: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                await handler(payload)
            except Exception as exc:
                logger.error("Wallet event handler for %s failed: %s", event, exc)
