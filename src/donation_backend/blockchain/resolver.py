"""Ordered RPC failover: pick the first endpoint that passes liveness checks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from web3 import AsyncWeb3, HTTPProvider, Web3, WebSocketProvider

from donation_backend.blockchain.endpoints import EndpointDescriptor, TransportKind
from donation_backend.blockchain.networks import get_network_name
from donation_backend.errors import EndpointFailure, NoHealthyEndpoint
from donation_backend.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0

Opener = Callable[[EndpointDescriptor, float], Awaitable[Any]]


def is_async_web3(w3: Any) -> bool:
    """True when calls on ``w3`` return awaitables (websocket transports)."""
    return bool(getattr(getattr(w3, "provider", None), "is_async", False))


async def call_bounded(w3: Any, func: Callable[[], Any], timeout: float) -> Any:
    """Run one web3 call under ``timeout`` without blocking the event loop.

    Synchronous handles run in a worker thread; asynchronous handles are
    awaited directly, ``func`` returning the coroutine.
    """
    if is_async_web3(w3):
        return await asyncio.wait_for(func(), timeout=timeout)
    return await asyncio.wait_for(asyncio.to_thread(func), timeout=timeout)


async def close_web3(w3: Any) -> None:
    """Release a persistent transport. HTTP handles hold no socket of their own."""
    if not is_async_web3(w3):
        return
    try:
        await w3.provider.disconnect()
    except Exception as exc:
        logger.warning("Failed to close RPC transport: %s", exc)


@dataclass(frozen=True)
class ChainConnection:
    """A web3 handle bound to one endpoint that passed liveness validation.

    Valid for one logical request set; callers ``close()`` it afterwards and
    resolve again for the next one.
    """

    endpoint: EndpointDescriptor
    w3: Any
    chain_id: int
    network_name: str
    block_number: int

    def contract(self, address: str, abi: List[dict]) -> Any:
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    async def call(self, func: Callable[[], Any], timeout: float) -> Any:
        return await call_bounded(self.w3, func, timeout)

    async def close(self) -> None:
        await close_web3(self.w3)


async def open_web3(endpoint: EndpointDescriptor, timeout: float) -> Any:
    """Build a web3 handle for the descriptor's transport.

    HTTP endpoints get a synchronous ``Web3``; websocket endpoints get a
    connected ``AsyncWeb3`` that must be closed with ``close_web3``.
    """
    if endpoint.transport is TransportKind.WEBSOCKET:
        w3 = AsyncWeb3(WebSocketProvider(endpoint.url, request_timeout=timeout))
        await w3.provider.connect()
        return w3
    return Web3(HTTPProvider(endpoint.url, request_kwargs={"timeout": timeout}))


async def _validate(
    endpoint: EndpointDescriptor,
    *,
    expected_chain_id: Optional[int],
    timeout: float,
    opener: Opener,
) -> ChainConnection:
    w3 = await asyncio.wait_for(opener(endpoint, timeout), timeout=timeout)
    try:
        raw_chain_id = await call_bounded(w3, lambda: w3.eth.chain_id, timeout)
        raw_block = await call_bounded(w3, lambda: w3.eth.block_number, timeout)
        try:
            chain_id = int(raw_chain_id)
            block_number = int(raw_block)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"malformed liveness response: chain_id={raw_chain_id!r} block={raw_block!r}") from exc

        if expected_chain_id is not None and chain_id != int(expected_chain_id):
            raise ValueError(f"chain id mismatch: expected {expected_chain_id}, got {chain_id}")
    except Exception:
        await close_web3(w3)
        raise

    return ChainConnection(
        endpoint=endpoint,
        w3=w3,
        chain_id=chain_id,
        network_name=get_network_name(chain_id),
        block_number=block_number,
    )


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    return str(exc) or exc.__class__.__name__


async def resolve(
    endpoints: Sequence[EndpointDescriptor],
    *,
    expected_chain_id: Optional[int] = None,
    timeout: float = DEFAULT_TIMEOUT,
    opener: Opener = open_web3,
) -> ChainConnection:
    """Return a connection to the first healthy endpoint, in configured order.

    Each endpoint gets exactly one attempt: open the transport, then fetch the
    chain id and the latest block number, each bounded by ``timeout``. The
    first endpoint that passes wins and later ones are never contacted.
    Transports of failed attempts are closed before moving on.

    Raises:
        NoHealthyEndpoint: when every endpoint failed; carries one
            ``EndpointFailure`` per endpoint in pool order.
    """
    failures: List[EndpointFailure] = []
    for endpoint in endpoints:
        logger.info("Connecting to RPC %s", endpoint.url)
        try:
            connection = await _validate(
                endpoint,
                expected_chain_id=expected_chain_id,
                timeout=timeout,
                opener=opener,
            )
        except Exception as exc:
            reason = _describe(exc)
            logger.warning("RPC %s failed liveness check: %s", endpoint.url, reason)
            failures.append(EndpointFailure(url=endpoint.url, reason=reason))
            continue

        logger.info(
            "Connected via %s (chain id %s, block %s)",
            endpoint.host,
            connection.chain_id,
            connection.block_number,
        )
        return connection

    logger.error("All %d RPC endpoints failed", len(failures))
    raise NoHealthyEndpoint(failures)
