"""Wallet session state machine.

Tracks the connected account of an injected wallet and publishes immutable
``WalletSnapshot`` objects to listeners. Changes come from explicit calls
(``connect``, ``refresh``, ``disconnect``) or from the wallet's
``accountsChanged`` / ``chainChanged`` events, received through one
subscription that lives as long as the session.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from donation_backend.blockchain.networks import NOT_CONNECTED, get_network_name
from donation_backend.errors import (
    UserRejected,
    WalletError,
    WalletProviderUnavailable,
    WalletQueryFailed,
)
from donation_backend.utils.formatting import format_balance, format_ether, shorten_eth_address
from donation_backend.utils.logger import get_logger
from donation_backend.wallet.provider import ACCOUNTS_CHANGED, CHAIN_CHANGED, WalletProvider

logger = get_logger(__name__)

SnapshotListener = Callable[["WalletSnapshot"], None]


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    REFRESHING = "refreshing"
    ERROR = "error"


@dataclass(frozen=True)
class WalletSnapshot:
    address: Optional[str] = None
    balance_wei: int = 0
    chain_id: Optional[int] = None
    network_name: str = NOT_CONNECTED
    connected: bool = False

    @classmethod
    def disconnected(cls) -> "WalletSnapshot":
        return cls()

    @property
    def balance_eth(self) -> str:
        return format_ether(self.balance_wei)

    @property
    def balance_display(self) -> str:
        return format_balance(self.balance_wei)

    @property
    def short_address(self) -> str:
        return shorten_eth_address(self.address or "")


class WalletSession:
    """Single owner of the current wallet snapshot."""

    def __init__(self, provider: Optional[WalletProvider] = None) -> None:
        self._provider = provider
        self._state = SessionState.DISCONNECTED
        self._snapshot = WalletSnapshot.disconnected()
        self._listeners: List[SnapshotListener] = []
        self._subscribed = False
        # bumped by every rebuild and by disconnect; older rebuilds are discarded
        self._generation = 0
        self.last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Accessors & listeners
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def snapshot(self) -> WalletSnapshot:
        return self._snapshot

    @property
    def subscribed(self) -> bool:
        return self._subscribed

    def add_listener(self, callback: SnapshotListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: SnapshotListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, snapshot: WalletSnapshot) -> None:
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception as exc:
                logger.error("Wallet snapshot listener failed: %s", exc)

    def _transition(self, state: SessionState) -> None:
        if state is not self._state:
            logger.debug("Wallet session %s -> %s", self._state.value, state.value)
        self._state = state

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------
    def _require_provider(self) -> WalletProvider:
        if self._provider is None:
            self.last_error = "No injected wallet provider found"
            raise WalletProviderUnavailable(self.last_error)
        return self._provider

    def _ensure_subscribed(self) -> None:
        if self._subscribed or self._provider is None:
            return
        self._provider.on(ACCOUNTS_CHANGED, self._on_accounts_changed)
        self._provider.on(CHAIN_CHANGED, self._on_chain_changed)
        self._subscribed = True
        logger.debug("Subscribed to wallet events")

    async def initialize(self) -> WalletSnapshot:
        """Subscribe to wallet events and adopt an already-authorized account.

        Safe to call repeatedly. Without a provider this is a no-op.
        """
        if self._provider is None:
            return self._snapshot
        self._ensure_subscribed()
        if self._snapshot.connected:
            return self._snapshot
        try:
            accounts = await self._provider.list_accounts()
        except Exception as exc:
            logger.warning("Could not list wallet accounts: %s", exc)
            return self._snapshot
        if accounts:
            await self._rebuild(accounts[0])
        return self._snapshot

    def close(self) -> None:
        if self._subscribed and self._provider is not None:
            self._provider.remove_all_listeners()
            logger.debug("Unsubscribed from wallet events")
        self._subscribed = False

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------
    async def connect(self) -> WalletSnapshot:
        """Ask the wallet for accounts and build a snapshot for the first one.

        Raises:
            WalletProviderUnavailable: no provider; state is unchanged.
            UserRejected: the permission prompt was declined.
            WalletQueryFailed: balance/network lookup failed.
        """
        provider = self._require_provider()
        self.last_error = None
        self._transition(SessionState.CONNECTING)

        generation = self._next_generation()
        try:
            accounts = await provider.request_accounts()
            if not accounts:
                raise UserRejected("No accounts were granted")
            snapshot = await self._build(accounts[0])
        except WalletError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            failure = WalletQueryFailed(f"Failed to connect wallet: {exc}")
            self._fail(failure)
            raise failure from exc

        self._ensure_subscribed()
        self._publish(snapshot, generation)
        logger.info("Wallet connected: %s", snapshot.short_address)
        return self._snapshot

    async def refresh(self) -> WalletSnapshot:
        """Re-read balance and network for the current address.

        On failure the previous snapshot stays in place and the error is
        raised as ``WalletQueryFailed``.
        """
        provider = self._require_provider()
        if not self._snapshot.connected or self._snapshot.address is None:
            self.last_error = "Wallet not connected"
            raise WalletQueryFailed(self.last_error)

        self._transition(SessionState.REFRESHING)
        generation = self._next_generation()
        try:
            snapshot = await self._build(self._snapshot.address, provider)
        except WalletError as exc:
            self._fail(exc)
            raise
        self.last_error = None
        self._publish(snapshot, generation)
        return self._snapshot

    def disconnect(self) -> WalletSnapshot:
        """Clear the session. The event subscription stays active."""
        self._next_generation()
        self._snapshot = WalletSnapshot.disconnected()
        self.last_error = None
        self._transition(SessionState.DISCONNECTED)
        self._emit(self._snapshot)
        logger.info("Wallet disconnected")
        return self._snapshot

    # ------------------------------------------------------------------
    # Wallet events
    # ------------------------------------------------------------------
    async def _on_accounts_changed(self, accounts: Sequence[str]) -> None:
        logger.info("Wallet accounts changed: %s", list(accounts or []))
        if not accounts:
            self.disconnect()
            return
        await self._rebuild(accounts[0])

    async def _on_chain_changed(self, chain_id: Any) -> None:
        logger.info("Wallet chain changed to %s", chain_id)
        if not self._snapshot.connected or self._snapshot.address is None:
            return
        await self._rebuild(self._snapshot.address)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    async def _build(self, address: str, provider: Optional[WalletProvider] = None) -> WalletSnapshot:
        provider = provider or self._require_provider()
        try:
            balance = int(await provider.get_balance(address))
            chain_id = int(await provider.get_chain_id())
        except WalletError:
            raise
        except Exception as exc:
            raise WalletQueryFailed(f"Failed to query wallet for {shorten_eth_address(address)}: {exc}") from exc
        return WalletSnapshot(
            address=address,
            balance_wei=balance,
            chain_id=chain_id,
            network_name=get_network_name(chain_id),
            connected=True,
        )

    async def _rebuild(self, address: str) -> None:
        generation = self._next_generation()
        try:
            snapshot = await self._build(address)
        except WalletError as exc:
            self.last_error = str(exc)
            logger.warning("Wallet snapshot rebuild failed: %s", exc)
            return
        self._publish(snapshot, generation)

    def _publish(self, snapshot: WalletSnapshot, generation: int) -> bool:
        if generation != self._generation:
            logger.debug("Discarding stale wallet snapshot for %s", snapshot.short_address)
            if self._state in (SessionState.CONNECTING, SessionState.REFRESHING):
                self._transition(SessionState.CONNECTED if self._snapshot.connected else SessionState.DISCONNECTED)
            return False
        self._snapshot = snapshot
        self._transition(SessionState.CONNECTED)
        self._emit(snapshot)
        return True

    def _fail(self, exc: WalletError) -> None:
        # events may have replaced the snapshot while the call was pending
        self._transition(SessionState.ERROR)
        self.last_error = str(exc)
        logger.warning("Wallet operation failed: %s", exc)
        self._transition(SessionState.CONNECTED if self._snapshot.connected else SessionState.DISCONNECTED)
