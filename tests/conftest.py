"""
Pytest fixtures and fakes for the donation backend tests.

The fakes stand in for web3 (``FakeWeb3``), a bound contract
(``FakeContract``) and an injected wallet (``FakeWalletProvider``) so that
no test touches a real RPC endpoint.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest
from web3 import Web3

from donation_backend.blockchain.endpoints import EndpointDescriptor
from donation_backend.blockchain.resolver import ChainConnection
from donation_backend.errors import UserRejected

SEPOLIA = 11155111
CONTRACT_ADDRESS = Web3.to_checksum_address("0xd12c087aa33b4572770c9a2c148dc52e224cf9fe")

DONOR_A = "0x" + "a1" * 20
DONOR_B = "0x" + "b2" * 20
DONOR_C = "0x" + "c3" * 20

ONE_ETH = 10 ** 18


class FakeCall:
    def __init__(self, result: Any, delay: float = 0.0, asynchronous: bool = False):
        self._result = result
        self._delay = delay
        self._asynchronous = asynchronous

    def _outcome(self) -> Any:
        if isinstance(self._result, BaseException):
            raise self._result
        return self._result

    async def _acall(self) -> Any:
        if self._delay:
            await asyncio.sleep(self._delay)
        return self._outcome()

    def call(self) -> Any:
        if self._asynchronous:
            return self._acall()
        if self._delay:
            time.sleep(self._delay)
        return self._outcome()


class FakeFunctions:
    def __init__(self, results: Dict[str, Any], calls: List[str], delays: Dict[str, float], asynchronous: bool):
        self._results = results
        self._calls = calls
        self._delays = delays
        self._asynchronous = asynchronous

    def __getattr__(self, name: str):
        if name not in self._results:
            raise AttributeError(name)

        def _function(*args):
            self._calls.append(name)
            return FakeCall(self._results[name], self._delays.get(name, 0.0), self._asynchronous)

        return _function


class FakeContract:
    def __init__(self, results: Dict[str, Any], delays: Optional[Dict[str, float]] = None,
                 asynchronous: bool = False):
        self.calls: List[str] = []
        self.functions = FakeFunctions(results, self.calls, dict(delays or {}), asynchronous)


class FakeEth:
    def __init__(self, chain_id: Any = SEPOLIA, block_number: Any = 1000, contract: Optional[FakeContract] = None,
                 delay: float = 0.0):
        self._chain_id = chain_id
        self._block_number = block_number
        self._contract = contract or FakeContract({})
        self._delay = delay
        self.bound_addresses: List[str] = []

    def _value(self, value: Any) -> Any:
        if self._delay:
            time.sleep(self._delay)
        if isinstance(value, BaseException):
            raise value
        return value

    @property
    def chain_id(self) -> Any:
        return self._value(self._chain_id)

    @property
    def block_number(self) -> Any:
        return self._value(self._block_number)

    def contract(self, address: str, abi: Any) -> FakeContract:
        self.bound_addresses.append(address)
        return self._contract


class FakeProvider:
    def __init__(self, is_async: bool = False):
        self.is_async = is_async
        self.disconnects = 0

    async def disconnect(self) -> None:
        self.disconnects += 1


class FakeWeb3:
    def __init__(self, **kwargs):
        self.provider = FakeProvider()
        self.eth = FakeEth(**kwargs)


class FakeAsyncEth(FakeEth):
    """Liveness properties return coroutines, as on ``AsyncWeb3``."""

    async def _async_value(self, value: Any) -> Any:
        if self._delay:
            await asyncio.sleep(self._delay)
        if isinstance(value, BaseException):
            raise value
        return value

    @property
    def chain_id(self) -> Any:
        return self._async_value(self._chain_id)

    @property
    def block_number(self) -> Any:
        return self._async_value(self._block_number)


class FakeAsyncWeb3:
    def __init__(self, **kwargs):
        self.provider = FakeProvider(is_async=True)
        self.eth = FakeAsyncEth(**kwargs)


class RecordingOpener:
    """Opener for ``resolve`` mapping URLs to fake web3 objects or errors."""

    def __init__(self, targets: Dict[str, Any]):
        self.targets = targets
        self.opened: List[str] = []

    async def __call__(self, endpoint: EndpointDescriptor, timeout: float) -> Any:
        self.opened.append(endpoint.url)
        target = self.targets[endpoint.url]
        if isinstance(target, BaseException):
            raise target
        return target


def donor(address: str, amount: int, timestamp: int = 1_700_000_000, message: str = "") -> tuple:
    return (address, amount, timestamp, message)


def ledger_results(donors: List[tuple], **overrides: Any) -> Dict[str, Any]:
    total = sum(item[1] for item in donors)
    results = {
        "getDonorCount": len(donors),
        "getTotalDonations": total,
        "getContractBalance": total,
        "getAllDonors": donors,
        "getAverageDonation": total // len(donors) if donors else 0,
        "getLargestDonation": max((item[1] for item in donors), default=0),
        "owner": DONOR_C,
    }
    results.update(overrides)
    return results


def make_connection(results: Dict[str, Any], delays: Optional[Dict[str, float]] = None,
                    asynchronous: bool = False) -> ChainConnection:
    contract = FakeContract(results, delays, asynchronous)
    if asynchronous:
        url, w3 = "wss://rpc.example.org", FakeAsyncWeb3(contract=contract)
    else:
        url, w3 = "https://rpc.example.org", FakeWeb3(contract=contract)
    return ChainConnection(
        endpoint=EndpointDescriptor.from_url(url),
        w3=w3,
        chain_id=SEPOLIA,
        network_name="Sepolia Testnet",
        block_number=1000,
    )


class FakeWalletProvider:
    """In-memory stand-in for a browser-injected wallet."""

    def __init__(self, accounts: Optional[List[str]] = None, authorized: Optional[List[str]] = None,
                 balances: Optional[Dict[str, int]] = None, chain_id: int = SEPOLIA):
        self.accounts = list(accounts or [])
        self.authorized = list(authorized or [])
        self.balances = dict(balances or {})
        self.chain_id = chain_id
        self.reject = False
        self.fail_queries = False
        self.handlers: Dict[str, List[Any]] = defaultdict(list)

    async def request_accounts(self) -> List[str]:
        if self.reject:
            raise UserRejected("User rejected the request.")
        return list(self.accounts)

    async def list_accounts(self) -> List[str]:
        return list(self.authorized)

    async def get_balance(self, address: str) -> int:
        if self.fail_queries:
            raise ConnectionError("wallet RPC unavailable")
        return self.balances.get(address, 0)

    async def get_chain_id(self) -> int:
        if self.fail_queries:
            raise ConnectionError("wallet RPC unavailable")
        return self.chain_id

    def on(self, event: str, handler: Any) -> None:
        self.handlers[event].append(handler)

    def remove_all_listeners(self) -> None:
        self.handlers.clear()

    async def emit(self, event: str, payload: Any) -> None:
        for handler in list(self.handlers.get(event, [])):
            await handler(payload)


@pytest.fixture
def wallet_provider() -> FakeWalletProvider:
    return FakeWalletProvider(
        accounts=[DONOR_A],
        balances={DONOR_A: 2 * ONE_ETH, DONOR_B: ONE_ETH // 2},
    )
