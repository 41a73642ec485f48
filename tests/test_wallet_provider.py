import asyncio

import pytest

from conftest import DONOR_A, DONOR_B, SEPOLIA
from donation_backend.errors import UserRejected, WalletQueryFailed
from donation_backend.wallet.provider import ACCOUNTS_CHANGED, Web3WalletProvider
from donation_backend.wallet.session import SessionState, WalletSession


class _RpcProvider:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def make_request(self, method, params):
        self.requests.append((method, params))
        return self.response


class _Eth:
    accounts = [DONOR_A]
    chain_id = SEPOLIA

    def get_balance(self, address):
        return {DONOR_A: 10, DONOR_B: 20}[address]


class _Web3:
    def __init__(self, response):
        self.provider = _RpcProvider(response)
        self.eth = _Eth()


def test_request_accounts_returns_granted_accounts():
    w3 = _Web3({"jsonrpc": "2.0", "id": 1, "result": [DONOR_A]})
    provider = Web3WalletProvider(w3)
    assert asyncio.run(provider.request_accounts()) == [DONOR_A]
    assert w3.provider.requests == [("eth_requestAccounts", [])]


def test_user_rejection_code_maps_to_user_rejected():
    provider = Web3WalletProvider(_Web3({"error": {"code": 4001, "message": "User rejected the request."}}))
    with pytest.raises(UserRejected):
        asyncio.run(provider.request_accounts())


def test_other_rpc_errors_map_to_query_failed():
    provider = Web3WalletProvider(_Web3({"error": {"code": -32603, "message": "Internal error"}}))
    with pytest.raises(WalletQueryFailed):
        asyncio.run(provider.request_accounts())


def test_session_over_web3_provider():
    provider = Web3WalletProvider(_Web3({"result": [DONOR_A]}))
    session = WalletSession(provider)

    async def scenario():
        await session.initialize()
        await session.connect()
        await provider.emit(ACCOUNTS_CHANGED, [DONOR_B])

    asyncio.run(scenario())

    assert provider.listener_count(ACCOUNTS_CHANGED) == 1
    assert session.state is SessionState.CONNECTED
    assert session.snapshot.address == DONOR_B
    assert session.snapshot.balance_wei == 20


def test_emit_survives_failing_handler():
    provider = Web3WalletProvider(_Web3({"result": []}))
    seen = []

    async def broken(payload):
        raise RuntimeError("boom")

    async def recorder(payload):
        seen.append(payload)

    provider.on(ACCOUNTS_CHANGED, broken)
    provider.on(ACCOUNTS_CHANGED, recorder)
    asyncio.run(provider.emit(ACCOUNTS_CHANGED, [DONOR_A]))
    assert seen == [[DONOR_A]]

    provider.remove_all_listeners()
    assert provider.listener_count(ACCOUNTS_CHANGED) == 0
