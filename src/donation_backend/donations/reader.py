"""Ledger reader: parallel contract reads over a freshly resolved connection."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from web3 import Web3

from donation_backend.blockchain.endpoints import endpoint_pool_from_config
from donation_backend.blockchain.resolver import DEFAULT_TIMEOUT, ChainConnection, resolve
from donation_backend.donations.models import (
    NO_MESSAGE,
    AddressDonations,
    ContractInfo,
    DonationRecord,
    DonationStats,
    LedgerSnapshot,
)
from donation_backend.errors import AuxiliaryReadDegraded, LedgerReadFailed, NoHealthyEndpoint
from donation_backend.utils.config import get_config_value, get_float, get_int
from donation_backend.utils.formatting import format_ether, format_timestamp
from donation_backend.utils.logger import get_logger

logger = get_logger(__name__)

ABI_PATH = Path(__file__).parent.parent / "contracts" / "abi" / "DonationContract.abi"

ConnectionResolver = Callable[[], Awaitable[ChainConnection]]


class ReadPolicy(str, Enum):
    REQUIRED = "required"
    AUXILIARY = "auxiliary"


@dataclass(frozen=True)
class ContractRead:
    """A view call and what to do when it fails."""

    function: str
    policy: ReadPolicy
    default: Any = 0


@dataclass(frozen=True)
class ReadOutcome:
    read: ContractRead
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ReadResults:
    values: Dict[str, Any]
    degraded: Tuple[AuxiliaryReadDegraded, ...] = ()

    def __getitem__(self, read: ContractRead) -> Any:
        return self.values[read.function]

    @property
    def degraded_functions(self) -> Tuple[str, ...]:
        return tuple(item.function for item in self.degraded)


DONOR_COUNT = ContractRead("getDonorCount", ReadPolicy.REQUIRED)
TOTAL_DONATIONS = ContractRead("getTotalDonations", ReadPolicy.REQUIRED)
CONTRACT_BALANCE = ContractRead("getContractBalance", ReadPolicy.REQUIRED)
ALL_DONORS = ContractRead("getAllDonors", ReadPolicy.REQUIRED)
AVERAGE_DONATION = ContractRead("getAverageDonation", ReadPolicy.AUXILIARY, default=0)
LARGEST_DONATION = ContractRead("getLargestDonation", ReadPolicy.AUXILIARY, default=0)
OWNER = ContractRead("owner", ReadPolicy.AUXILIARY, default=None)

SNAPSHOT_READS = (DONOR_COUNT, TOTAL_DONATIONS, CONTRACT_BALANCE, ALL_DONORS, AVERAGE_DONATION, LARGEST_DONATION)
STATS_READS = (DONOR_COUNT, TOTAL_DONATIONS, CONTRACT_BALANCE, AVERAGE_DONATION, LARGEST_DONATION)
ADDRESS_READS = (ALL_DONORS,)
INFO_READS = (OWNER,)


def compose(outcomes: Iterable[ReadOutcome]) -> ReadResults:
    """Apply each read's policy to its outcome.

    The first failed required read (in table order) fails the whole batch;
    failed auxiliary reads take their default value.
    """
    values: Dict[str, Any] = {}
    degraded: List[AuxiliaryReadDegraded] = []
    for outcome in outcomes:
        read = outcome.read
        if outcome.ok:
            values[read.function] = outcome.value
            continue
        if read.policy is ReadPolicy.REQUIRED:
            raise LedgerReadFailed(read.function, outcome.error)
        logger.warning("Auxiliary read %s() failed, using %r: %s", read.function, read.default, outcome.error)
        degraded.append(AuxiliaryReadDegraded(read.function, outcome.error))
        values[read.function] = read.default
    return ReadResults(values=values, degraded=tuple(degraded))


def load_abi(path: Path = ABI_PATH) -> List[Dict[str, Any]]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _select(mapping_or_tuple: Any, key: str, index: int) -> Any:
    if isinstance(mapping_or_tuple, dict):
        if key in mapping_or_tuple:
            return mapping_or_tuple[key]
    return mapping_or_tuple[index]


def normalize_donor(index: int, raw: Any) -> DonationRecord:
    """Turn one raw `Donor` struct (tuple or mapping) into a record."""
    amount = int(_select(raw, "amount", 1))
    timestamp = int(_select(raw, "timestamp", 2))
    message = _select(raw, "message", 3) or NO_MESSAGE
    return DonationRecord(
        index=index,
        donor_address=str(_select(raw, "donorAddress", 0)),
        amount_wei=amount,
        timestamp=timestamp,
        message=message,
        amount_eth=format_ether(amount),
        iso_timestamp=format_timestamp(timestamp),
    )


def normalize_donors(raw_donors: Sequence[Any]) -> Tuple[DonationRecord, ...]:
    try:
        return tuple(normalize_donor(index, raw) for index, raw in enumerate(raw_donors))
    except (TypeError, ValueError, IndexError, KeyError, OverflowError) as exc:
        raise LedgerReadFailed(ALL_DONORS.function, exc) from exc


class LedgerReader:
    """Reads and aggregates the donation ledger.

    A new connection is resolved for every public call; a
    ``NoHealthyEndpoint`` from resolution propagates unchanged.
    """

    def __init__(
        self,
        resolve_connection: ConnectionResolver,
        contract_address: str,
        *,
        abi: Optional[List[Dict[str, Any]]] = None,
        read_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._resolve = resolve_connection
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.abi = abi if abi is not None else load_abi()
        self.read_timeout = read_timeout

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "LedgerReader":
        endpoints = endpoint_pool_from_config(config)
        rpc_timeout = get_float(config, "blockchain.rpc_timeout", DEFAULT_TIMEOUT)
        read_timeout = get_float(config, "blockchain.read_timeout", rpc_timeout)
        chain_id = get_int(config, "blockchain.chain_id", 0) or None
        logger.info(
            "Ledger reader using %d RPC endpoints (timeout %ss, chain id %s)",
            len(endpoints),
            rpc_timeout,
            chain_id,
        )
        resolver = partial(resolve, endpoints, expected_chain_id=chain_id, timeout=rpc_timeout)
        return cls(
            resolver,
            get_config_value(config, "blockchain.contract_address"),
            read_timeout=read_timeout,
        )

    async def _call(self, connection: ChainConnection, contract: Any, read: ContractRead) -> ReadOutcome:
        def _invoke():
            return getattr(contract.functions, read.function)().call()

        try:
            value = await connection.call(_invoke, self.read_timeout)
        except Exception as exc:
            if isinstance(exc, asyncio.TimeoutError):
                exc = TimeoutError(f"{read.function}() timed out after {self.read_timeout}s")
            return ReadOutcome(read=read, error=exc)
        return ReadOutcome(read=read, value=value)

    async def _run(self, reads: Sequence[ContractRead]) -> Tuple[ChainConnection, ReadResults]:
        connection = await self._resolve()
        try:
            contract = connection.contract(self.contract_address, self.abi)
            outcomes = await asyncio.gather(*(self._call(connection, contract, read) for read in reads))
        finally:
            await connection.close()
        return connection, compose(outcomes)

    async def read_snapshot(self) -> LedgerSnapshot:
        connection, results = await self._run(SNAPSHOT_READS)
        records = normalize_donors(results[ALL_DONORS])
        snapshot = LedgerSnapshot(
            donor_count=int(results[DONOR_COUNT]),
            total_wei=int(results[TOTAL_DONATIONS]),
            contract_balance_wei=int(results[CONTRACT_BALANCE]),
            records=records,
            average_wei=int(results[AVERAGE_DONATION]),
            largest_wei=int(results[LARGEST_DONATION]),
            contract_address=self.contract_address,
            chain_id=connection.chain_id,
            network_name=connection.network_name,
            block_number=connection.block_number,
            degraded=results.degraded_functions,
        )
        logger.info(
            "Ledger snapshot: %d donors, %s ETH total, %d records",
            snapshot.donor_count,
            snapshot.total_eth,
            len(records),
        )
        return snapshot

    async def read_stats(self) -> DonationStats:
        _, results = await self._run(STATS_READS)
        return DonationStats(
            donor_count=int(results[DONOR_COUNT]),
            total_wei=int(results[TOTAL_DONATIONS]),
            contract_balance_wei=int(results[CONTRACT_BALANCE]),
            average_wei=int(results[AVERAGE_DONATION]),
            largest_wei=int(results[LARGEST_DONATION]),
            degraded=results.degraded_functions,
        )

    async def read_for_address(self, address: str) -> AddressDonations:
        """Records whose donor matches ``address`` case-insensitively, in ledger order."""
        _, results = await self._run(ADDRESS_READS)
        wanted = address.lower()
        matched = tuple(
            record for record in normalize_donors(results[ALL_DONORS])
            if record.donor_address.lower() == wanted
        )
        total = 0
        for record in matched:
            total += record.amount_wei
        return AddressDonations(address=address, records=matched, total_wei=total)

    async def read_contract_info(self) -> ContractInfo:
        connection, results = await self._run(INFO_READS)
        owner = results[OWNER]
        return ContractInfo(
            address=self.contract_address,
            network_name=connection.network_name,
            owner=str(owner) if owner else None,
        )

    async def health_check(self) -> Dict[str, Any]:
        try:
            connection = await self._resolve()
        except NoHealthyEndpoint as exc:
            return {
                "status": "error",
                "failures": [{"url": item.url, "reason": item.reason} for item in exc.failures],
            }
        await connection.close()
        return {
            "status": "healthy",
            "endpoint": connection.endpoint.url,
            "chainId": connection.chain_id,
            "network": connection.network_name,
            "latestBlock": connection.block_number,
        }
