"""Core data models for the donation ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

from donation_backend.utils.formatting import format_ether

NO_MESSAGE = "No message"


@dataclass(frozen=True)
class DonationRecord:
    """One normalized entry of the on-chain `Donor[]` array."""

    index: int
    donor_address: str
    amount_wei: int
    timestamp: int
    message: str
    amount_eth: str
    iso_timestamp: str


@dataclass(frozen=True)
class DonationStats:
    """Scalar aggregates, without the donor list."""

    donor_count: int
    total_wei: int
    contract_balance_wei: int
    average_wei: int = 0
    largest_wei: int = 0
    degraded: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LedgerSnapshot:
    """Point-in-time aggregation of the ledger.

    The underlying reads are issued concurrently and may observe different
    block heights; fields are consistent on a best-effort basis only.
    """

    donor_count: int
    total_wei: int
    contract_balance_wei: int
    records: Tuple[DonationRecord, ...]
    average_wei: int = 0
    largest_wei: int = 0
    contract_address: str = ""
    chain_id: Optional[int] = None
    network_name: str = ""
    block_number: Optional[int] = None
    degraded: Tuple[str, ...] = ()

    @property
    def total_eth(self) -> str:
        return format_ether(self.total_wei)

    @property
    def contract_balance_eth(self) -> str:
        return format_ether(self.contract_balance_wei)

    @property
    def average_eth(self) -> str:
        return format_ether(self.average_wei)

    @property
    def largest_eth(self) -> str:
        return format_ether(self.largest_wei)


@dataclass(frozen=True)
class AddressDonations:
    """Ledger entries of a single donor, in ledger order."""

    address: str
    records: Tuple[DonationRecord, ...] = field(default_factory=tuple)
    total_wei: int = 0

    @property
    def donation_count(self) -> int:
        return len(self.records)

    @property
    def total_eth(self) -> str:
        return format_ether(self.total_wei)


@dataclass(frozen=True)
class ContractInfo:
    address: str
    network_name: str
    owner: Optional[str] = None
