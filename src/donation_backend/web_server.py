"""FastAPI web server exposing the donation ledger read path."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from web3 import Web3

from donation_backend.blockchain.networks import get_network_name
from donation_backend.donations.models import DonationRecord
from donation_backend.donations.reader import LedgerReader
from donation_backend.errors import DonationBackendError
from donation_backend.utils.config import get_config_value, get_int
from donation_backend.utils.formatting import format_ether
from donation_backend.utils.logger import get_logger

logger = get_logger(__name__)

UNKNOWN_OWNER = "Unknown"


class DonationItem(BaseModel):
    id: int
    donor: str
    amount: str
    amountWei: str
    timestamp: str
    message: str
    transactionUrl: str


class AddressDonationItem(BaseModel):
    amount: str
    message: str
    timestamp: str


class StatsBlock(BaseModel):
    averageDonation: str = "0"
    largestDonation: str = "0"


class DonationsResponse(BaseModel):
    """Full ledger snapshot. The defaults are the zeroed failure payload."""

    success: bool = False
    message: str = ""
    contractAddress: str = ""
    network: str = ""
    donorCount: int = 0
    totalDonations: str = "0"
    contractBalance: str = "0"
    donations: List[DonationItem] = Field(default_factory=list)
    stats: StatsBlock = Field(default_factory=StatsBlock)


class StatsResponse(BaseModel):
    success: bool = False
    message: Optional[str] = None
    totalDonations: str = "0"
    donorCount: int = 0
    averageDonation: str = "0"
    largestDonation: str = "0"
    contractBalance: str = "0"
    network: Optional[str] = None


class AddressDonationsResponse(BaseModel):
    success: bool = False
    message: Optional[str] = None
    address: str = ""
    donationCount: int = 0
    totalDonated: str = "0"
    donations: List[AddressDonationItem] = Field(default_factory=list)


class ContractInfoResponse(BaseModel):
    success: bool = False
    message: Optional[str] = None
    contractAddress: str = ""
    network: str = ""
    owner: str = UNKNOWN_OWNER
    etherscanUrl: Optional[str] = None


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DonationWebServer:
    """HTTP gateway for the donation ledger.

    Every read goes through the ``LedgerReader``; backend failures are
    logged and answered with the zeroed placeholder of the matching
    response model, never with the raw error.
    """

    def __init__(self, config: Dict[str, Any], reader: LedgerReader) -> None:
        self.config = config
        self.reader = reader
        self.explorer_url = str(get_config_value(config, "blockchain.explorer_url", "https://sepolia.etherscan.io")).rstrip("/")
        self.contract_address = getattr(reader, "contract_address", "") or ""

        self.app = FastAPI(
            title="Donation Ledger API",
            description="Read-only API over the on-chain donation contract",
            version="1.0.0",
        )

        self._setup_middleware()
        self._setup_routes()

    # ------------------------------------------------------------------
    # FastAPI scaffolding
    # ------------------------------------------------------------------
    def _setup_middleware(self) -> None:
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _setup_routes(self) -> None:
        @self.app.get("/api/health")
        async def health_check() -> Dict[str, Any]:
            try:
                blockchain = await self.reader.health_check()
            except Exception as exc:
                logger.warning("Blockchain health probe failed: %s", exc)
                blockchain = {"status": "error"}
            return {
                "status": "OK",
                "message": "Backend is running",
                "timestamp": _utc_now(),
                "blockchain": blockchain,
            }

        @self.app.get("/api/donations")
        async def get_donations() -> JSONResponse:
            try:
                snapshot = await self.reader.read_snapshot()
            except Exception as exc:
                self._log_failure("donations", exc)
                placeholder = DonationsResponse(
                    message="Error reading from contract",
                    contractAddress=self.contract_address,
                )
                return JSONResponse(status_code=500, content=placeholder.model_dump())

            response = DonationsResponse(
                success=True,
                message="Data retrieved successfully from blockchain",
                contractAddress=snapshot.contract_address,
                network=snapshot.network_name,
                donorCount=snapshot.donor_count,
                totalDonations=snapshot.total_eth,
                contractBalance=snapshot.contract_balance_eth,
                donations=[self._serialize_donation(record) for record in snapshot.records],
                stats=StatsBlock(
                    averageDonation=snapshot.average_eth,
                    largestDonation=snapshot.largest_eth,
                ),
            )
            return JSONResponse(content=response.model_dump())

        @self.app.get("/api/donations/stats")
        async def get_stats() -> Dict[str, Any]:
            try:
                stats = await self.reader.read_stats()
            except Exception as exc:
                self._log_failure("stats", exc)
                return StatsResponse(message="Using placeholder stats").model_dump()

            return StatsResponse(
                success=True,
                totalDonations=format_ether(stats.total_wei),
                donorCount=stats.donor_count,
                averageDonation=format_ether(stats.average_wei),
                largestDonation=format_ether(stats.largest_wei),
                contractBalance=format_ether(stats.contract_balance_wei),
                network=self._network_label(),
            ).model_dump()

        @self.app.get("/api/donations/address/{address}")
        async def get_address_donations(address: str) -> Dict[str, Any]:
            if not Web3.is_address(address):
                return AddressDonationsResponse(message="Invalid address", address=address).model_dump()
            try:
                result = await self.reader.read_for_address(address)
            except Exception as exc:
                self._log_failure("address donations", exc)
                return AddressDonationsResponse(
                    message="Error fetching donations for address",
                    address=address,
                ).model_dump()

            return AddressDonationsResponse(
                success=True,
                address=address,
                donationCount=result.donation_count,
                totalDonated=result.total_eth,
                donations=[
                    AddressDonationItem(
                        amount=record.amount_eth,
                        message=record.message,
                        timestamp=record.iso_timestamp,
                    )
                    for record in result.records
                ],
            ).model_dump()

        @self.app.get("/api/donations/info")
        async def get_contract_info() -> Dict[str, Any]:
            try:
                info = await self.reader.read_contract_info()
            except Exception as exc:
                self._log_failure("contract info", exc)
                return ContractInfoResponse(
                    message="RPC connection failed",
                    contractAddress=self.contract_address,
                    network=self._network_label(),
                ).model_dump()

            return ContractInfoResponse(
                success=True,
                contractAddress=info.address,
                network=info.network_name,
                owner=info.owner or UNKNOWN_OWNER,
                etherscanUrl=f"{self.explorer_url}/address/{info.address}",
            ).model_dump()

        @self.app.exception_handler(404)
        async def not_found(request: Request, exc: Exception) -> JSONResponse:
            return JSONResponse(status_code=404, content={"success": False, "message": "Route not found"})

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    async def start(self, host: str = "0.0.0.0", port: int = 5000) -> None:
        import uvicorn

        logger.info("Starting donation API on %s:%s", host, port)
        config = uvicorn.Config(self.app, host=host, port=port, log_level="info", access_log=True)
        server = uvicorn.Server(config)
        try:
            await server.serve()
        finally:
            logger.info("Donation API stopped")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _log_failure(self, what: str, exc: Exception) -> None:
        if isinstance(exc, DonationBackendError):
            logger.error("Failed to read %s: %s", what, exc)
        else:
            logger.exception("Unexpected error while reading %s", what)

    def _network_label(self) -> str:
        chain_id = get_int(self.config, "blockchain.chain_id", 0)
        return get_network_name(chain_id) if chain_id else ""

    def _serialize_donation(self, record: DonationRecord) -> DonationItem:
        return DonationItem(
            id=record.index,
            donor=record.donor_address,
            amount=record.amount_eth,
            amountWei=str(record.amount_wei),
            timestamp=record.iso_timestamp,
            message=record.message,
            transactionUrl=f"{self.explorer_url}/address/{record.donor_address}",
        )
