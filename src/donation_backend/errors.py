"""
Error taxonomy for the donation backend.

Read-path errors propagate to the HTTP boundary, which turns them into
zeroed placeholder responses. Wallet errors end a single connect/refresh
attempt and never corrupt the current session snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple


class DonationBackendError(Exception):
    """Base exception for backend errors."""


@dataclass(frozen=True)
class EndpointFailure:
    """Why a single RPC endpoint was rejected during resolution."""

    url: str
    reason: str


class NoHealthyEndpoint(DonationBackendError):
    """Every configured RPC endpoint failed liveness validation."""

    def __init__(self, failures: Sequence[EndpointFailure]):
        self.failures: Tuple[EndpointFailure, ...] = tuple(failures)
        summary = "; ".join(f"{item.url}: {item.reason}" for item in self.failures) or "no endpoints configured"
        super().__init__(f"All RPC endpoints failed ({summary})")


class LedgerReadFailed(DonationBackendError):
    """A required contract read failed after a connection was established."""

    def __init__(self, function: str, cause: BaseException):
        self.function = function
        self.cause = cause
        super().__init__(f"Required read {function}() failed: {cause!r}")


class AuxiliaryReadDegraded(DonationBackendError):
    """An auxiliary read failed and its value was replaced by a default.

    Never raised out of the reader; kept on the snapshot for diagnostics.
    """

    def __init__(self, function: str, cause: BaseException):
        self.function = function
        self.cause = cause
        super().__init__(f"Auxiliary read {function}() degraded to default: {cause!r}")


class WalletError(DonationBackendError):
    """Base class for wallet session errors."""


class WalletProviderUnavailable(WalletError):
    """No injected wallet provider is present."""


class UserRejected(WalletError):
    """The user declined the wallet permission prompt."""


class WalletQueryFailed(WalletError):
    """Balance or network lookup against the wallet failed."""
