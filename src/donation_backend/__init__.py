"""Read-only API over an on-chain donation ledger, with RPC failover and a wallet session model."""

__version__ = "1.0.0"
