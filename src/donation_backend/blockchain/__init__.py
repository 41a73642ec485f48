"""RPC endpoint pool, network table and failover resolver."""
