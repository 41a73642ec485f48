"""Static chain id -> display name table."""

from typing import Dict, Optional

NETWORK_NAMES: Dict[int, str] = {
    1: "Ethereum Mainnet",
    5: "Goerli Testnet",
    56: "BNB Smart Chain",
    137: "Polygon Mainnet",
    80001: "Mumbai Testnet",
    11155111: "Sepolia Testnet",
}

NOT_CONNECTED = "Not Connected"


def get_network_name(chain_id: Optional[int]) -> str:
    if chain_id is None:
        return NOT_CONNECTED
    return NETWORK_NAMES.get(int(chain_id), f"Network {chain_id}")
