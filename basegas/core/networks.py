# /basegas/core/networks.py
# Known Base networks and their public RPC endpoints.
from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class NetworkPreset:
    name: str
    chain_id: int
    rpc_url: str
    explorer_url: str
    testnet: bool = False


NETWORKS: Dict[str, NetworkPreset] = {
    "base": NetworkPreset("base", 8453, "https://mainnet.base.org", "https://basescan.org"),
    "base-sepolia": NetworkPreset("base-sepolia", 84532, "https://sepolia.base.org", "https://sepolia.basescan.org", testnet=True),
    "base-goerli": NetworkPreset("base-goerli", 84531, "https://goerli.base.org", "https://goerli.basescan.org", testnet=True),
}


def get_network(name: str) -> NetworkPreset:
    try:
        return NETWORKS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown network '{name}'. Known: {', '.join(sorted(NETWORKS))}") from None


def is_base_chain(chain_id: int) -> bool:
    return any(n.chain_id == chain_id for n in NETWORKS.values())
