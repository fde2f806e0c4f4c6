"""Chain metadata.

The deployer addresses chains by their name, like ``ethereum`` or ``arbitrum``.
:py:class:`ChainRegistry` maps these names to chain ids, messaging domain ids,
RPC endpoints and block explorers.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from eth_typing import HexAddress

logger = logging.getLogger(__name__)


#: Block explorer for a chain id
EXPLORER_URLS = {
    1: "https://etherscan.io",  # Ethereum
    56: "https://bscscan.com",  # Binance Smart Chain (BSC)
    137: "https://polygonscan.com",  # Polygon
    43114: "https://snowscan.xyz",  # Avalanche C-Chain
    8453: "https://basescan.org",  # Base
    5000: "https://mantlescan.xyz",  # Mantle
    42161: "https://arbiscan.io",  # Arbitrum One
    10: "https://optimistic.etherscan.io",  # Optimism
    100: "https://gnosisscan.io",  # Gnosis Chain
    42220: "https://celoscan.io",  # Celo
    11155111: "https://sepolia.etherscan.io",  # Sepolia
}


class UnknownChain(KeyError):
    """Chain name is not in the registry."""


@dataclass(slots=True, frozen=True)
class ChainMetadata:
    """Static information about one target chain."""

    #: Chain name used as the key everywhere, e.g. ``ethereum``
    name: str

    #: EVM chain id
    chain_id: int

    #: Messaging domain id.
    #:
    #: Defaults to the chain id.
    domain_id: Optional[int] = None

    #: ``ethereum`` for EVM chains.
    #:
    #: Chains of other protocols are skipped by the deployer.
    protocol: str = "ethereum"

    #: Default JSON-RPC endpoint
    json_rpc_url: Optional[str] = None

    #: Block explorer base URL, without trailing slash
    explorer_url: Optional[str] = None

    def __post_init__(self):
        assert type(self.chain_id) == int, f"Chain id must be int, got {self.chain_id}"
        if self.domain_id is None:
            object.__setattr__(self, "domain_id", self.chain_id)
        if self.explorer_url is None:
            object.__setattr__(self, "explorer_url", EXPLORER_URLS.get(self.chain_id))

    @staticmethod
    def from_dict(name: str, data: dict) -> "ChainMetadata":
        return ChainMetadata(
            name=name,
            chain_id=int(data["chainId"]),
            domain_id=data.get("domainId"),
            protocol=data.get("protocol", "ethereum"),
            json_rpc_url=data.get("rpcUrl"),
            explorer_url=data.get("explorerUrl"),
        )


#: Chains known out of the box
KNOWN_CHAINS = [
    ChainMetadata("ethereum", 1),
    ChainMetadata("optimism", 10),
    ChainMetadata("bsc", 56),
    ChainMetadata("gnosis", 100),
    ChainMetadata("polygon", 137),
    ChainMetadata("mantle", 5000),
    ChainMetadata("base", 8453),
    ChainMetadata("arbitrum", 42161),
    ChainMetadata("celo", 42220),
    ChainMetadata("avalanche", 43114),
    ChainMetadata("sepolia", 11155111),
]


class ChainRegistry:
    """Lookup table of chain metadata by chain name."""

    def __init__(self, chains: Iterable[ChainMetadata] = KNOWN_CHAINS):
        self.chains: dict[str, ChainMetadata] = {c.name: c for c in chains}

    def __repr__(self):
        return f"<ChainRegistry {', '.join(self.chains)}>"

    def add(self, metadata: ChainMetadata):
        self.chains[metadata.name] = metadata

    def has_chain(self, chain: str) -> bool:
        return chain in self.chains

    def get_chain_metadata(self, chain: str) -> ChainMetadata:
        try:
            return self.chains[chain]
        except KeyError as e:
            raise UnknownChain(f"Chain {chain} not in the registry. Known chains: {', '.join(self.chains)}") from e

    def get_chain_id(self, chain: str) -> int:
        return self.get_chain_metadata(chain).chain_id

    def get_domain_id(self, chain: str) -> int:
        return self.get_chain_metadata(chain).domain_id

    def get_chain_name(self, domain_id: int) -> str:
        """Reverse lookup from a messaging domain id."""
        for metadata in self.chains.values():
            if metadata.domain_id == domain_id:
                return metadata.name
        raise UnknownChain(f"No chain with domain id {domain_id}")

    def intersect(self, chains: Iterable[str]) -> tuple[list[str], list[str]]:
        """Split target chains to the ones we can deploy and the ones we cannot.

        :return:
            Tuple (known EVM chains, skipped chains), input order preserved
        """
        targets = []
        skipped = []
        for chain in chains:
            metadata = self.chains.get(chain)
            if metadata is None or metadata.protocol != "ethereum":
                skipped.append(chain)
            else:
                targets.append(chain)
        return targets, skipped

    def get_explorer_address_url(self, chain: str, address: HexAddress | str) -> str | None:
        """Get the block explorer link for an address.

        :return:
            ``None`` if the chain has no known explorer
        """
        url = self.get_chain_metadata(chain).explorer_url
        if url is None:
            return None
        return f"{url}/address/{address}"
