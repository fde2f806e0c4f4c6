"""Address ledger.

Remember where contracts were deployed, per chain and per logical slot,
so that an interrupted deployment can be resumed without redeploying anything.

- The zero address is never stored. A missing entry is ``None``.

- Seed the ledger from the JSON file written by a previous run,
  see :py:meth:`AddressLedger.load_json`

- Verification inputs for reused addresses can be reconstructed
  with :py:func:`recover_verification_artifacts`
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from eth_typing import HexAddress
from eth_utils import encode_hex
from web3 import Web3

from eth_deployer.abi import ContractArtifact
from eth_deployer.client import ChainClient
from eth_deployer.eip1967 import get_proxy_admin, get_proxy_constructor_args, get_proxy_implementation, is_proxy
from eth_deployer.utils import eq_address, is_zero_address

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class VerificationArtifact:
    """What a block explorer needs to verify the source of a deployed contract."""

    #: Solidity contract name
    name: str

    address: HexAddress

    #: ABI encoded constructor arguments, 0x prefixed hex
    constructor_arguments: str

    #: Is this the proxy wrapping an implementation
    is_proxy: bool = False

    #: Implementation the proxy points to
    expected_implementation: Optional[HexAddress] = None

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "address": self.address,
            "constructorArguments": self.constructor_arguments,
            "isProxy": self.is_proxy,
        }
        if self.expected_implementation:
            data["expectedimplementation"] = self.expected_implementation
        return data

    @staticmethod
    def from_dict(data: dict) -> "VerificationArtifact":
        return VerificationArtifact(
            name=data["name"],
            address=Web3.to_checksum_address(data["address"]),
            constructor_arguments=data.get("constructorArguments", "0x"),
            is_proxy=data.get("isProxy", False),
            expected_implementation=data.get("expectedimplementation"),
        )


@dataclass(slots=True)
class ModuleDeployment:
    """Result of deploying a pluggable module, like an ISM or a hook."""

    #: The module the caller should point to
    address: HexAddress

    #: All contracts deployed as a part of the module, slot -> address
    contracts: dict[str, HexAddress] = field(default_factory=dict)

    verification_artifacts: list[VerificationArtifact] = field(default_factory=list)


class AddressLedger:
    """``(chain, slot) -> address`` mapping.

    .. code-block:: python

        ledger = AddressLedger.load_json(Path("addresses.json"))
        mailbox = ledger.lookup("arbitrum", "mailbox")
        if mailbox is None:
            ...  # deploy fresh
    """

    def __init__(self, data: dict[str, dict[str, str]] | None = None):
        self.data: dict[str, dict[str, HexAddress]] = {}
        if data:
            self.seed(data)

    def __repr__(self):
        return f"<AddressLedger chains:{', '.join(self.data)}>"

    def seed(self, data: dict[str, dict[str, str]]):
        """Merge persisted addresses.

        Zero addresses are treated as absent.
        """
        for chain, slots in data.items():
            for slot, address in slots.items():
                if is_zero_address(address):
                    logger.debug("Ignoring zero address for %s %s", chain, slot)
                    continue
                self.bind(chain, slot, address)

    def lookup(self, chain: str, slot: str) -> HexAddress | None:
        return self.data.get(chain, {}).get(slot)

    def bind(self, chain: str, slot: str, address: HexAddress | str):
        """Record where a slot lives. Last write wins."""
        assert not is_zero_address(address), f"Cannot bind zero address to {chain} {slot}"
        address = Web3.to_checksum_address(address)
        previous = self.lookup(chain, slot)
        if previous and not eq_address(previous, address):
            logger.info("%s: %s moves from %s to %s", chain, slot, previous, address)
        self.data.setdefault(chain, {})[slot] = address

    def slice(self, chain: str) -> dict[str, HexAddress]:
        """Copy of all addresses of one chain."""
        return dict(self.data.get(chain, {}))

    def chains(self) -> list[str]:
        return list(self.data.keys())

    def to_dict(self) -> dict[str, dict[str, HexAddress]]:
        return {chain: dict(slots) for chain, slots in self.data.items()}

    @staticmethod
    def from_dict(data: dict) -> "AddressLedger":
        return AddressLedger(data)

    @staticmethod
    def load_json(path: Path) -> "AddressLedger":
        """Read a ledger file.

        A missing file gives an empty ledger.
        """
        if not path.exists():
            return AddressLedger()
        with open(path, "rt", encoding="utf-8") as f:
            return AddressLedger.from_dict(json.load(f))

    def save_json(self, path: Path):
        with open(path, "wt", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, sort_keys=True)


def build_verification_artifact(
    artifact: ContractArtifact,
    address: HexAddress,
    constructor_args: list,
    is_proxy: bool = False,
    expected_implementation: HexAddress | None = None,
) -> VerificationArtifact:
    return VerificationArtifact(
        name=artifact.name,
        address=Web3.to_checksum_address(address),
        constructor_arguments=encode_hex(artifact.encode_deploy(constructor_args)),
        is_proxy=is_proxy,
        expected_implementation=expected_implementation,
    )


def recover_verification_artifacts(
    client: ChainClient,
    chain: str,
    address: HexAddress,
    artifact: ContractArtifact,
    proxy_artifact: ContractArtifact,
    constructor_args: list,
    initialize_args: list | None = None,
) -> list[VerificationArtifact]:
    """Reconstruct verification inputs of a contract we did not deploy in this run.

    :return:
        Implementation and proxy artifacts if the address is a proxy,
        otherwise the implementation artifact only
    """
    if not is_proxy(client, chain, address):
        return [build_verification_artifact(artifact, address, constructor_args)]

    implementation = get_proxy_implementation(client, chain, address)
    admin = get_proxy_admin(client, chain, address)
    proxy_args = get_proxy_constructor_args(artifact, implementation, admin, initialize_args)
    logger.debug("%s: recovered proxy %s with implementation %s admin %s", chain, address, implementation, admin)
    return [
        build_verification_artifact(artifact, implementation, constructor_args),
        build_verification_artifact(proxy_artifact, address, proxy_args, is_proxy=True, expected_implementation=implementation),
    ]


def merge_verification_artifacts(
    existing: dict[str, Iterable[VerificationArtifact]],
    new: dict[str, Iterable[VerificationArtifact]],
) -> dict[str, list[VerificationArtifact]]:
    """Union persisted and freshly produced verification artifacts.

    Entries are unique by ``(name, address)``. New entries replace old ones.
    """
    merged: dict[str, dict[tuple[str, str], VerificationArtifact]] = {}
    for source in (existing, new):
        for chain, artifacts in source.items():
            chain_artifacts = merged.setdefault(chain, {})
            for a in artifacts:
                chain_artifacts[(a.name, a.address.lower())] = a
    return {chain: list(artifacts.values()) for chain, artifacts in merged.items()}
