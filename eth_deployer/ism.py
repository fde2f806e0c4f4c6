"""Interchain security modules (ISMs).

An ISM decides whether an inbound message is accepted.
The deployer wants a default ISM on the mailbox, given either

- as a literal address of an existing module, or

- as a structural description, like "merkle root multisig of validators A and B with threshold 2"

Structural configs are compared against what is live on chain
by :py:func:`module_matches_config`, so a matching module is reused regardless of its address.
A new module is deployed through an :py:class:`IsmDeployer` only when nothing matches.
"""

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Union

from eth_abi.exceptions import DecodingError
from eth_typing import HexAddress
from web3 import Web3

from eth_deployer.abi import ZERO_ADDRESS, ArtifactRegistry, DeployedContract, load_artifact
from eth_deployer.chain import ChainRegistry
from eth_deployer.client import ChainClient, DeploymentError, TransactionFailed
from eth_deployer.ledger import AddressLedger, ModuleDeployment, build_verification_artifact
from eth_deployer.utils import eq_address

logger = logging.getLogger(__name__)


class ModuleType(enum.IntEnum):
    """Return values of ``IInterchainSecurityModule.moduleType()``."""

    UNUSED = 0
    ROUTING = 1
    AGGREGATION = 2
    LEGACY_MULTISIG = 3
    MERKLE_ROOT_MULTISIG = 4
    MESSAGE_ID_MULTISIG = 5
    NULL = 6
    CCIP_READ = 7


class IsmType(enum.Enum):
    """ISM config ``type`` field."""

    merkle_root_multisig = "merkleRootMultisigIsm"
    message_id_multisig = "messageIdMultisigIsm"
    aggregation = "aggregationIsm"
    routing = "domainRoutingIsm"
    test = "testIsm"


#: Which on-chain module type each multisig flavour reports
MULTISIG_MODULE_TYPES = {
    IsmType.merkle_root_multisig: ModuleType.MERKLE_ROOT_MULTISIG,
    IsmType.message_id_multisig: ModuleType.MESSAGE_ID_MULTISIG,
}

#: Ledger slots of the static factories
FACTORY_SLOTS = {
    IsmType.merkle_root_multisig: "staticMerkleRootMultisigIsmFactory",
    IsmType.message_id_multisig: "staticMessageIdMultisigIsmFactory",
    IsmType.aggregation: "staticAggregationIsmFactory",
}


class MissingIsmDeployer(DeploymentError):
    """A structural ISM config needs deploying, but no deployer was given."""


@dataclass(slots=True, frozen=True)
class MultisigIsmConfig:
    """m-of-n validator signatures."""

    type: IsmType

    validators: tuple[HexAddress, ...]

    threshold: int

    def __post_init__(self):
        assert self.type in MULTISIG_MODULE_TYPES, f"Not a multisig type: {self.type}"
        assert 0 < self.threshold <= len(self.validators), f"Bad threshold {self.threshold} for {len(self.validators)} validators"


@dataclass(slots=True, frozen=True)
class AggregationIsmConfig:
    """m-of-n sub-modules must accept."""

    modules: tuple["IsmConfig", ...]

    threshold: int

    type: IsmType = IsmType.aggregation

    def __post_init__(self):
        assert 0 < self.threshold <= len(self.modules), f"Bad threshold {self.threshold} for {len(self.modules)} modules"


@dataclass(slots=True, frozen=True)
class RoutingIsmConfig:
    """Pick a module by the origin chain of the message."""

    owner: HexAddress

    #: Origin chain name -> module
    domains: dict[str, "IsmConfig"] = field(default_factory=dict)

    type: IsmType = IsmType.routing


@dataclass(slots=True, frozen=True)
class TestIsmConfig:
    """Accept everything. Test deployments only."""

    type: IsmType = IsmType.test


#: Literal address or a structural description
IsmConfig = Union[str, MultisigIsmConfig, AggregationIsmConfig, RoutingIsmConfig, TestIsmConfig]


def parse_ism_config(data: str | dict) -> IsmConfig:
    """Parse ISM config from JSON.

    Example:

    .. code-block:: python

        config = parse_ism_config({
            "type": "merkleRootMultisigIsm",
            "validators": ["0x...", "0x..."],
            "threshold": 2,
        })
    """
    if isinstance(data, str):
        return Web3.to_checksum_address(data)

    ism_type = IsmType(data["type"])
    match ism_type:
        case IsmType.merkle_root_multisig | IsmType.message_id_multisig:
            return MultisigIsmConfig(
                ism_type,
                tuple(Web3.to_checksum_address(v) for v in data["validators"]),
                int(data["threshold"]),
            )
        case IsmType.aggregation:
            return AggregationIsmConfig(tuple(parse_ism_config(m) for m in data["modules"]), int(data["threshold"]))
        case IsmType.routing:
            return RoutingIsmConfig(
                Web3.to_checksum_address(data["owner"]),
                {chain: parse_ism_config(c) for chain, c in data["domains"].items()},
            )
        case IsmType.test:
            return TestIsmConfig()


def _sorted_addresses(addresses) -> list[HexAddress]:
    return sorted((Web3.to_checksum_address(a) for a in addresses), key=str.lower)


def module_matches_config(
    client: ChainClient,
    registry: ChainRegistry,
    chain: str,
    address: HexAddress,
    config: IsmConfig,
) -> bool:
    """Does the live module at the address do what the config describes.

    - Literal configs match by address

    - Multisig: same validator set, in any order, and the same threshold

    - Aggregation: same threshold and every configured sub-module matches a distinct live sub-module

    - Routing: same owner, same origin domains and every domain module matches recursively

    A contract that does not answer the module interface does not match.
    """

    if isinstance(config, str):
        return eq_address(address, config)

    if not client.has_code(chain, address):
        return False

    try:
        return _module_matches_config(client, registry, chain, address, config)
    except (TransactionFailed, DecodingError) as e:
        logger.debug("%s: module %s does not answer as %s: %s", chain, address, config.type.value, e)
        return False


def _module_matches_config(client, registry, chain, address, config) -> bool:
    ism = DeployedContract("ism", address, load_artifact("IInterchainSecurityModule"))
    module_type = client.call_function(chain, ism, "moduleType")

    match config:
        case MultisigIsmConfig():
            if module_type != MULTISIG_MODULE_TYPES[config.type]:
                return False
            multisig = DeployedContract("ism", address, load_artifact("IMultisigIsm"))
            validators, threshold = client.call_function(chain, multisig, "validatorsAndThreshold", b"")
            return threshold == config.threshold and {v.lower() for v in validators} == {v.lower() for v in config.validators}

        case AggregationIsmConfig():
            if module_type != ModuleType.AGGREGATION:
                return False
            aggregation = DeployedContract("ism", address, load_artifact("IAggregationIsm"))
            modules, threshold = client.call_function(chain, aggregation, "modulesAndThreshold", b"")
            if threshold != config.threshold or len(modules) != len(config.modules):
                return False
            unmatched = list(modules)
            for sub_config in config.modules:
                for candidate in unmatched:
                    if module_matches_config(client, registry, chain, candidate, sub_config):
                        unmatched.remove(candidate)
                        break
                else:
                    return False
            return True

        case RoutingIsmConfig():
            if module_type != ModuleType.ROUTING:
                return False
            routing = DeployedContract("ism", address, load_artifact("DomainRoutingIsm"))
            if not eq_address(client.call_function(chain, routing, "owner"), config.owner):
                return False
            live_domains = set(client.call_function(chain, routing, "domains"))
            wanted = {registry.get_domain_id(origin): sub_config for origin, sub_config in config.domains.items()}
            if live_domains != set(wanted):
                return False
            for domain, sub_config in wanted.items():
                sub_module = client.call_function(chain, routing, "module", domain)
                if not module_matches_config(client, registry, chain, sub_module, sub_config):
                    return False
            return True

        case TestIsmConfig():
            return module_type == ModuleType.NULL

    raise AssertionError(f"Unknown ISM config: {config}")


class IsmDeployer(ABC):
    """Deploy ISMs from structural configs."""

    def __init__(self, client: ChainClient, registry: ChainRegistry):
        self.client = client
        self.registry = registry
        self.ledger: Optional[AddressLedger] = None

    def use_ledger(self, ledger: AddressLedger):
        """Share the address ledger of the deployer, to find factories and earlier deployments."""
        self.ledger = ledger

    def use_client(self, client: ChainClient):
        """Route chain calls through the deployer's client, so they count against the chain budget."""
        self.client = client

    @abstractmethod
    def deploy(self, chain: str, config: IsmConfig, mailbox: HexAddress) -> ModuleDeployment:
        """Deploy a module satisfying the config on the chain."""

    def structurally_matches(self, chain: str, address: HexAddress, config: IsmConfig) -> bool:
        return module_matches_config(self.client, self.registry, chain, address, config)


class FactoryIsmDeployer(IsmDeployer):
    """Deploy ISMs through the static factories.

    - Multisig and aggregation modules come from CREATE2 factories, so the same
      config always gives the same address and deploying twice is a no-op

    - Routing and test modules are deployed from artifacts

    The factory addresses are read from the ledger, under the slots in :py:data:`FACTORY_SLOTS`.
    """

    def __init__(self, client: ChainClient, registry: ChainRegistry, artifacts: ArtifactRegistry | None = None):
        super().__init__(client, registry)
        self.artifacts = artifacts or ArtifactRegistry()

    def get_factory(self, chain: str, ism_type: IsmType) -> DeployedContract:
        slot = FACTORY_SLOTS[ism_type]
        address = self.ledger.lookup(chain, slot) if self.ledger else None
        if address is None:
            raise DeploymentError(f"No {slot} known on {chain}, cannot deploy {ism_type.value}")
        return DeployedContract(slot, address, load_artifact("IStaticThresholdAddressSetFactory"))

    def deploy_static(self, chain: str, ism_type: IsmType, values: list[HexAddress], threshold: int) -> HexAddress:
        factory = self.get_factory(chain, ism_type)
        values = _sorted_addresses(values)
        address = self.client.call_function(chain, factory, "getAddress", values, threshold)
        if self.client.has_code(chain, address):
            logger.debug("%s: %s %s already deployed by the factory", chain, ism_type.value, address)
        else:
            logger.info("%s: deploying %s with threshold %d", chain, ism_type.value, threshold)
            self.client.send_function(chain, factory, "deploy", values, threshold)
        return Web3.to_checksum_address(address)

    def deploy_from_artifact(self, chain: str, name: str, deployment: ModuleDeployment) -> DeployedContract:
        artifact = self.artifacts.get(name)
        receipt = self.client.deploy(chain, artifact)
        deployment.verification_artifacts.append(build_verification_artifact(artifact, receipt.contract_address, []))
        return DeployedContract(name, receipt.contract_address, artifact)

    def deploy(self, chain: str, config: IsmConfig, mailbox: HexAddress) -> ModuleDeployment:
        if isinstance(config, str):
            return ModuleDeployment(Web3.to_checksum_address(config))

        deployment = ModuleDeployment(ZERO_ADDRESS)

        match config:
            case MultisigIsmConfig():
                address = self.deploy_static(chain, config.type, list(config.validators), config.threshold)

            case AggregationIsmConfig():
                modules = []
                for sub_config in config.modules:
                    sub_deployment = self.deploy(chain, sub_config, mailbox)
                    deployment.contracts.update(sub_deployment.contracts)
                    deployment.verification_artifacts += sub_deployment.verification_artifacts
                    modules.append(sub_deployment.address)
                address = self.deploy_static(chain, config.type, modules, config.threshold)

            case RoutingIsmConfig():
                domains = []
                modules = []
                for origin, sub_config in config.domains.items():
                    sub_deployment = self.deploy(chain, sub_config, mailbox)
                    deployment.contracts.update(sub_deployment.contracts)
                    deployment.verification_artifacts += sub_deployment.verification_artifacts
                    domains.append(self.registry.get_domain_id(origin))
                    modules.append(sub_deployment.address)
                routing = self.deploy_from_artifact(chain, "DomainRoutingIsm", deployment)
                self.client.send_function(chain, routing, "initialize", config.owner, domains, modules)
                address = routing.address

            case TestIsmConfig():
                address = self.deploy_from_artifact(chain, "TestIsm", deployment).address

            case _:
                raise AssertionError(f"Unknown ISM config: {config}")

        deployment.address = address
        deployment.contracts[config.type.value] = address
        return deployment
