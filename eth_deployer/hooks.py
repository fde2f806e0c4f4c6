"""Post-dispatch hooks.

The mailbox calls its required hook and default hook for every dispatched message.
Hooks are configured either with a literal address or a config describing the hook to deploy.
Unlike ISMs, hooks are compared by address only.
"""

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

from eth_typing import HexAddress
from web3 import Web3

from eth_deployer.abi import ZERO_ADDRESS, ArtifactRegistry, DeployedContract, load_artifact
from eth_deployer.chain import ChainRegistry
from eth_deployer.client import ChainClient, DeploymentError
from eth_deployer.ledger import AddressLedger, ModuleDeployment, build_verification_artifact

logger = logging.getLogger(__name__)


class OnchainHookType(enum.IntEnum):
    """Return values of ``IPostDispatchHook.hookType()``."""

    UNUSED = 0
    ROUTING = 1
    AGGREGATION = 2
    MERKLE_TREE = 3
    INTERCHAIN_GAS_PAYMASTER = 4
    FALLBACK_ROUTING = 5
    ID_AUTH_ISM = 6
    PAUSABLE = 7
    PROTOCOL_FEE = 8


class HookType(enum.Enum):
    """Hook config ``type`` field.

    The value doubles as the ledger slot of the deployed hook.
    """

    merkle_tree = "merkleTreeHook"
    protocol_fee = "protocolFee"
    aggregation = "aggregationHook"


#: Ledger slot of the aggregation hook factory
AGGREGATION_HOOK_FACTORY_SLOT = "staticAggregationHookFactory"


@dataclass(slots=True, frozen=True)
class MerkleTreeHookConfig:
    """Insert message ids into the merkle tree validators sign."""

    type: HookType = HookType.merkle_tree


@dataclass(slots=True, frozen=True)
class ProtocolFeeHookConfig:
    """Charge a flat fee per message."""

    owner: HexAddress

    beneficiary: HexAddress

    #: Wei
    max_protocol_fee: int

    #: Wei
    protocol_fee: int

    type: HookType = HookType.protocol_fee

    def __post_init__(self):
        assert self.protocol_fee <= self.max_protocol_fee, f"Protocol fee {self.protocol_fee} over the max {self.max_protocol_fee}"


@dataclass(slots=True, frozen=True)
class AggregationHookConfig:
    """Call all sub-hooks."""

    hooks: tuple["HookConfig", ...]

    type: HookType = HookType.aggregation


#: Literal address or a description of a hook to deploy
HookConfig = Union[str, MerkleTreeHookConfig, ProtocolFeeHookConfig, AggregationHookConfig]


def parse_hook_config(data: str | dict) -> HookConfig:
    """Parse hook config from JSON."""
    if isinstance(data, str):
        return Web3.to_checksum_address(data)

    hook_type = HookType(data["type"])
    match hook_type:
        case HookType.merkle_tree:
            return MerkleTreeHookConfig()
        case HookType.protocol_fee:
            return ProtocolFeeHookConfig(
                owner=Web3.to_checksum_address(data["owner"]),
                beneficiary=Web3.to_checksum_address(data["beneficiary"]),
                max_protocol_fee=int(data["maxProtocolFee"]),
                protocol_fee=int(data["protocolFee"]),
            )
        case HookType.aggregation:
            return AggregationHookConfig(tuple(parse_hook_config(h) for h in data["hooks"]))


class HookDeployer(ABC):
    """Deploy hooks from configs."""

    def __init__(self, client: ChainClient, registry: ChainRegistry):
        self.client = client
        self.registry = registry
        self.ledger: Optional[AddressLedger] = None

    def use_ledger(self, ledger: AddressLedger):
        """Share the address ledger of the deployer, so already deployed hooks are reused."""
        self.ledger = ledger

    def use_client(self, client: ChainClient):
        self.client = client

    def lookup(self, chain: str, slot: str) -> HexAddress | None:
        if self.ledger is None:
            return None
        return self.ledger.lookup(chain, slot)

    @abstractmethod
    def deploy(self, chain: str, config: HookConfig, core_addresses: dict[str, HexAddress]) -> ModuleDeployment:
        """Deploy the hook.

        :param core_addresses:
            ``mailbox`` and ``proxyAdmin`` of the chain
        """


class ArtifactHookDeployer(HookDeployer):
    """Deploy hooks from compiled artifacts.

    A hook already in the ledger under its type slot is reused.
    """

    def __init__(self, client: ChainClient, registry: ChainRegistry, artifacts: ArtifactRegistry | None = None):
        super().__init__(client, registry)
        self.artifacts = artifacts or ArtifactRegistry()

    def deploy_artifact(self, chain: str, name: str, args: list, deployment: ModuleDeployment) -> HexAddress:
        artifact = self.artifacts.get(name)
        logger.info("%s: deploying %s", chain, name)
        receipt = self.client.deploy(chain, artifact, args)
        deployment.verification_artifacts.append(build_verification_artifact(artifact, receipt.contract_address, args))
        return receipt.contract_address

    def deploy_aggregation(self, chain: str, hooks: list[HexAddress]) -> HexAddress:
        factory_address = self.lookup(chain, AGGREGATION_HOOK_FACTORY_SLOT)
        if factory_address is None:
            raise DeploymentError(f"No {AGGREGATION_HOOK_FACTORY_SLOT} known on {chain}, cannot deploy aggregation hook")
        factory = DeployedContract(AGGREGATION_HOOK_FACTORY_SLOT, factory_address, load_artifact("IStaticAddressSetFactory"))
        hooks = sorted((Web3.to_checksum_address(h) for h in hooks), key=str.lower)
        address = self.client.call_function(chain, factory, "getAddress", hooks)
        if not self.client.has_code(chain, address):
            self.client.send_function(chain, factory, "deploy", hooks)
        return Web3.to_checksum_address(address)

    def deploy(self, chain: str, config: HookConfig, core_addresses: dict[str, HexAddress]) -> ModuleDeployment:
        if isinstance(config, str):
            return ModuleDeployment(Web3.to_checksum_address(config))

        deployment = ModuleDeployment(ZERO_ADDRESS)

        cached = self.lookup(chain, config.type.value)
        if cached is not None and config.type != HookType.aggregation and self.client.has_code(chain, cached):
            logger.debug("%s: recovered %s at %s", chain, config.type.value, cached)
            address = cached
        else:
            match config:
                case MerkleTreeHookConfig():
                    address = self.deploy_artifact(chain, "MerkleTreeHook", [core_addresses["mailbox"]], deployment)

                case ProtocolFeeHookConfig():
                    args = [config.max_protocol_fee, config.protocol_fee, config.beneficiary, config.owner]
                    address = self.deploy_artifact(chain, "ProtocolFee", args, deployment)

                case AggregationHookConfig():
                    hooks = []
                    for sub_config in config.hooks:
                        sub_deployment = self.deploy(chain, sub_config, core_addresses)
                        deployment.contracts.update(sub_deployment.contracts)
                        deployment.verification_artifacts += sub_deployment.verification_artifacts
                        hooks.append(sub_deployment.address)
                    address = self.deploy_aggregation(chain, hooks)

                case _:
                    raise AssertionError(f"Unknown hook config: {config}")

        deployment.address = address
        deployment.contracts[config.type.value] = address
        return deployment
