"""Resumable multi-chain deployment driver.

:py:class:`BaseDeployer` runs a deployment chain by chain:

- Addresses of earlier runs are reused from the :py:class:`eth_deployer.ledger.AddressLedger`,
  so an interrupted deployment picks up where it stopped

- Each chain has a wall clock budget. On timeout, the chain fails and the remaining chains are not attempted.

- Any other failure fails only that chain. The batch continues with the next chain.

- Every chain gets a :py:class:`ChainDeploymentResult` with its final state,
  contracts, ledger slice and verification artifacts

Subclasses implement :py:meth:`BaseDeployer.deploy_contracts` for their contract topology,
see :py:class:`eth_deployer.core.CoreDeployer`.
"""

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from eth_typing import HexAddress

from eth_deployer.abi import ZERO_ADDRESS, ArtifactRegistry, ContractArtifact, DeployedContract
from eth_deployer.authority import AuthorityResolver
from eth_deployer.chain import ChainRegistry
from eth_deployer.client import BudgetedChainClient, ChainClient, ChainDeploymentTimeout, TransactionReceipt
from eth_deployer.config import DeployerOptions, TimelockConfig
from eth_deployer.ism import IsmConfig, IsmDeployer, MissingIsmDeployer, module_matches_config
from eth_deployer.ledger import AddressLedger, VerificationArtifact, build_verification_artifact, recover_verification_artifacts
from eth_deployer.proxy import PROXY_CONTRACT_NAME, ProxyManager
from eth_deployer.reconcile import ConfigReconciler
from eth_deployer.verify import ContractVerifier

logger = logging.getLogger(__name__)


class DeploymentState(enum.Enum):
    """Where a chain deployment is."""

    not_started = "not_started"
    deploying_admin = "deploying_admin"
    deploying_primary = "deploying_primary"
    configuring_primary = "configuring_primary"
    deploying_dependents = "deploying_dependents"
    transferring_ownership = "transferring_ownership"
    done = "done"
    failed = "failed"


@dataclass(slots=True)
class ChainDeploymentResult:
    """Outcome of deploying to one chain."""

    chain: str

    state: DeploymentState = DeploymentState.not_started

    #: Contracts deployed or recovered in this run, slot -> address
    contracts: dict[str, HexAddress] = field(default_factory=dict)

    #: Ledger slice of the chain after the run, slot -> address
    addresses: dict[str, HexAddress] = field(default_factory=dict)

    verification_artifacts: list[VerificationArtifact] = field(default_factory=list)

    #: Block number before the first transaction
    starting_block: Optional[int] = None

    ownership_receipts: list[TransactionReceipt] = field(default_factory=list)

    #: Set when failed
    error: Optional[Exception] = None

    #: The state the chain was in when it failed
    failed_in: Optional[DeploymentState] = None

    @property
    def succeeded(self) -> bool:
        return self.state == DeploymentState.done


#: Chain name -> result
DeploymentResults = dict[str, ChainDeploymentResult]


class BaseDeployer(ABC):
    """Deploy a contract topology to many chains."""

    #: Per-chain wall clock budget, seconds
    default_chain_timeout: float = 5 * 60

    def __init__(
        self,
        client: ChainClient,
        registry: ChainRegistry,
        factories: dict[str, str],
        artifacts: ArtifactRegistry | None = None,
        ism_deployer: IsmDeployer | None = None,
        contract_verifier: ContractVerifier | None = None,
        options: DeployerOptions | None = None,
        ledger: AddressLedger | None = None,
    ):
        """
        :param factories:
            Slot -> contract name of the contracts this deployer deploys

        :param ledger:
            Addresses from earlier runs
        """
        if not isinstance(client, BudgetedChainClient):
            client = BudgetedChainClient(client)
        self.client = client
        self.registry = registry
        self.factories = factories
        self.artifacts = artifacts or ArtifactRegistry()
        self.contract_verifier = contract_verifier
        self.options = options or DeployerOptions()
        self.chain_timeout = self.options.chain_timeout if self.options.chain_timeout is not None else self.default_chain_timeout
        self.ledger = ledger or AddressLedger()

        self.ism_deployer = ism_deployer
        if ism_deployer is not None:
            ism_deployer.use_ledger(self.ledger)
            ism_deployer.use_client(self.client)

        self.authority = AuthorityResolver(self.client)
        self.proxies = ProxyManager(self)
        self.reconciler = ConfigReconciler(self)

        #: Chain -> slot -> address of the contracts of this run
        self.deployed_contracts: dict[str, dict[str, HexAddress]] = {}

        #: Chain -> verification inputs
        self.verification_artifacts: dict[str, list[VerificationArtifact]] = {}

        self.results: DeploymentResults = {}

    def cache_addresses_map(self, addresses_map: dict[str, dict[str, str]]):
        """Seed the ledger with addresses of an earlier run."""
        self.ledger.seed(addresses_map)

    def get_artifact(self, contract_name: str) -> ContractArtifact:
        return self.artifacts.get(contract_name)

    def get_result(self, chain: str) -> ChainDeploymentResult:
        if chain not in self.results:
            self.results[chain] = ChainDeploymentResult(chain)
        return self.results[chain]

    def set_state(self, chain: str, state: DeploymentState):
        logger.debug("%s: %s", chain, state.value)
        self.get_result(chain).state = state

    @abstractmethod
    def deploy_contracts(self, chain: str, config: Any) -> dict[str, DeployedContract]:
        """Deploy and configure all contracts of one chain.

        Must be safe to run again after an interruption.
        """

    def deploy(self, config_map: dict[str, Any]) -> DeploymentResults:
        """Deploy to all chains in the config map, one chain at a time.

        :return:
            Result for every deployable chain, in the order of the config map
        """
        targets, skipped = self.registry.intersect(config_map.keys())
        for chain in skipped:
            logger.warning("Skipping %s: not a known EVM chain", chain)

        self.results = {chain: ChainDeploymentResult(chain) for chain in targets}

        for chain in targets:
            result = self.results[chain]
            try:
                with self.client.budget(chain, self.chain_timeout):
                    signer = self.client.get_signer_address(chain)
                    logger.info("Deploying to %s from %s", chain, self.registry.get_explorer_address_url(chain, signer) or signer)
                    result.starting_block = self.client.get_block_number(chain)
                    self.deploy_contracts(chain, config_map[chain])
                self.set_state(chain, DeploymentState.done)
                logger.info("Deployment to %s done", chain)
            except ChainDeploymentTimeout as e:
                self.fail(chain, e)
                logger.error("Deployment to %s timed out, not attempting the remaining chains", chain)
                break
            except Exception as e:
                self.fail(chain, e)
                logger.exception("Deployment to %s failed, continuing with the next chain", chain)
            finally:
                result.contracts = dict(self.deployed_contracts.get(chain, {}))
                result.addresses = self.ledger.slice(chain)
                result.verification_artifacts = list(self.verification_artifacts.get(chain, []))

        return self.results

    def fail(self, chain: str, error: Exception):
        result = self.get_result(chain)
        result.failed_in = result.state
        result.error = error
        result.state = DeploymentState.failed

    def read_cache(self, chain: str, artifact: ContractArtifact, slot: str) -> DeployedContract | None:
        address = self.ledger.lookup(chain, slot)
        if address is None:
            return None
        if not self.client.has_code(chain, address):
            logger.warning("%s: no code at %s recorded for %s, deploying it again", chain, address, slot)
            return None
        logger.debug("%s: recovered %s at %s", chain, slot, address)
        return DeployedContract(slot, address, artifact)

    def write_cache(self, chain: str, slot: str, address: HexAddress):
        self.ledger.bind(chain, slot, address)
        self.deployed_contracts.setdefault(chain, {})[slot] = self.ledger.lookup(chain, slot)

    def add_deployed_contracts(
        self,
        chain: str,
        contracts: dict[str, HexAddress],
        verification_artifacts: list[VerificationArtifact] | None = None,
        bind: bool = True,
    ):
        """Record contracts deployed by a module deployer.

        :param bind:
            Also store in the ledger for the next run
        """
        for slot, address in contracts.items():
            if bind:
                self.write_cache(chain, slot, address)
            else:
                self.deployed_contracts.setdefault(chain, {})[slot] = address
        if verification_artifacts:
            self.add_verification_artifacts(chain, verification_artifacts)

    def add_verification_artifacts(self, chain: str, artifacts: list[VerificationArtifact]):
        chain_artifacts = self.verification_artifacts.setdefault(chain, [])
        for a in artifacts:
            if a not in chain_artifacts:
                chain_artifacts.append(a)

    def verify(self, chain: str, artifact: VerificationArtifact):
        """Try to verify the contract source.

        Failures are logged. Verification can be redone after the deployment.
        """
        if self.contract_verifier is None:
            return
        try:
            self.contract_verifier.verify_contract(chain, artifact)
        except Exception as e:
            logger.warning("%s: could not verify %s at %s: %s", chain, artifact.name, artifact.address, e)

    def deploy_contract_from_factory(
        self,
        chain: str,
        artifact: ContractArtifact,
        slot: str,
        constructor_args: list,
        initialize_args: list | None = None,
        should_recover: bool = True,
        expected_implementation: HexAddress | None = None,
    ) -> DeployedContract:
        """Deploy a contract, or recover it from the ledger.

        :param initialize_args:
            Call ``initialize()`` after a fresh deployment

        :param should_recover:
            Look up the ledger first

        :param expected_implementation:
            The contract is a proxy in front of this implementation
        """
        if should_recover:
            cached = self.read_cache(chain, artifact, slot)
            if cached is not None:
                if self.options.recover_verification_inputs:
                    recovered = recover_verification_artifacts(
                        self.client,
                        chain,
                        cached.address,
                        artifact,
                        self.get_artifact(PROXY_CONTRACT_NAME),
                        constructor_args,
                        initialize_args,
                    )
                    self.add_verification_artifacts(chain, recovered)
                return cached

        logger.info("%s: deploying %s with constructor args %s", chain, slot, constructor_args)
        receipt = self.client.deploy(chain, artifact, constructor_args)
        contract = DeployedContract(slot, receipt.contract_address, artifact)

        if initialize_args is not None:
            logger.debug("%s: initializing %s", chain, slot)
            self.client.send_function(chain, contract, "initialize", *initialize_args)

        verification_artifact = build_verification_artifact(
            artifact,
            contract.address,
            constructor_args,
            is_proxy=expected_implementation is not None,
            expected_implementation=expected_implementation,
        )
        self.add_verification_artifacts(chain, [verification_artifact])
        self.verify(chain, verification_artifact)

        return contract

    def deploy_contract_with_name(
        self,
        chain: str,
        slot: str,
        contract_name: str,
        constructor_args: list,
        initialize_args: list | None = None,
        should_recover: bool = True,
    ) -> DeployedContract:
        """Deploy or recover a contract and bind its slot in the ledger."""
        contract = self.deploy_contract_from_factory(
            chain,
            self.get_artifact(contract_name),
            slot,
            constructor_args,
            initialize_args,
            should_recover,
        )
        self.write_cache(chain, slot, contract.address)
        return contract

    def deploy_contract(self, chain: str, slot: str, constructor_args: list, initialize_args: list | None = None) -> DeployedContract:
        """Deploy or recover one of the contracts in :py:attr:`factories`."""
        return self.deploy_contract_with_name(chain, slot, self.factories[slot], constructor_args, initialize_args)

    def get_ism_deployer(self) -> IsmDeployer:
        if self.ism_deployer is None:
            raise MissingIsmDeployer("Structural ISM config needs an ISM deployer")
        return self.ism_deployer

    def ism_matches(self, chain: str, address: HexAddress, config: IsmConfig) -> bool:
        if self.ism_deployer is not None:
            return self.ism_deployer.structurally_matches(chain, address, config)
        return module_matches_config(self.client, self.registry, chain, address, config)

    def deploy_ism(self, chain: str, config: IsmConfig, mailbox: HexAddress) -> HexAddress:
        """Deploy an ISM satisfying the config.

        :return:
            The ISM address. A literal config is returned as is.
        """
        if isinstance(config, str):
            return config

        deployment = self.get_ism_deployer().deploy(chain, config, mailbox)
        self.add_deployed_contracts(chain, deployment.contracts, deployment.verification_artifacts)
        for a in deployment.verification_artifacts:
            self.verify(chain, a)
        return deployment.address

    def deploy_timelock(self, chain: str, timelock_config: TimelockConfig) -> DeployedContract:
        """Deploy ``TimelockController`` with a single proposer and executor, and no admin."""
        return self.deploy_contract_with_name(
            chain,
            "timelockController",
            "TimelockController",
            [timelock_config.delay, [timelock_config.proposer], [timelock_config.executor], ZERO_ADDRESS],
        )

    def transfer_ownership_of_contracts(self, chain: str, config, ownables: dict[str, DeployedContract]) -> list[TransactionReceipt]:
        receipts = self.reconciler.transfer_ownership_of_contracts(chain, config, ownables)
        self.get_result(chain).ownership_receipts += receipts
        return receipts
