"""Core contract deployment.

Deploy or resume the core messaging contracts on a chain, in this order:

1. ``ProxyAdmin``
2. ``Mailbox`` behind a transparent proxy, with its default ISM, default hook and required hook
3. ``ValidatorAnnounce``
4. ``TimelockController``, if upgrades go through a timelock
5. ``TestRecipient`` using the default ISM
6. Ownership transfer of the ownable contracts

Example:

.. code-block:: python

    deployer = CoreDeployer(client, registry, ism_deployer=FactoryIsmDeployer(client, registry))
    deployer.cache_addresses_map(AddressLedger.load_json(Path("addresses.json")).to_dict())
    results = deployer.deploy(load_core_config_map(Path("core-config.json")))
    for chain, result in results.items():
        print(chain, result.state, result.error)

"""

import dataclasses
import enum
import logging

from eth_typing import HexAddress

from eth_deployer.abi import ArtifactRegistry, DeployedContract
from eth_deployer.chain import ChainRegistry
from eth_deployer.client import ChainClient
from eth_deployer.config import CoreConfig, DeployerOptions, MailboxClientConfig
from eth_deployer.deployer import BaseDeployer, DeploymentState
from eth_deployer.hooks import ArtifactHookDeployer, HookConfig, HookDeployer
from eth_deployer.ism import IsmDeployer
from eth_deployer.ledger import AddressLedger
from eth_deployer.verify import ContractVerifier

logger = logging.getLogger(__name__)


#: Slot -> contract name
CORE_FACTORIES = {
    "proxyAdmin": "ProxyAdmin",
    "mailbox": "Mailbox",
    "validatorAnnounce": "ValidatorAnnounce",
    "testRecipient": "TestRecipient",
    "timelockController": "TimelockController",
}

#: Slots whose ownership is transferred to the configured owner
OWNABLE_SLOTS = ("proxyAdmin", "mailbox", "testRecipient")

#: Ledger slot of the default ISM
ISM_SLOT = "interchainSecurityModule"


class InitializeOutcome(enum.Enum):
    """What happened when we tried to initialize the mailbox."""

    initialized = "initialized"

    #: An earlier run initialized it, reconcile instead
    already_initialized = "already_initialized"

    failed = "failed"


def classify_initialize_error(e: Exception) -> InitializeOutcome:
    """Tell an already initialized contract apart from other failures.

    Revert reasons are matched as strings, as not all RPC providers return structured revert data.
    Some only give the raw ``Error(string)`` selector.
    """
    message = str(e)
    revert_reason = getattr(e, "revert_reason", None) or ""
    if "already initialized" in message or "Reverted 0x08c379a" in message or "already initialized" in revert_reason:
        return InitializeOutcome.already_initialized
    return InitializeOutcome.failed


class CoreDeployer(BaseDeployer):
    """Deploy and reconcile the core contracts."""

    default_chain_timeout = 10 * 60

    def __init__(
        self,
        client: ChainClient,
        registry: ChainRegistry,
        artifacts: ArtifactRegistry | None = None,
        ism_deployer: IsmDeployer | None = None,
        hook_deployer: HookDeployer | None = None,
        contract_verifier: ContractVerifier | None = None,
        options: DeployerOptions | None = None,
        ledger: AddressLedger | None = None,
    ):
        super().__init__(
            client,
            registry,
            CORE_FACTORIES,
            artifacts=artifacts,
            ism_deployer=ism_deployer,
            contract_verifier=contract_verifier,
            options=options,
            ledger=ledger,
        )
        self.hook_deployer = hook_deployer or ArtifactHookDeployer(self.client, registry, self.artifacts)
        self.hook_deployer.use_ledger(self.ledger)
        self.hook_deployer.use_client(self.client)

    def deploy_hook(self, chain: str, config: HookConfig, core_addresses: dict[str, HexAddress]) -> HexAddress:
        deployment = self.hook_deployer.deploy(chain, config, core_addresses)
        self.add_deployed_contracts(chain, deployment.contracts, deployment.verification_artifacts)
        for a in deployment.verification_artifacts:
            self.verify(chain, a)
        return deployment.address

    def deploy_mailbox(self, chain: str, config: CoreConfig, proxy_admin: HexAddress) -> DeployedContract:
        self.set_state(chain, DeploymentState.deploying_primary)

        domain = self.registry.get_domain_id(chain)
        mailbox = self.proxies.deploy_proxied_contract(chain, "mailbox", "Mailbox", proxy_admin, [domain])

        default_ism = self.client.call_function(chain, mailbox, "defaultIsm")
        if not self.ism_matches(chain, default_ism, config.default_ism):
            logger.debug("%s: deploying default ISM", chain)
            default_ism = self.deploy_ism(chain, config.default_ism, mailbox.address)
        self.write_cache(chain, ISM_SLOT, default_ism)

        core_addresses = {"mailbox": mailbox.address, "proxyAdmin": proxy_admin}

        logger.debug("%s: deploying default hook", chain)
        default_hook = self.deploy_hook(chain, config.default_hook, core_addresses)

        logger.debug("%s: deploying required hook", chain)
        required_hook = self.deploy_hook(chain, config.required_hook, core_addresses)

        self.initialize_mailbox(chain, mailbox, config, default_ism, default_hook, required_hook)
        return mailbox

    def initialize_mailbox(
        self,
        chain: str,
        mailbox: DeployedContract,
        config: CoreConfig,
        default_ism: HexAddress,
        default_hook: HexAddress,
        required_hook: HexAddress,
    ) -> InitializeOutcome:
        """Initialize a fresh mailbox, or reconcile the settings of an initialized one."""
        try:
            logger.debug("%s: initializing mailbox", chain)
            self.client.send_function(chain, mailbox, "initialize", config.owner, default_ism, default_hook, required_hook)
            outcome = InitializeOutcome.initialized
        except Exception as e:
            outcome = classify_initialize_error(e)
            if outcome == InitializeOutcome.failed:
                raise

        self.set_state(chain, DeploymentState.configuring_primary)

        if outcome == InitializeOutcome.already_initialized:
            logger.debug("%s: mailbox already initialized, reconciling its configuration", chain)

            self.reconciler.configure_ism(
                chain,
                mailbox,
                default_ism,
                lambda m: self.client.call_function(chain, m, "defaultIsm"),
                lambda m, ism: self.client.send_function(chain, m, "setDefaultIsm", ism),
            )

            self.reconciler.configure_hook(
                chain,
                mailbox,
                default_hook,
                lambda m: self.client.call_function(chain, m, "defaultHook"),
                lambda m, hook: self.client.send_function(chain, m, "setDefaultHook", hook),
            )

            self.reconciler.configure_hook(
                chain,
                mailbox,
                required_hook,
                lambda m: self.client.call_function(chain, m, "requiredHook"),
                lambda m, hook: self.client.send_function(chain, m, "setRequiredHook", hook),
            )

        return outcome

    def deploy_validator_announce(self, chain: str, mailbox: HexAddress) -> DeployedContract:
        return self.deploy_contract(chain, "validatorAnnounce", [mailbox])

    def deploy_test_recipient(self, chain: str, interchain_security_module: HexAddress | None) -> DeployedContract:
        test_recipient = self.deploy_contract(chain, "testRecipient", [])
        self.reconciler.configure_client(chain, test_recipient, MailboxClientConfig(interchain_security_module=interchain_security_module))
        return test_recipient

    def deploy_contracts(self, chain: str, config: CoreConfig) -> dict[str, DeployedContract]:
        if config.remove:
            logger.info("Skipping %s, it is configured to be removed", chain)
            return {}

        self.set_state(chain, DeploymentState.deploying_admin)
        proxy_admin = self.deploy_contract(chain, "proxyAdmin", [])

        mailbox = self.deploy_mailbox(chain, config, proxy_admin.address)

        self.set_state(chain, DeploymentState.deploying_dependents)
        validator_announce = self.deploy_validator_announce(chain, mailbox.address)

        if config.upgrade:
            timelock = self.deploy_timelock(chain, config.upgrade.timelock)
            config = dataclasses.replace(config, owner_overrides={**config.owner_overrides, "proxyAdmin": timelock.address})

        test_recipient = self.deploy_test_recipient(chain, self.ledger.lookup(chain, ISM_SLOT))

        contracts = {
            "mailbox": mailbox,
            "proxyAdmin": proxy_admin,
            "validatorAnnounce": validator_announce,
            "testRecipient": test_recipient,
        }

        self.set_state(chain, DeploymentState.transferring_ownership)
        self.transfer_ownership_of_contracts(chain, config, {slot: contracts[slot] for slot in OWNABLE_SLOTS})

        return contracts
