"""Converge live contract configuration to the target config.

Every reconciliation runs the same cycle:

1. Read the current value from the chain
2. Compare it to the target
3. Check the signer is authorised to change it
4. Send the transaction
5. Read the value again and fail loudly if it did not change

An unauthorised signer is not an error: nothing is sent and the gap is left
for the actual owner to close.

The ISM is reconciled before hooks, and hooks before ownership,
as the signer loses its authority once ownership has been transferred away.
"""

import logging
from typing import TYPE_CHECKING, Callable

from eth_typing import HexAddress

from eth_deployer.abi import DeployedContract, load_artifact
from eth_deployer.authority import is_authorised
from eth_deployer.client import DeploymentError, TransactionReceipt
from eth_deployer.config import MailboxClientConfig
from eth_deployer.ism import IsmConfig
from eth_deployer.utils import eq_address

if TYPE_CHECKING:
    from eth_deployer.deployer import BaseDeployer


logger = logging.getLogger(__name__)


#: Slot where a hook we could not apply is recorded
CUSTOM_HOOK_SLOT = "customHook"


#: Read an address attribute of a contract
Getter = Callable[[DeployedContract], HexAddress]

#: Write an address attribute of a contract
Setter = Callable[[DeployedContract, HexAddress], TransactionReceipt]


class ReconciliationFailed(DeploymentError):
    """A configuration transaction went through, but the chain does not show the new value."""

    def __init__(self, chain: str, contract: DeployedContract, attribute: str, expected: HexAddress, actual: HexAddress):
        super().__init__(f"Set {attribute} failed on {chain}: {contract.name} at {contract.address} has {actual}, expected {expected}")
        self.chain = chain
        self.contract = contract
        self.attribute = attribute
        self.expected = expected
        self.actual = actual


class ConfigReconciler:
    """Reconcile ISMs, hooks and ownership on behalf of a deployer."""

    def __init__(self, deployer: "BaseDeployer"):
        self.deployer = deployer

    @property
    def client(self):
        return self.deployer.client

    @property
    def authority(self):
        return self.deployer.authority

    def _write_and_verify(self, chain: str, contract: DeployedContract, attribute: str, target: HexAddress, getter: Getter, setter: Setter) -> bool:
        result = self.authority.run_if_owner(chain, contract.address, lambda: setter(contract, target), label=f"{contract.name} owner")
        if not is_authorised(result):
            logger.info("%s: not authorised to set %s of %s to %s", chain, attribute, contract.name, target)
            return False

        actual = getter(contract)
        if not eq_address(actual, target):
            raise ReconciliationFailed(chain, contract, attribute, target, actual)

        return True

    def configure_ism(
        self,
        chain: str,
        contract: DeployedContract,
        config: IsmConfig,
        getter: Getter,
        setter: Setter,
        mailbox: HexAddress | None = None,
    ) -> bool:
        """Make the contract use an ISM satisfying the config.

        A structural config is first compared against the live module,
        and a new module is deployed only if it does not match.

        :param mailbox:
            Mailbox passed to the ISM deployer, defaults to the contract itself

        :return:
            ``True`` if the contract uses a matching ISM,
            ``False`` if the signer was not authorised to change it

        :raise ReconciliationFailed:
            The setter transaction did not change the ISM
        """
        current = getter(contract)

        if isinstance(config, str):
            target = config
        else:
            ism_deployer = self.deployer.get_ism_deployer()
            if ism_deployer.structurally_matches(chain, current, config):
                target = current
            else:
                target = self.deployer.deploy_ism(chain, config, mailbox or contract.address)

        if eq_address(current, target):
            logger.debug("%s: ISM of %s is already %s", chain, contract.name, current)
            return True

        logger.info("%s: setting ISM of %s from %s to %s", chain, contract.name, current, target)
        return self._write_and_verify(chain, contract, "ISM", target, getter, setter)

    def configure_hook(
        self,
        chain: str,
        contract: DeployedContract,
        target_hook: HexAddress,
        getter: Getter,
        setter: Setter,
    ) -> bool:
        """Make the contract use a hook.

        If the signer is not authorised, the wanted hook is recorded
        under ``customHook`` of the chain's deployed contracts.

        :return:
            ``True`` if the contract uses the hook,
            ``False`` if the signer was not authorised to change it

        :raise ReconciliationFailed:
            The setter transaction did not change the hook
        """
        current = getter(contract)
        if eq_address(current, target_hook):
            logger.debug("%s: hook of %s is already %s", chain, contract.name, current)
            return True

        logger.info("%s: setting hook of %s from %s to %s", chain, contract.name, current, target_hook)
        applied = self._write_and_verify(chain, contract, "hook", target_hook, getter, setter)
        if not applied:
            self.deployer.add_deployed_contracts(chain, {CUSTOM_HOOK_SLOT: target_hook}, bind=False)
        return applied

    def transfer_ownership_of_contracts(self, chain: str, config, ownables: dict[str, DeployedContract]) -> list[TransactionReceipt]:
        """Transfer ownable contracts to their configured owners.

        :param config:
            Anything with ``get_owner(slot)``, like :py:class:`eth_deployer.config.CoreConfig`

        :param ownables:
            Slot -> contract

        :return:
            Receipts of the transfers made
        """
        receipts = []
        for slot, contract in ownables.items():
            owner = config.get_owner(slot)
            current = self.authority.read_owner(chain, contract.address)
            if eq_address(current, owner):
                logger.debug("%s: %s is already owned by %s", chain, slot, owner)
                continue

            ownable = DeployedContract(slot, contract.address, self.authority.ownable)
            logger.info("%s: transferring ownership of %s at %s to %s", chain, slot, contract.address, owner)
            result = self.authority.run_if(chain, current, lambda: self.client.send_function(chain, ownable, "transferOwnership", owner), label=f"{slot} owner")
            if is_authorised(result):
                receipts.append(result)

        return receipts

    def configure_client(self, chain: str, contract: DeployedContract, client_config: MailboxClientConfig):
        """Reconcile ISM and hook of a mailbox client contract."""
        mailbox_client = DeployedContract(contract.name, contract.address, load_artifact("MailboxClient"))

        if client_config.interchain_security_module is not None:
            self.configure_ism(
                chain,
                mailbox_client,
                client_config.interchain_security_module,
                lambda c: self.client.call_function(chain, c, "interchainSecurityModule"),
                lambda c, ism: self.client.send_function(chain, c, "setInterchainSecurityModule", ism),
            )

        if client_config.hook is not None:
            self.configure_hook(
                chain,
                mailbox_client,
                client_config.hook,
                lambda c: self.client.call_function(chain, c, "hook"),
                lambda c, hook: self.client.send_function(chain, c, "setHook", hook),
            )
