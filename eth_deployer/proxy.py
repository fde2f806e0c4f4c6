"""Transparent upgradeable proxy lifecycle.

- Wrap freshly deployed implementations in a ``TransparentUpgradeableProxy``

- Never wrap an address that already is a proxy, so a resumed deployment does not double wrap

- Upgrade and change the admin of existing proxies, acting either directly as the proxy admin
  or through the ``ProxyAdmin`` contract, see :py:mod:`eth_deployer.authority`
"""

import logging
from typing import TYPE_CHECKING

from eth_typing import HexAddress

from eth_deployer.abi import DeployedContract
from eth_deployer.authority import is_authorised
from eth_deployer.eip1967 import get_proxy_admin, get_proxy_constructor_args, get_proxy_implementation, is_proxy
from eth_deployer.utils import eq_address

if TYPE_CHECKING:
    from eth_deployer.deployer import BaseDeployer


logger = logging.getLogger(__name__)


#: Factory name of the proxy contract
PROXY_CONTRACT_NAME = "TransparentUpgradeableProxy"


class ProxyManager:
    """Proxy operations on behalf of a deployer.

    Uses the deployer's client, ledger and authority resolver.
    """

    def __init__(self, deployer: "BaseDeployer"):
        self.deployer = deployer

    @property
    def client(self):
        return self.deployer.client

    @property
    def proxy_artifact(self):
        return self.deployer.get_artifact(PROXY_CONTRACT_NAME)

    def deploy_proxy(
        self,
        chain: str,
        implementation: DeployedContract,
        proxy_admin: HexAddress,
        initialize_args: list | None = None,
    ) -> DeployedContract:
        """Put the implementation behind a new proxy.

        :return:
            Contract at the proxy address, talking the implementation interface.
            If the implementation is already a proxy, it is returned as is.
        """
        if is_proxy(self.client, chain, implementation.address):
            logger.debug("%s: %s at %s is already a proxy, not wrapping it again", chain, implementation.name, implementation.address)
            return implementation

        logger.info("%s: deploying transparent upgradable proxy for %s", chain, implementation.name)
        constructor_args = get_proxy_constructor_args(implementation.artifact, implementation.address, proxy_admin, initialize_args)
        proxy = self.deployer.deploy_contract_from_factory(
            chain,
            self.proxy_artifact,
            PROXY_CONTRACT_NAME,
            constructor_args,
            should_recover=False,
            expected_implementation=implementation.address,
        )
        return implementation.attach(proxy.address)

    def deploy_proxied_contract(
        self,
        chain: str,
        slot: str,
        contract_name: str,
        proxy_admin: HexAddress,
        constructor_args: list,
        initialize_args: list | None = None,
    ) -> DeployedContract:
        """Deploy or resume an implementation behind a proxy and bind the slot to the proxy.

        :param initialize_args:
            Passed to ``initialize()`` of a freshly deployed implementation,
            and to the implementation through the proxy constructor
        """
        implementation = self.deployer.deploy_contract_with_name(chain, slot, contract_name, constructor_args, initialize_args)
        contract = self.deploy_proxy(chain, implementation, proxy_admin, initialize_args)
        self.deployer.write_cache(chain, slot, contract.address)
        return contract

    def upgrade_and_initialize(
        self,
        chain: str,
        proxy: DeployedContract,
        implementation: HexAddress,
        initialize_args: list | None = None,
    ) -> bool:
        """Point the proxy to a new implementation.

        :return:
            ``True`` if the proxy now points to the implementation,
            ``False`` if the signer was not authorised to upgrade
        """
        current = get_proxy_implementation(self.client, chain, proxy.address)
        if eq_address(current, implementation):
            logger.debug("%s: %s implementation is already %s", chain, proxy.name, implementation)
            return True

        proxy_interface = DeployedContract(proxy.name, proxy.address, self.proxy_artifact)

        if initialize_args is None:
            # Empty call data would hit the implementation fallback
            def direct():
                return self.client.send_function(chain, proxy_interface, "upgradeTo", implementation)

            def indirect(admin: DeployedContract):
                return self.client.send_function(chain, admin, "upgrade", proxy.address, implementation)

        else:
            init_data = bytes(proxy.artifact.encode_function_data("initialize", initialize_args))

            def direct():
                return self.client.send_function(chain, proxy_interface, "upgradeToAndCall", implementation, init_data)

            def indirect(admin: DeployedContract):
                return self.client.send_function(chain, admin, "upgradeAndCall", proxy.address, implementation, init_data)

        logger.info("%s: upgrading %s implementation from %s to %s", chain, proxy.name, current, implementation)
        result = self.deployer.authority.resolve_and_run(chain, proxy.address, direct, indirect, label=f"{proxy.name} proxy admin")
        if not is_authorised(result):
            logger.info("%s: not authorised to upgrade %s, implementation stays %s", chain, proxy.name, current)
            return False
        return True

    def change_admin(self, chain: str, proxy: DeployedContract, admin: HexAddress) -> bool:
        """Move the proxy under a new admin.

        :return:
            ``True`` if the proxy admin is now the given admin,
            ``False`` if the signer was not authorised to change it
        """
        current = get_proxy_admin(self.client, chain, proxy.address)
        if eq_address(current, admin):
            logger.debug("%s: %s admin is already %s", chain, proxy.name, admin)
            return True

        proxy_interface = DeployedContract(proxy.name, proxy.address, self.proxy_artifact)

        logger.info("%s: changing %s admin from %s to %s", chain, proxy.name, current, admin)
        result = self.deployer.authority.resolve_and_run(
            chain,
            proxy.address,
            lambda: self.client.send_function(chain, proxy_interface, "changeAdmin", admin),
            lambda admin_contract: self.client.send_function(chain, admin_contract, "changeProxyAdmin", proxy.address, admin),
            label=f"{proxy.name} proxy admin",
        )
        if not is_authorised(result):
            logger.info("%s: not authorised to change %s admin, stays %s", chain, proxy.name, current)
            return False
        return True
