"""Who may mutate a contract.

Before any state changing call the deployer checks whether its signer
is allowed to make it.

- Ownable contracts: the signer must be ``owner()``

- Transparent proxies: the EIP-1967 admin slot either holds an externally owned account
  (*direct* authority) or a ``ProxyAdmin`` contract whose ``owner()`` may act through it
  (*indirect* authority)

A mismatch is not an error. The deployer may be just an observer of contracts
someone else controls, so the action is skipped and :py:class:`NotAuthorised` is returned.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from eth_typing import HexAddress

from eth_deployer.abi import DeployedContract, load_artifact
from eth_deployer.client import ChainClient
from eth_deployer.eip1967 import get_proxy_admin
from eth_deployer.utils import eq_address

logger = logging.getLogger(__name__)


T = TypeVar("T")


class AuthorityKind(enum.Enum):
    """How the signer gets to mutate a contract."""

    #: The signer itself is the owner or admin
    direct = "direct"

    #: The admin is a contract, and the signer must own that contract
    indirect = "indirect"


@dataclass(slots=True, frozen=True)
class AuthorityBinding:
    """Resolved authority over a proxied contract."""

    kind: AuthorityKind

    #: The address the signer must match
    authority: HexAddress

    #: The admin contract to act through.
    #:
    #: Only set for :py:attr:`AuthorityKind.indirect`.
    admin_contract: Optional[DeployedContract] = None


@dataclass(slots=True, frozen=True)
class NotAuthorised:
    """Outcome of an action that was skipped because the signer lacks authority.

    Falsy, so callers can do ``if not result``.
    """

    chain: str

    signer: HexAddress

    authority: HexAddress

    #: What we tried to do
    label: str

    def __bool__(self):
        return False


def is_authorised(result: Any) -> bool:
    """Did an action guarded by :py:class:`AuthorityResolver` run."""
    return not isinstance(result, NotAuthorised)


class AuthorityResolver:
    """Run actions only when the signer is authorised to."""

    def __init__(self, client: ChainClient):
        self.client = client
        self.ownable = load_artifact("Ownable")
        self.proxy_admin = load_artifact("ProxyAdmin")

    def get_signer(self, chain: str) -> HexAddress:
        return self.client.get_signer_address(chain)

    def run_if(self, chain: str, authority: HexAddress, action: Callable[[], T], label: str) -> T | NotAuthorised:
        """Run the action if the signer is the authority.

        :param label:
            Describe the action in logs
        """
        signer = self.get_signer(chain)
        if eq_address(signer, authority):
            return action()

        logger.debug("%s: signer (%s) does not match %s (%s), skipping", chain, signer, label, authority)
        return NotAuthorised(chain, signer, authority, label)

    def read_owner(self, chain: str, address: HexAddress) -> HexAddress:
        return self.client.call_function(chain, DeployedContract("Ownable", address, self.ownable), "owner")

    def run_if_owner(self, chain: str, address: HexAddress, action: Callable[[], T], label: str = "owner") -> T | NotAuthorised:
        """Run the action if the signer is ``owner()`` of an ownable contract."""
        owner = self.read_owner(chain, address)
        return self.run_if(chain, owner, action, label)

    def resolve_proxy_authority(self, chain: str, proxy: HexAddress) -> AuthorityBinding:
        """Find out who controls the proxy.

        Code at the EIP-1967 admin means the admin is a ``ProxyAdmin`` style contract
        and its owner is the one who can act.
        """
        admin = get_proxy_admin(self.client, chain, proxy)
        if self.client.has_code(chain, admin):
            owner = self.read_owner(chain, admin)
            return AuthorityBinding(AuthorityKind.indirect, owner, DeployedContract("proxyAdmin", admin, self.proxy_admin))
        return AuthorityBinding(AuthorityKind.direct, admin)

    def run_with_binding(
        self,
        chain: str,
        binding: AuthorityBinding,
        direct_action: Callable[[], T],
        indirect_action: Callable[[DeployedContract], T],
        label: str,
    ) -> T | NotAuthorised:
        if binding.kind == AuthorityKind.direct:
            return self.run_if(chain, binding.authority, direct_action, label)
        return self.run_if(chain, binding.authority, lambda: indirect_action(binding.admin_contract), f"{label} via admin {binding.admin_contract.address}")

    def resolve_and_run(
        self,
        chain: str,
        proxy: HexAddress,
        direct_action: Callable[[], T],
        indirect_action: Callable[[DeployedContract], T],
        label: str = "proxy admin",
    ) -> T | NotAuthorised:
        """Run an admin action on a proxy.

        :param direct_action:
            Called when the signer is the proxy admin

        :param indirect_action:
            Called with the admin contract when the signer owns the admin contract
        """
        binding = self.resolve_proxy_authority(chain, proxy)
        return self.run_with_binding(chain, binding, direct_action, indirect_action, label)
