"""Signer authority checks."""

from eth_deployer.authority import AuthorityKind, AuthorityResolver, NotAuthorised, is_authorised
from eth_deployer.eip1967 import ADMIN_SLOT, IMPLEMENTATION_SLOT


def test_run_if_owner(client, chain, deployer_address, other_address):
    resolver = AuthorityResolver(client)
    ours = chain.install("TestRecipient", storage={"owner": deployer_address})
    theirs = chain.install("TestRecipient", storage={"owner": other_address})

    assert resolver.run_if_owner("testchain", ours, lambda: "done") == "done"

    result = resolver.run_if_owner("testchain", theirs, lambda: "done", label="recipient owner")
    assert isinstance(result, NotAuthorised)
    assert not result
    assert not is_authorised(result)
    assert result.label == "recipient owner"
    assert result.authority.lower() == other_address.lower()


def test_resolve_direct_authority(client, chain, deployer_address):
    """An externally owned account as the proxy admin."""
    implementation = chain.install("TestIsm")
    proxy = chain.install("TransparentUpgradeableProxy")
    chain.get_account(proxy).slots.update({IMPLEMENTATION_SLOT: int(implementation, 16), ADMIN_SLOT: int(deployer_address, 16)})

    binding = AuthorityResolver(client).resolve_proxy_authority("testchain", proxy)
    assert binding.kind == AuthorityKind.direct
    assert binding.authority.lower() == deployer_address.lower()
    assert binding.admin_contract is None


def test_resolve_indirect_authority(client, chain, other_address):
    """A ProxyAdmin contract as the proxy admin, owned by someone else."""
    admin = chain.install("ProxyAdmin", storage={"owner": other_address})
    proxy = chain.install("TransparentUpgradeableProxy")
    chain.get_account(proxy).slots[ADMIN_SLOT] = int(admin, 16)

    resolver = AuthorityResolver(client)
    binding = resolver.resolve_proxy_authority("testchain", proxy)
    assert binding.kind == AuthorityKind.indirect
    assert binding.authority.lower() == other_address.lower()
    assert binding.admin_contract.address == admin

    result = resolver.run_with_binding("testchain", binding, lambda: "direct", lambda a: "indirect", "proxy admin")
    assert not is_authorised(result)
