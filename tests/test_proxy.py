"""Transparent proxy deployment, upgrades and admin changes."""

import pytest

from eth_deployer.abi import DeployedContract, load_artifact
from eth_deployer.config import DeployerOptions
from eth_deployer.eip1967 import get_proxy_admin, get_proxy_implementation, is_proxy


@pytest.fixture()
def proxy_admin(core_deployer) -> DeployedContract:
    return core_deployer.deploy_contract("testchain", "proxyAdmin", [])


@pytest.fixture()
def mailbox(core_deployer, chain, proxy_admin) -> DeployedContract:
    """Mailbox behind a proxy administrated by the proxy admin contract."""
    return core_deployer.proxies.deploy_proxied_contract("testchain", "mailbox", "Mailbox", proxy_admin.address, [chain.chain_id])


@pytest.fixture()
def new_implementation(core_deployer, chain) -> DeployedContract:
    return core_deployer.deploy_contract_with_name("testchain", "mailboxImplementation", "Mailbox", [chain.chain_id])


def test_deploy_proxied_contract(client, core_deployer, mailbox, proxy_admin):
    """Mailbox sits behind a proxy and the ledger points to the proxy."""
    assert is_proxy(client, "testchain", mailbox.address)
    assert get_proxy_admin(client, "testchain", mailbox.address) == proxy_admin.address
    assert core_deployer.ledger.lookup("testchain", "mailbox") == mailbox.address

    implementation = get_proxy_implementation(client, "testchain", mailbox.address)
    assert not is_proxy(client, "testchain", implementation)
    assert client.call_function("testchain", mailbox, "localDomain") > 0


def test_deploy_proxy_no_double_wrap(core_deployer, chain, mailbox, proxy_admin):
    """An address that already is a proxy is not wrapped again."""
    tx_count = len(chain.transactions)
    contract = core_deployer.proxies.deploy_proxy("testchain", mailbox, proxy_admin.address)
    assert contract.address == mailbox.address
    assert len(chain.transactions) == tx_count


def test_upgrade_through_proxy_admin(client, core_deployer, mailbox, new_implementation):
    """The signer owns the ProxyAdmin and upgrades through it."""
    assert core_deployer.proxies.upgrade_and_initialize("testchain", mailbox, new_implementation.address)
    assert get_proxy_implementation(client, "testchain", mailbox.address) == new_implementation.address


def test_upgrade_already_done(core_deployer, chain, mailbox, client):
    """Upgrading to the current implementation sends nothing."""
    implementation = get_proxy_implementation(client, "testchain", mailbox.address)
    tx_count = len(chain.transactions)
    assert core_deployer.proxies.upgrade_and_initialize("testchain", mailbox, implementation)
    assert len(chain.transactions) == tx_count


def test_upgrade_not_authorised(client, core_deployer, chain, mailbox, new_implementation, other_address):
    """Somebody else owns the ProxyAdmin: the upgrade is skipped."""
    current = get_proxy_implementation(client, "testchain", mailbox.address)
    client.set_signer("testchain", other_address)
    tx_count = len(chain.transactions)

    assert not core_deployer.proxies.upgrade_and_initialize("testchain", mailbox, new_implementation.address)
    assert get_proxy_implementation(client, "testchain", mailbox.address) == current
    assert len(chain.transactions) == tx_count


def test_upgrade_direct_admin(client, core_deployer, chain, new_implementation, deployer_address):
    """The signer itself is the proxy admin."""
    implementation = core_deployer.deploy_contract_with_name("testchain", "directImplementation", "Mailbox", [chain.chain_id])
    proxy = core_deployer.proxies.deploy_proxy("testchain", implementation, deployer_address)
    assert get_proxy_admin(client, "testchain", proxy.address).lower() == deployer_address.lower()

    assert core_deployer.proxies.upgrade_and_initialize("testchain", proxy, new_implementation.address)
    assert get_proxy_implementation(client, "testchain", proxy.address) == new_implementation.address


def test_upgrade_and_initialize(client, core_deployer, mailbox, new_implementation, deployer_address):
    """Upgrade and call initialize() of the new implementation in one go."""
    test_ism = core_deployer.deploy_contract_with_name("testchain", "testIsm", "TestIsm", [])
    hook = core_deployer.deploy_contract_with_name("testchain", "merkleTreeHook", "MerkleTreeHook", [mailbox.address])

    args = [deployer_address, test_ism.address, hook.address, hook.address]
    assert core_deployer.proxies.upgrade_and_initialize("testchain", mailbox, new_implementation.address, args)
    assert client.call_function("testchain", mailbox, "defaultIsm") == test_ism.address
    assert client.call_function("testchain", mailbox, "requiredHook") == hook.address


def test_change_admin(client, core_deployer, mailbox, other_address):
    """Move the proxy from the ProxyAdmin contract to another account."""
    assert core_deployer.proxies.change_admin("testchain", mailbox, other_address)
    assert get_proxy_admin(client, "testchain", mailbox.address).lower() == other_address.lower()

    # We are no longer the admin
    assert not core_deployer.proxies.change_admin("testchain", mailbox, core_deployer.ledger.lookup("testchain", "proxyAdmin"))


def test_proxy_admin_reads(client, core_deployer, mailbox, proxy_admin):
    """ProxyAdmin reports the same admin and implementation as the storage slots."""
    admin = DeployedContract("proxyAdmin", proxy_admin.address, load_artifact("ProxyAdmin"))
    assert client.call_function("testchain", admin, "getProxyAdmin", mailbox.address) == proxy_admin.address
    assert client.call_function("testchain", admin, "getProxyImplementation", mailbox.address) == get_proxy_implementation(client, "testchain", mailbox.address)


@pytest.fixture()
def initialize_args(core_deployer, proxy_admin, deployer_address) -> list:
    """Mailbox initialize() arguments: owner, default ISM, default hook, required hook."""
    test_ism = core_deployer.deploy_contract_with_name("testchain", "testIsm", "TestIsm", [])
    hook = core_deployer.deploy_contract_with_name("testchain", "merkleTreeHook", "MerkleTreeHook", [proxy_admin.address])
    return [deployer_address, test_ism.address, hook.address, hook.address]


def test_deploy_proxied_contract_initialized(client, core_deployer, chain, proxy_admin, initialize_args):
    """Both the implementation and the proxy get initialized."""
    mailbox = core_deployer.proxies.deploy_proxied_contract("testchain", "mailbox", "Mailbox", proxy_admin.address, [chain.chain_id], initialize_args)
    implementation = mailbox.attach(get_proxy_implementation(client, "testchain", mailbox.address))

    test_ism = initialize_args[1]
    assert client.call_function("testchain", mailbox, "defaultIsm") == test_ism
    assert client.call_function("testchain", implementation, "defaultIsm") == test_ism


def test_recovered_proxy_verification_artifact(client, core_deployer, make_deployer, chain, proxy_admin, initialize_args):
    """Verification inputs rebuilt from the chain match the ones of the fresh deployment."""
    mailbox = core_deployer.proxies.deploy_proxied_contract("testchain", "mailbox", "Mailbox", proxy_admin.address, [chain.chain_id], initialize_args)
    fresh = [a for a in core_deployer.verification_artifacts["testchain"] if a.is_proxy]
    assert len(fresh) == 1

    second = make_deployer(core_deployer.ledger.to_dict(), options=DeployerOptions(recover_verification_inputs=True))
    tx_count = len(chain.transactions)
    resumed = second.proxies.deploy_proxied_contract("testchain", "mailbox", "Mailbox", proxy_admin.address, [chain.chain_id], initialize_args)
    assert resumed.address == mailbox.address
    assert len(chain.transactions) == tx_count

    recovered = [a for a in second.verification_artifacts["testchain"] if a.is_proxy]
    assert recovered == fresh
