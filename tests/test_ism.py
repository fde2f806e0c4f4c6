"""ISM config parsing, structural matching and factory deployment."""

import pytest
from web3 import Web3

from eth_deployer.client import DeploymentError
from eth_deployer.ism import (
    AggregationIsmConfig,
    FactoryIsmDeployer,
    IsmType,
    MultisigIsmConfig,
    RoutingIsmConfig,
    TestIsmConfig,
    module_matches_config,
    parse_ism_config,
)
from eth_deployer.ledger import AddressLedger
from eth_deployer.testing import SimulatedChainClient


@pytest.fixture()
def ism_deployer(client, factories, artifacts) -> FactoryIsmDeployer:
    deployer = FactoryIsmDeployer(client, client.registry, artifacts)
    deployer.use_ledger(AddressLedger({"testchain": factories}))
    return deployer


def _matches(client, address, config) -> bool:
    return module_matches_config(client, client.registry, "testchain", address, config)


def test_parse_ism_config(validators):
    config = parse_ism_config(
        {
            "type": "aggregationIsm",
            "threshold": 1,
            "modules": [
                {"type": "merkleRootMultisigIsm", "validators": validators, "threshold": 2},
                {"type": "testIsm"},
                "0x000000000000000000000000000000000000dead",
            ],
        }
    )
    assert isinstance(config, AggregationIsmConfig)
    assert config.threshold == 1
    multisig, test, literal = config.modules
    assert multisig.type == IsmType.merkle_root_multisig
    assert multisig.validators[0] == Web3.to_checksum_address(validators[0])
    assert isinstance(test, TestIsmConfig)
    assert literal == "0x000000000000000000000000000000000000dEaD"


def test_parse_routing_ism_config(other_address):
    config = parse_ism_config({"type": "domainRoutingIsm", "owner": other_address, "domains": {"testchain": {"type": "testIsm"}}})
    assert isinstance(config, RoutingIsmConfig)
    assert config.domains == {"testchain": TestIsmConfig()}


def test_multisig_bad_threshold(validators):
    with pytest.raises(AssertionError):
        MultisigIsmConfig(IsmType.merkle_root_multisig, tuple(validators), 4)


def test_multisig_structural_match(client, chain, ism_deployer, validators):
    """Validator order does not matter, threshold and type do."""
    config = MultisigIsmConfig(IsmType.merkle_root_multisig, (validators[0], validators[1]), 2)
    address = ism_deployer.deploy("testchain", config, "0x0000000000000000000000000000000000000001").address

    assert _matches(client, address, MultisigIsmConfig(IsmType.merkle_root_multisig, (validators[1], validators[0]), 2))
    assert not _matches(client, address, MultisigIsmConfig(IsmType.merkle_root_multisig, (validators[0], validators[1]), 1))
    assert not _matches(client, address, MultisigIsmConfig(IsmType.message_id_multisig, (validators[0], validators[1]), 2))
    assert not _matches(client, address, MultisigIsmConfig(IsmType.merkle_root_multisig, (validators[0], validators[2]), 2))
    assert not _matches(client, address, TestIsmConfig())


def test_static_deploy_is_idempotent(client, chain, ism_deployer, validators):
    """The factory gives the same module for the same config and deploys it only once."""
    config = MultisigIsmConfig(IsmType.message_id_multisig, tuple(validators), 2)
    first = ism_deployer.deploy("testchain", config, "0x0000000000000000000000000000000000000001")
    tx_count = len(chain.transactions)

    reordered = MultisigIsmConfig(IsmType.message_id_multisig, tuple(reversed(validators)), 2)
    second = ism_deployer.deploy("testchain", reordered, "0x0000000000000000000000000000000000000001")
    assert second.address == first.address
    assert len(chain.transactions) == tx_count
    assert second.contracts == {"messageIdMultisigIsm": first.address}


def test_aggregation_match(client, chain, ism_deployer, validators):
    multisig = MultisigIsmConfig(IsmType.merkle_root_multisig, tuple(validators), 2)
    config = AggregationIsmConfig((multisig, TestIsmConfig()), 1)
    deployment = ism_deployer.deploy("testchain", config, "0x0000000000000000000000000000000000000001")

    assert _matches(client, deployment.address, config)
    assert _matches(client, deployment.address, AggregationIsmConfig((TestIsmConfig(), multisig), 1))
    assert not _matches(client, deployment.address, AggregationIsmConfig((multisig, TestIsmConfig()), 2))
    assert not _matches(client, deployment.address, AggregationIsmConfig((TestIsmConfig(), TestIsmConfig()), 1))

    # Sub-modules are deployed too and have verification inputs
    assert deployment.contracts["testIsm"]
    assert [a.name for a in deployment.verification_artifacts] == ["TestIsm"]


def test_routing_match(client, chain, ism_deployer, other_address, deployer_address):
    config = RoutingIsmConfig(other_address, {"testchain": TestIsmConfig()})
    deployment = ism_deployer.deploy("testchain", config, "0x0000000000000000000000000000000000000001")

    assert _matches(client, deployment.address, config)
    assert not _matches(client, deployment.address, RoutingIsmConfig(deployer_address, {"testchain": TestIsmConfig()}))
    assert not _matches(client, deployment.address, RoutingIsmConfig(other_address, {}))


def test_literal_and_non_module_match(client, chain, ism_deployer, factories):
    """Literal configs compare addresses, contracts that are not modules never match."""
    assert _matches(client, "0x000000000000000000000000000000000000dEaD", "0x000000000000000000000000000000000000dead")
    assert not _matches(client, "0x000000000000000000000000000000000000dead", TestIsmConfig())

    # A factory answers no moduleType()
    factory = factories["staticMerkleRootMultisigIsmFactory"]
    assert not _matches(client, factory, TestIsmConfig())


def test_missing_factory(client, artifacts, validators):
    deployer = FactoryIsmDeployer(client, client.registry, artifacts)
    deployer.use_ledger(AddressLedger())
    client.add_chain("testchain")
    with pytest.raises(DeploymentError):
        deployer.deploy("testchain", MultisigIsmConfig(IsmType.merkle_root_multisig, tuple(validators), 1), "0x0000000000000000000000000000000000000001")


class SilentFallbackClient(SimulatedChainClient):
    """Every call returns empty data, like a contract with a fallback that does not revert."""

    def call(self, chain, to, data):
        return b""


def test_empty_return_data_does_not_match(deployer_address, validators):
    """A contract answering moduleType() with no data is not a module."""
    client = SilentFallbackClient(deployer_address)
    chain = client.add_chain("testchain")
    address = chain.install("TestRecipient", storage={"owner": deployer_address})

    assert not _matches(client, address, TestIsmConfig())
    assert not _matches(client, address, MultisigIsmConfig(IsmType.merkle_root_multisig, tuple(validators), 2))
