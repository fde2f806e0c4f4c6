"""Hook deployment."""

import pytest

from eth_deployer.abi import DeployedContract, load_artifact
from eth_deployer.hooks import AggregationHookConfig, ArtifactHookDeployer, MerkleTreeHookConfig, OnchainHookType, ProtocolFeeHookConfig
from eth_deployer.ledger import AddressLedger

MAILBOX = "0x000000000000000000000000000000000000dEaD"


@pytest.fixture()
def hook_deployer(client, factories, artifacts) -> ArtifactHookDeployer:
    deployer = ArtifactHookDeployer(client, client.registry, artifacts)
    deployer.use_ledger(AddressLedger({"testchain": factories}))
    return deployer


def test_deploy_merkle_tree_hook(client, chain, hook_deployer):
    deployment = hook_deployer.deploy("testchain", MerkleTreeHookConfig(), {"mailbox": MAILBOX})
    hook = DeployedContract("merkleTreeHook", deployment.address, load_artifact("MerkleTreeHook"))
    assert client.call_function("testchain", hook, "mailbox") == MAILBOX
    assert client.call_function("testchain", hook, "hookType") == OnchainHookType.MERKLE_TREE
    assert deployment.contracts == {"merkleTreeHook": deployment.address}
    assert deployment.verification_artifacts[0].name == "MerkleTreeHook"


def test_deploy_protocol_fee_hook(client, chain, hook_deployer, other_address):
    config = ProtocolFeeHookConfig(owner=other_address, beneficiary=other_address, max_protocol_fee=1000, protocol_fee=10)
    deployment = hook_deployer.deploy("testchain", config, {"mailbox": MAILBOX})
    hook = DeployedContract("protocolFee", deployment.address, load_artifact("ProtocolFee"))
    assert client.call_function("testchain", hook, "protocolFee") == 10
    assert client.call_function("testchain", hook, "maxProtocolFee") == 1000
    assert client.call_function("testchain", hook, "owner").lower() == other_address


def test_protocol_fee_over_max(other_address):
    with pytest.raises(AssertionError):
        ProtocolFeeHookConfig(owner=other_address, beneficiary=other_address, max_protocol_fee=1, protocol_fee=2)


def test_hook_reused_from_ledger(client, chain, hook_deployer):
    """A hook of the same type in the ledger is not deployed again."""
    first = hook_deployer.deploy("testchain", MerkleTreeHookConfig(), {"mailbox": MAILBOX})
    hook_deployer.ledger.bind("testchain", "merkleTreeHook", first.address)
    tx_count = len(chain.transactions)

    second = hook_deployer.deploy("testchain", MerkleTreeHookConfig(), {"mailbox": MAILBOX})
    assert second.address == first.address
    assert len(chain.transactions) == tx_count


def test_deploy_aggregation_hook(client, chain, hook_deployer, other_address):
    config = AggregationHookConfig(
        (
            MerkleTreeHookConfig(),
            ProtocolFeeHookConfig(owner=other_address, beneficiary=other_address, max_protocol_fee=1000, protocol_fee=0),
        )
    )
    deployment = hook_deployer.deploy("testchain", config, {"mailbox": MAILBOX})
    aggregation = DeployedContract("aggregationHook", deployment.address, load_artifact("StaticAggregationHook"))
    assert client.call_function("testchain", aggregation, "hookType") == OnchainHookType.AGGREGATION

    hooks = client.call_function("testchain", aggregation, "hooks", b"")
    assert set(hooks) == {deployment.contracts["merkleTreeHook"], deployment.contracts["protocolFee"]}

    # Same sub-hooks give the same aggregation
    tx_count = len(chain.transactions)
    literal = AggregationHookConfig((deployment.contracts["protocolFee"], deployment.contracts["merkleTreeHook"]))
    assert hook_deployer.deploy("testchain", literal, {"mailbox": MAILBOX}).address == deployment.address
    assert len(chain.transactions) == tx_count
