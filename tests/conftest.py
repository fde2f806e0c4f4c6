"""Simulated chain fixtures shared by the deployer tests."""

from typing import Callable

import pytest
from eth_typing import HexAddress

from eth_deployer.config import CoreConfig
from eth_deployer.core import CoreDeployer
from eth_deployer.hooks import MerkleTreeHookConfig, ProtocolFeeHookConfig
from eth_deployer.ism import FactoryIsmDeployer, IsmType, MultisigIsmConfig
from eth_deployer.testing import SimulatedChain, SimulatedChainClient, create_simulated_artifacts, install_factories


@pytest.fixture()
def deployer_address() -> HexAddress:
    """Signs all transactions."""
    return "0x00000000000000000000000000000000000de910"


@pytest.fixture()
def other_address() -> HexAddress:
    """Someone who is not us."""
    return "0x0000000000000000000000000000000000000b0b"


@pytest.fixture()
def validators() -> list[HexAddress]:
    return [
        "0x000000000000000000000000000000000000000a",
        "0x000000000000000000000000000000000000000b",
        "0x000000000000000000000000000000000000000c",
    ]


@pytest.fixture()
def client(deployer_address) -> SimulatedChainClient:
    return SimulatedChainClient(deployer_address)


@pytest.fixture()
def chain(client) -> SimulatedChain:
    return client.add_chain("testchain")


@pytest.fixture()
def factories(chain) -> dict[str, HexAddress]:
    """Static ISM and hook factories on the test chain."""
    return install_factories(chain)


@pytest.fixture()
def artifacts():
    return create_simulated_artifacts()


@pytest.fixture()
def make_config(deployer_address, validators) -> Callable[..., CoreConfig]:
    """Build core configs with a 2-of-2 merkle root multisig default ISM."""

    def _make_config(owner: HexAddress = deployer_address, threshold: int = 2, **kwargs) -> CoreConfig:
        return CoreConfig(
            owner=owner,
            default_ism=MultisigIsmConfig(IsmType.merkle_root_multisig, tuple(validators[0:2]), threshold),
            default_hook=MerkleTreeHookConfig(),
            required_hook=ProtocolFeeHookConfig(owner=owner, beneficiary=owner, max_protocol_fee=10**18, protocol_fee=0),
            **kwargs,
        )

    return _make_config


@pytest.fixture()
def make_deployer(client, artifacts) -> Callable[..., CoreDeployer]:
    """Build a core deployer against the simulated chains.

    Each call gives a fresh deployer, like a new run of the deployment script.
    """

    def _make_deployer(addresses: dict | None = None, **kwargs) -> CoreDeployer:
        deployer = CoreDeployer(
            client,
            client.registry,
            artifacts=artifacts,
            ism_deployer=FactoryIsmDeployer(client, client.registry, artifacts),
            **kwargs,
        )
        if addresses:
            deployer.cache_addresses_map(addresses)
        return deployer

    return _make_deployer


@pytest.fixture()
def core_deployer(make_deployer, factories) -> CoreDeployer:
    return make_deployer({"testchain": factories})
