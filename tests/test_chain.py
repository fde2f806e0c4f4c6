"""Chain registry."""

import pytest

from eth_deployer.chain import ChainMetadata, ChainRegistry, UnknownChain


def test_known_chains():
    registry = ChainRegistry()
    assert registry.get_chain_id("arbitrum") == 42161
    assert registry.get_domain_id("arbitrum") == 42161
    assert registry.get_chain_name(8453) == "base"
    assert registry.get_explorer_address_url("ethereum", "0x000000000000000000000000000000000000dEaD") == "https://etherscan.io/address/0x000000000000000000000000000000000000dEaD"

    with pytest.raises(UnknownChain):
        registry.get_chain_id("moonbase")


def test_intersect():
    """Unknown and non-EVM chains are skipped, order preserved."""
    registry = ChainRegistry()
    registry.add(ChainMetadata.from_dict("solanamainnet", {"chainId": 1399811149, "protocol": "sealevel"}))
    registry.add(ChainMetadata.from_dict("custom", {"chainId": 9999, "domainId": 77}))

    targets, skipped = registry.intersect(["polygon", "solanamainnet", "custom", "nope", "ethereum"])
    assert targets == ["polygon", "custom", "ethereum"]
    assert skipped == ["solanamainnet", "nope"]
    assert registry.get_domain_id("custom") == 77
    assert registry.get_explorer_address_url("custom", "0x0000000000000000000000000000000000000001") is None
