"""Deployment config parsing."""

import json
from pathlib import Path

from eth_deployer.config import DeployerOptions, load_core_config_map, parse_core_config
from eth_deployer.hooks import AggregationHookConfig, MerkleTreeHookConfig, ProtocolFeeHookConfig
from eth_deployer.ism import IsmType, MultisigIsmConfig

OWNER = "0x000000000000000000000000000000000000dEaD"
TIMELOCK_PROPOSER = "0x0000000000000000000000000000000000000001"


def _core_config_data() -> dict:
    return {
        "owner": OWNER.lower(),
        "ownerOverrides": {"proxyAdmin": TIMELOCK_PROPOSER},
        "defaultIsm": {"type": "messageIdMultisigIsm", "validators": [OWNER], "threshold": 1},
        "defaultHook": {"type": "merkleTreeHook"},
        "requiredHook": {
            "type": "aggregationHook",
            "hooks": [
                {"type": "merkleTreeHook"},
                {"type": "protocolFee", "owner": OWNER, "beneficiary": OWNER, "maxProtocolFee": "1000", "protocolFee": "10"},
            ],
        },
        "upgrade": {"timelock": {"delay": 3600, "roles": {"proposer": TIMELOCK_PROPOSER, "executor": OWNER}}},
    }


def test_parse_core_config():
    config = parse_core_config(_core_config_data())
    assert config.owner == OWNER
    assert config.get_owner("mailbox") == OWNER
    assert config.get_owner("proxyAdmin") == TIMELOCK_PROPOSER
    assert config.default_ism == MultisigIsmConfig(IsmType.message_id_multisig, (OWNER,), 1)
    assert config.default_hook == MerkleTreeHookConfig()
    assert isinstance(config.required_hook, AggregationHookConfig)
    fee = config.required_hook.hooks[1]
    assert fee == ProtocolFeeHookConfig(OWNER, OWNER, 1000, 10)
    assert config.upgrade.timelock.delay == 3600
    assert config.upgrade.timelock.proposer == TIMELOCK_PROPOSER
    assert not config.remove


def test_load_core_config_map(tmp_path: Path):
    path = tmp_path / "core-config.json"
    path.write_text(json.dumps({"arbitrum": _core_config_data(), "base": {**_core_config_data(), "remove": True, "upgrade": None}}))
    configs = load_core_config_map(path)
    assert list(configs.keys()) == ["arbitrum", "base"]
    assert configs["base"].remove
    assert configs["base"].upgrade is None


def test_options_from_env(monkeypatch):
    monkeypatch.setenv("CHAIN_TIMEOUT_SECONDS", "90")
    monkeypatch.setenv("RECOVER_VERIFICATION_INPUTS", "true")
    options = DeployerOptions.from_env()
    assert options.chain_timeout == 90
    assert options.recover_verification_inputs

    monkeypatch.delenv("CHAIN_TIMEOUT_SECONDS")
    monkeypatch.delenv("RECOVER_VERIFICATION_INPUTS")
    assert DeployerOptions.from_env() == DeployerOptions()
