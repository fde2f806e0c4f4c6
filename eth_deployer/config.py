"""Deployment configuration.

The target state of each chain is described by :py:class:`CoreConfig`.
Configs are usually read from a JSON file keyed by chain name:

.. code-block:: json

    {
        "arbitrum": {
            "owner": "0x...",
            "ownerOverrides": {"proxyAdmin": "0x..."},
            "defaultIsm": {"type": "merkleRootMultisigIsm", "validators": ["0x..."], "threshold": 1},
            "defaultHook": {"type": "merkleTreeHook"},
            "requiredHook": {"type": "protocolFee", "owner": "0x...", "beneficiary": "0x...", "maxProtocolFee": "1000", "protocolFee": "0"},
            "upgrade": {"timelock": {"delay": 604800, "roles": {"proposer": "0x...", "executor": "0x..."}}}
        }
    }

"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from eth_typing import HexAddress
from web3 import Web3

from eth_deployer.hooks import HookConfig, parse_hook_config
from eth_deployer.ism import IsmConfig, parse_ism_config


@dataclass(slots=True, frozen=True)
class TimelockConfig:
    """Parameters of ``TimelockController``."""

    #: Seconds
    delay: int

    proposer: HexAddress

    executor: HexAddress


@dataclass(slots=True, frozen=True)
class UpgradeConfig:
    """Put upgrades behind a timelock.

    The timelock becomes the owner of the proxy admin.
    """

    timelock: TimelockConfig


@dataclass(slots=True, frozen=True)
class MailboxClientConfig:
    """Hook and ISM of a mailbox client contract, like the test recipient.

    ``None`` leaves the attribute as is.
    """

    hook: Optional[HexAddress] = None

    interchain_security_module: Optional[IsmConfig] = None


@dataclass(slots=True, frozen=True)
class CoreConfig:
    """Target state of the core contracts on one chain."""

    owner: HexAddress

    default_ism: IsmConfig

    default_hook: HookConfig

    required_hook: HookConfig

    #: Slot -> owner
    owner_overrides: dict[str, HexAddress] = field(default_factory=dict)

    upgrade: Optional[UpgradeConfig] = None

    #: The chain is being removed from the deployment, do nothing there
    remove: bool = False

    def get_owner(self, slot: str) -> HexAddress:
        return self.owner_overrides.get(slot, self.owner)


def parse_core_config(data: dict) -> CoreConfig:
    """Parse one chain's config from JSON."""
    upgrade = None
    if data.get("upgrade"):
        timelock = data["upgrade"]["timelock"]
        upgrade = UpgradeConfig(
            TimelockConfig(
                delay=int(timelock["delay"]),
                proposer=Web3.to_checksum_address(timelock["roles"]["proposer"]),
                executor=Web3.to_checksum_address(timelock["roles"]["executor"]),
            )
        )

    return CoreConfig(
        owner=Web3.to_checksum_address(data["owner"]),
        default_ism=parse_ism_config(data["defaultIsm"]),
        default_hook=parse_hook_config(data["defaultHook"]),
        required_hook=parse_hook_config(data["requiredHook"]),
        owner_overrides={slot: Web3.to_checksum_address(a) for slot, a in data.get("ownerOverrides", {}).items()},
        upgrade=upgrade,
        remove=data.get("remove", False),
    )


def load_core_config_map(path: Path) -> dict[str, CoreConfig]:
    """Read chain name -> config JSON file."""
    with open(path, "rt", encoding="utf-8") as f:
        data = json.load(f)
    return {chain: parse_core_config(chain_data) for chain, chain_data in data.items()}


@dataclass(slots=True, frozen=True)
class DeployerOptions:
    """Knobs of the deployment driver."""

    #: Per-chain wall clock budget in seconds.
    #:
    #: ``None`` uses the default of the deployer.
    chain_timeout: Optional[float] = None

    #: Reconstruct verification inputs of contracts reused from the ledger
    recover_verification_inputs: bool = False

    @staticmethod
    def from_env() -> "DeployerOptions":
        """Read ``CHAIN_TIMEOUT_SECONDS`` and ``RECOVER_VERIFICATION_INPUTS`` environment variables."""
        timeout = os.environ.get("CHAIN_TIMEOUT_SECONDS")
        recover = os.environ.get("RECOVER_VERIFICATION_INPUTS", "").lower() in ("1", "true", "yes")
        return DeployerOptions(
            chain_timeout=float(timeout) if timeout else None,
            recover_verification_inputs=recover,
        )
