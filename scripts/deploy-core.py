"""Deploy or resume the core messaging contracts on many chains.

- Reads the target state of each chain from a JSON config, see :py:mod:`eth_deployer.config`

- Reuses addresses of the earlier runs from the address file, and writes the updated addresses back

- Adds verification inputs of the contracts to the verification file

Example:

.. code-block:: shell

    export PRIVATE_KEY=...
    export JSON_RPC_ARBITRUM=...
    export JSON_RPC_BASE=...
    export DEPLOYER_ARTIFACTS_PATH=~/hyperlane-monorepo/solidity/out
    export LOG_LEVEL=info

    python scripts/deploy-core.py \\
        --config-file core-config.json \\
        --addresses-file addresses.json \\
        --verification-file verification.json

To also verify the contract source on block explorers:

.. code-block:: shell

    export ETHERSCAN_API_KEY=...
    export FOUNDRY_PROJECT=~/hyperlane-monorepo/solidity

    python scripts/deploy-core.py ...
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from eth_account import Account

from eth_deployer.abi import ArtifactRegistry
from eth_deployer.chain import ChainRegistry
from eth_deployer.client import create_web3_chain_client
from eth_deployer.config import DeployerOptions, load_core_config_map
from eth_deployer.core import CoreDeployer
from eth_deployer.ism import FactoryIsmDeployer
from eth_deployer.ledger import AddressLedger, VerificationArtifact, merge_verification_artifacts
from eth_deployer.utils import setup_console_logging
from eth_deployer.verify import ForgeContractVerifier

logger = logging.getLogger(__name__)

app = typer.Typer()


def load_verification_file(path: Path) -> dict[str, list[VerificationArtifact]]:
    if not path.exists():
        return {}
    with open(path, "rt", encoding="utf-8") as f:
        data = json.load(f)
    return {chain: [VerificationArtifact.from_dict(a) for a in artifacts] for chain, artifacts in data.items()}


def save_verification_file(path: Path, artifacts: dict[str, list[VerificationArtifact]]):
    with open(path, "wt", encoding="utf-8") as f:
        json.dump({chain: [a.to_dict() for a in chain_artifacts] for chain, chain_artifacts in artifacts.items()}, f, indent=2)


@app.command()
def main(
    config_file: Path = typer.Option(..., envvar="CONFIG_FILE", help="Chain name -> core config JSON"),
    addresses_file: Path = typer.Option(Path("addresses.json"), envvar="ADDRESSES_FILE", help="Address ledger JSON, read and written"),
    verification_file: Path = typer.Option(Path("verification.json"), envvar="VERIFICATION_FILE", help="Verification inputs JSON, merged"),
    private_key: str = typer.Option(..., envvar="PRIVATE_KEY", help="Private key for deployer wallet"),
    artifacts_path: Optional[Path] = typer.Option(None, envvar="DEPLOYER_ARTIFACTS_PATH", help="Forge out or Hardhat artifacts folder"),
    foundry_project: Optional[Path] = typer.Option(None, envvar="FOUNDRY_PROJECT", help="Foundry project to verify the source with"),
    etherscan_api_key: Optional[str] = typer.Option(None, envvar="ETHERSCAN_API_KEY", help="Etherscan API key for verification"),
    chain: Optional[list[str]] = typer.Option(None, help="Deploy only these chains of the config"),
):
    """Deploy the core contracts."""
    setup_console_logging(default_log_level="info")

    config_map = load_core_config_map(config_file)
    if chain:
        config_map = {name: config for name, config in config_map.items() if name in chain}

    registry = ChainRegistry()
    targets, _ = registry.intersect(config_map.keys())

    account = Account.from_key(private_key)
    logger.info("Deployer is %s, deploying to %s", account.address, ", ".join(targets))

    client = create_web3_chain_client(registry, account, targets)
    artifacts = ArtifactRegistry(artifacts_path.expanduser() if artifacts_path else None)

    contract_verifier = None
    if foundry_project:
        contract_verifier = ForgeContractVerifier(registry, foundry_project.expanduser(), {}, etherscan_api_key=etherscan_api_key)

    ledger = AddressLedger.load_json(addresses_file)

    deployer = CoreDeployer(
        client,
        registry,
        artifacts=artifacts,
        ism_deployer=FactoryIsmDeployer(client, registry, artifacts),
        contract_verifier=contract_verifier,
        options=DeployerOptions.from_env(),
        ledger=ledger,
    )

    try:
        results = deployer.deploy(config_map)
    finally:
        # Keep what got deployed, even if we crash
        ledger.save_json(addresses_file)
        verification = merge_verification_artifacts(load_verification_file(verification_file), deployer.verification_artifacts)
        save_verification_file(verification_file, verification)

    for name, result in results.items():
        if result.succeeded:
            typer.echo(f"{name}: {result.state.value}, mailbox at {result.addresses.get('mailbox')}")
        else:
            typer.echo(f"{name}: {result.state.value}, {result.error}")

    failed = [name for name, result in results.items() if not result.succeeded]
    if failed:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
