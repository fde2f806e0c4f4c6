"""Forge verification command line and best effort verification."""

from pathlib import Path

from eth_deployer.chain import ChainRegistry
from eth_deployer.ledger import VerificationArtifact
from eth_deployer.verify import ContractVerifier, ForgeContractVerifier

MAILBOX = "0x000000000000000000000000000000000000dEaD"


def test_forge_command_line():
    verifier = ForgeContractVerifier(
        ChainRegistry(),
        Path("/tmp/solidity"),
        {"Mailbox": "contracts/Mailbox.sol"},
        etherscan_api_key="xxx",
    )
    artifact = VerificationArtifact("Mailbox", MAILBOX, "0x000000000000000000000000000000000000000000000000000000000000a4b1")
    cmd_line = verifier.build_command_line("arbitrum", artifact)

    assert cmd_line[1:] == [
        "verify-contract",
        MAILBOX,
        "contracts/Mailbox.sol:Mailbox",
        "--chain",
        "42161",
        "--root",
        "/tmp/solidity",
        "--watch",
        "--constructor-args",
        "0x000000000000000000000000000000000000000000000000000000000000a4b1",
        "--etherscan-api-key",
        "xxx",
    ]


def test_forge_command_line_no_args():
    """Contracts without constructor arguments default to src/."""
    verifier = ForgeContractVerifier(ChainRegistry(), Path("/tmp/solidity"), {}, verifier_url="https://example.com/api")
    cmd_line = verifier.build_command_line("base", VerificationArtifact("ProxyAdmin", MAILBOX, "0x"))
    assert "src/ProxyAdmin.sol:ProxyAdmin" in cmd_line
    assert "--constructor-args" not in cmd_line
    assert "--etherscan-api-key" not in cmd_line
    assert cmd_line[-2:] == ["--verifier-url", "https://example.com/api"]


class FailingVerifier(ContractVerifier):
    def __init__(self):
        self.attempts = []

    def verify_contract(self, chain, artifact):
        self.attempts.append(artifact.name)
        raise RuntimeError("Explorer is down")


def test_verification_failure_does_not_fail_deployment(client, chain, make_deployer, make_config, factories):
    """Deployment carries on when the explorer does not cooperate."""
    verifier = FailingVerifier()
    deployer = make_deployer({"testchain": factories}, contract_verifier=verifier)
    results = deployer.deploy({"testchain": make_config()})
    assert results["testchain"].succeeded, f"Failed: {results['testchain'].error}"
    assert "Mailbox" in verifier.attempts
    assert "ProxyAdmin" in verifier.attempts
