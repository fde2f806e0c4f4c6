"""Source code verification on block explorers.

Verification is best effort. The deployer logs verification failures
and carries on, see :py:meth:`eth_deployer.deployer.BaseDeployer.verify`.

- :py:class:`ForgeContractVerifier` verifies on Etherscan compatible explorers
  using ``forge verify-contract``. See `Foundry book <https://book.getfoundry.sh/>`__.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from shutil import which
from subprocess import DEVNULL, PIPE

import psutil

from eth_deployer.chain import ChainRegistry
from eth_deployer.ledger import VerificationArtifact

logger = logging.getLogger(__name__)


#: Crash unless forge completes in 4 minutes
#:
DEFAULT_TIMEOUT = 4 * 60


class ForgeFailed(Exception):
    """Forge command failed."""


class ContractVerifier(ABC):
    """Submit deployed contracts for source verification."""

    @abstractmethod
    def verify_contract(self, chain: str, artifact: VerificationArtifact):
        """Verify one contract.

        May raise anything. The caller logs and ignores the failure.
        """


class ForgeContractVerifier(ContractVerifier):
    """Verify contracts with Forge.

    Assumes standard Foundry project layout with foundry.toml, src and out.

    Example:

    .. code-block:: python

        verifier = ForgeContractVerifier(
            registry,
            Path("~/hyperlane-monorepo/solidity").expanduser(),
            {"Mailbox": "contracts/Mailbox.sol"},
            etherscan_api_key=os.environ["ETHERSCAN_API_KEY"],
        )
    """

    def __init__(
        self,
        registry: ChainRegistry,
        project_folder: Path,
        contract_paths: dict[str, str],
        etherscan_api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        verifier_url: str | None = None,
    ):
        """
        :param contract_paths:
            Contract name -> source file relative to the project folder.

            Contracts not listed are assumed to live in ``src/<name>.sol``.
        """
        assert isinstance(project_folder, Path), f"Got {type(project_folder)}"
        self.registry = registry
        self.project_folder = project_folder
        self.contract_paths = contract_paths
        self.etherscan_api_key = etherscan_api_key
        self.timeout = timeout
        self.verifier_url = verifier_url

    def get_contract_path(self, name: str) -> str:
        return f"{self.contract_paths.get(name, f'src/{name}.sol')}:{name}"

    def build_command_line(self, chain: str, artifact: VerificationArtifact) -> list[str]:
        forge = which("forge") or "forge"

        cmd_line = [
            forge,
            "verify-contract",
            artifact.address,
            self.get_contract_path(artifact.name),
            "--chain",
            str(self.registry.get_chain_id(chain)),
            "--root",
            str(self.project_folder),
            "--watch",
        ]

        if artifact.constructor_arguments not in ("", "0x"):
            cmd_line += ["--constructor-args", artifact.constructor_arguments]

        if self.verifier_url:
            cmd_line += ["--verifier-url", self.verifier_url]

        if self.etherscan_api_key:
            cmd_line += ["--etherscan-api-key", self.etherscan_api_key]

        return cmd_line

    def verify_contract(self, chain: str, artifact: VerificationArtifact):
        cmd_line = self.build_command_line(chain, artifact)
        censored_command = " ".join(cmd_line)
        if self.etherscan_api_key:
            censored_command = censored_command.replace(self.etherscan_api_key, "***")

        logger.info("%s: verifying %s at %s: %s", chain, artifact.name, artifact.address, censored_command)

        proc = psutil.Popen(cmd_line, stdin=DEVNULL, stdout=PIPE, stderr=PIPE)
        result = proc.wait(self.timeout)
        output = proc.stdout.read().decode("utf-8") + proc.stderr.read().decode("utf-8")

        if result != 0 and "is already verified" not in output:
            raise ForgeFailed(f"forge return code {result} when running: {censored_command}\nOutput is:\n{output}")

        logger.debug("forge result:\n%s", output)
