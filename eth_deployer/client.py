"""Chain client.

The deployer never talks to web3.py directly. All reads and transactions go through
:py:class:`ChainClient` so that

- the per-chain wall clock budget can be enforced at every call, see :py:class:`BudgetedChainClient`

- tests can run against in-memory chains, see :py:mod:`eth_deployer.testing`

:py:class:`Web3ChainClient` is the production implementation using a local private key,
manual nonce tracking and EIP-1559 gas pricing.
"""

import contextlib
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Sequence

from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from hexbytes import HexBytes
from requests.exceptions import ConnectionError, HTTPError, Timeout
from web3 import HTTPProvider, Web3
from web3.exceptions import ContractLogicError, Web3RPCError
from web3.providers.rpc.utils import ExceptionRetryConfiguration

from eth_deployer.abi import ContractArtifact, DeployedContract
from eth_deployer.chain import ChainRegistry

logger = logging.getLogger(__name__)


class DeploymentError(Exception):
    """Base class for the deployer failures."""


class TransactionFailed(DeploymentError):
    """A transaction reverted or could not be estimated."""

    def __init__(self, chain: str, description: str, revert_reason: str | None = None, tx_hash: HexBytes | None = None):
        super().__init__(f"Transaction {description} failed on {chain}: {revert_reason}")
        self.chain = chain
        self.description = description
        self.revert_reason = revert_reason
        self.tx_hash = tx_hash


class ContractDeploymentFailed(DeploymentError):
    """Did not get successful tx receipt from a deployment."""

    def __init__(self, tx_hash, msg):
        super().__init__(msg)
        self.tx_hash = tx_hash


class ChainDeploymentTimeout(DeploymentError, TimeoutError):
    """Chain did not finish within its wall clock budget."""

    def __init__(self, chain: str, timeout: float):
        super().__init__(f"Deployment to {chain} did not finish in {timeout} seconds")
        self.chain = chain
        self.timeout = timeout


@dataclass(slots=True)
class TransactionRequest:
    """Unsigned transaction the deployer wants to get included."""

    #: Target contract, ``None`` for a contract creation
    to: Optional[HexAddress]

    #: Call data or init code
    data: HexBytes

    #: Wei attached
    value: int = 0

    #: Gas limit, estimated if not given
    gas: Optional[int] = None

    #: Fee parameters from :py:meth:`ChainClient.get_transaction_overrides`
    overrides: dict = field(default_factory=dict)

    #: Human readable label for logs and errors, e.g. ``Mailbox.setDefaultIsm()``
    description: Optional[str] = None


@dataclass(slots=True, frozen=True)
class TransactionReceipt:
    """Included transaction."""

    chain: str

    tx_hash: HexBytes

    #: 1 success, 0 reverted
    status: int

    block_number: int

    #: Set for contract creations
    contract_address: Optional[HexAddress] = None

    gas_used: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class ChainClient(ABC):
    """Access to the target chains.

    Every method takes the chain name as the first argument,
    so one client instance serves all chains of a deployment.
    """

    @abstractmethod
    def get_code(self, chain: str, address: HexAddress) -> bytes:
        """Get the runtime bytecode at an address."""

    @abstractmethod
    def get_block_number(self, chain: str) -> int:
        """Get the latest block number."""

    @abstractmethod
    def get_storage_at(self, chain: str, address: HexAddress, slot: int) -> bytes:
        """Read a raw storage slot as 32 bytes."""

    @abstractmethod
    def call(self, chain: str, to: HexAddress, data: bytes) -> bytes:
        """Read-only ``eth_call``.

        :raise TransactionFailed:
            The call reverted
        """

    @abstractmethod
    def submit(self, chain: str, tx: TransactionRequest) -> TransactionReceipt:
        """Sign, broadcast and block until the transaction is included.

        :raise TransactionFailed:
            The transaction reverted
        """

    @abstractmethod
    def get_signer_address(self, chain: str) -> HexAddress:
        """The address transactions are sent from on this chain."""

    @abstractmethod
    def get_transaction_overrides(self, chain: str) -> dict:
        """Fee and gas parameters for the next transaction."""

    def has_code(self, chain: str, address: HexAddress) -> bool:
        return len(self.get_code(chain, address)) > 0

    def call_function(self, chain: str, contract: DeployedContract, fn_name: str, *args) -> Any:
        """Call a view function and decode its result.

        .. code-block:: python

            owner = client.call_function("ethereum", mailbox, "owner")
        """
        data = contract.artifact.encode_function_data(fn_name, args)
        result = self.call(chain, contract.address, data)
        return contract.artifact.decode_function_result(fn_name, result, len(args))

    def build_function_transaction(self, chain: str, contract: DeployedContract, fn_name: str, *args) -> TransactionRequest:
        return TransactionRequest(
            to=contract.address,
            data=contract.artifact.encode_function_data(fn_name, args),
            overrides=self.get_transaction_overrides(chain),
            description=f"{contract.artifact.name}.{fn_name}()",
        )

    def send_function(self, chain: str, contract: DeployedContract, fn_name: str, *args) -> TransactionReceipt:
        """Transact a state changing function and wait for the receipt."""
        tx = self.build_function_transaction(chain, contract, fn_name, *args)
        logger.debug("%s: %s at %s", chain, tx.description, contract.address)
        return self.submit(chain, tx)

    def deploy(self, chain: str, artifact: ContractArtifact, args: Sequence = ()) -> TransactionReceipt:
        """Deploy a contract and wait for the receipt.

        :raise ContractDeploymentFailed:
            The receipt did not carry the new contract address
        """
        assert artifact.bytecode, f"Cannot deploy {artifact.name}: artifact has no bytecode"
        tx = TransactionRequest(
            to=None,
            data=artifact.get_deploy_data(args),
            overrides=self.get_transaction_overrides(chain),
            description=f"deploy {artifact.name}",
        )
        receipt = self.submit(chain, tx)
        if not receipt.contract_address:
            raise ContractDeploymentFailed(receipt.tx_hash, f"Deployment of {artifact.name} on {chain} did not create a contract")
        return receipt


class BudgetedChainClient(ChainClient):
    """Enforce a wall clock budget per chain.

    The budget is checked before every chain call.
    A call in progress is never interrupted, so an already broadcasted
    transaction may still land after the deadline.

    .. code-block:: python

        client = BudgetedChainClient(web3_client)
        with client.budget("arbitrum", 600):
            deployer.deploy_contracts("arbitrum", config)
    """

    def __init__(self, inner: ChainClient, clock: Callable[[], float] = time.monotonic):
        assert not isinstance(inner, BudgetedChainClient), "Already budgeted"
        self.inner = inner
        self.clock = clock
        self.deadlines: dict[str, tuple[float, float]] = {}

    @contextlib.contextmanager
    def budget(self, chain: str, timeout: float) -> Iterator[None]:
        self.deadlines[chain] = (self.clock() + timeout, timeout)
        try:
            yield
        finally:
            del self.deadlines[chain]

    def check_budget(self, chain: str):
        """
        :raise ChainDeploymentTimeout:
            The deadline has passed
        """
        deadline = self.deadlines.get(chain)
        if deadline is not None and self.clock() >= deadline[0]:
            raise ChainDeploymentTimeout(chain, deadline[1])

    def get_code(self, chain, address):
        self.check_budget(chain)
        return self.inner.get_code(chain, address)

    def get_block_number(self, chain):
        self.check_budget(chain)
        return self.inner.get_block_number(chain)

    def get_storage_at(self, chain, address, slot):
        self.check_budget(chain)
        return self.inner.get_storage_at(chain, address, slot)

    def call(self, chain, to, data):
        self.check_budget(chain)
        return self.inner.call(chain, to, data)

    def submit(self, chain, tx):
        self.check_budget(chain)
        return self.inner.submit(chain, tx)

    def get_signer_address(self, chain):
        return self.inner.get_signer_address(chain)

    def get_transaction_overrides(self, chain):
        self.check_budget(chain)
        return self.inner.get_transaction_overrides(chain)


def estimate_fee_overrides(web3: Web3) -> dict:
    """Get gas fee parameters for the next transaction.

    - London hard fork chains get ``maxFeePerGas`` and ``maxPriorityFeePerGas``

    - Legacy chains get ``gasPrice``
    """
    last_block = web3.eth.get_block("latest")
    base_fee = last_block.get("baseFeePerGas")

    if base_fee is None:
        return {"gasPrice": web3.eth.gas_price}

    max_priority_fee_per_gas = web3.eth.max_priority_fee

    if web3.eth.chain_id == 137:
        # polygon now has a minimum gas fee of 30 gwei to avoid spam
        max_priority_fee_per_gas = max(30_000_000_000, max_priority_fee_per_gas)

    max_fee_per_gas = max_priority_fee_per_gas + (2 * base_fee)

    return {"maxFeePerGas": max_fee_per_gas, "maxPriorityFeePerGas": max_priority_fee_per_gas}


class Web3ChainClient(ChainClient):
    """Chain client over web3.py connections and a local private key.

    - One :py:class:`web3.Web3` connection per chain

    - Nonces are tracked in process memory, like a hot wallet does.
      The nonce is synced from the chain on the first transaction and after a failed broadcast.

    .. note ::

        This class is not thread safe.
    """

    def __init__(
        self,
        connections: dict[str, Web3],
        account: LocalAccount,
        receipt_timeout: float = 180,
        gas_buffer: float = 1.2,
    ):
        self.connections = connections
        self.account = account
        self.receipt_timeout = receipt_timeout
        self.gas_buffer = gas_buffer
        self.current_nonces: dict[str, int] = {}

    def __repr__(self):
        return f"<Web3ChainClient {self.account.address} chains:{', '.join(self.connections)}>"

    def get_web3(self, chain: str) -> Web3:
        try:
            return self.connections[chain]
        except KeyError as e:
            raise DeploymentError(f"No JSON-RPC connection configured for {chain}") from e

    def sync_nonce(self, chain: str):
        """Initialise the current nonce from the on-chain data."""
        web3 = self.get_web3(chain)
        self.current_nonces[chain] = web3.eth.get_transaction_count(self.account.address)
        logger.debug("%s: synced nonce for %s to %d", chain, self.account.address, self.current_nonces[chain])

    def allocate_nonce(self, chain: str) -> int:
        """Get the next free available nonce to be used with a transaction."""
        if chain not in self.current_nonces:
            self.sync_nonce(chain)
        nonce = self.current_nonces[chain]
        self.current_nonces[chain] += 1
        return nonce

    def get_code(self, chain, address):
        return bytes(self.get_web3(chain).eth.get_code(address))

    def get_block_number(self, chain):
        return self.get_web3(chain).eth.block_number

    def get_storage_at(self, chain, address, slot):
        return bytes(self.get_web3(chain).eth.get_storage_at(address, slot))

    def call(self, chain, to, data):
        web3 = self.get_web3(chain)
        try:
            return bytes(web3.eth.call({"to": to, "data": HexBytes(data)}))
        except ContractLogicError as e:
            raise TransactionFailed(chain, f"call to {to}", e.message) from e

    def get_signer_address(self, chain):
        return self.account.address

    def get_transaction_overrides(self, chain):
        return estimate_fee_overrides(self.get_web3(chain))

    def submit(self, chain, tx):
        web3 = self.get_web3(chain)
        description = tx.description or f"tx to {tx.to}"

        tx_data = {
            "from": self.account.address,
            "data": HexBytes(tx.data),
            "value": tx.value,
            "chainId": web3.eth.chain_id,
        }
        if tx.to:
            tx_data["to"] = tx.to
        tx_data.update(tx.overrides or estimate_fee_overrides(web3))

        if tx.gas:
            tx_data["gas"] = tx.gas
        else:
            try:
                tx_data["gas"] = int(web3.eth.estimate_gas(tx_data) * self.gas_buffer)
            except ContractLogicError as e:
                raise TransactionFailed(chain, description, e.message) from e

        tx_data["nonce"] = self.allocate_nonce(chain)

        signed = self.account.sign_transaction(tx_data)
        raw_bytes = signed.raw_transaction
        try:
            tx_hash = web3.eth.send_raw_transaction(raw_bytes)
        except Web3RPCError:
            # Our nonce counter is off, e.g. another process used the same key
            self.sync_nonce(chain)
            raise

        logger.info("%s: broadcasted %s, tx %s, nonce %d", chain, description, tx_hash.hex(), tx_data["nonce"])

        receipt = web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        if receipt["status"] != 1:
            raise TransactionFailed(chain, description, "receipt status 0", tx_hash)

        return TransactionReceipt(
            chain=chain,
            tx_hash=HexBytes(tx_hash),
            status=receipt["status"],
            block_number=receipt["blockNumber"],
            contract_address=receipt.get("contractAddress"),
            gas_used=receipt.get("gasUsed"),
        )


def create_http_web3(json_rpc_url: str, retries: int = 10, backoff_factor: float = 0.5) -> Web3:
    """Create a Web3 connection that retries flaky RPC calls."""
    provider = HTTPProvider(json_rpc_url)
    provider.exception_retry_configuration = ExceptionRetryConfiguration(
        errors=(ConnectionError, HTTPError, Timeout),
        retries=retries,
        backoff_factor=backoff_factor,
    )
    return Web3(provider)


def create_web3_chain_client(registry: ChainRegistry, account: LocalAccount, chains: Sequence[str]) -> Web3ChainClient:
    """Connect to the target chains.

    The RPC URL is read from ``JSON_RPC_<CHAIN>`` environment variable,
    e.g. ``JSON_RPC_ARBITRUM``, falling back to the chain registry.
    """
    connections = {}
    for chain in chains:
        url = os.environ.get(f"JSON_RPC_{chain.upper()}") or registry.get_chain_metadata(chain).json_rpc_url
        assert url, f"No JSON-RPC URL for {chain}, set JSON_RPC_{chain.upper()}"
        connections[chain] = create_http_web3(url)
    return Web3ChainClient(connections, account)
