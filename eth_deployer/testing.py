"""Simulated chains for testing the deployer.

An in-memory stand-in for EVM chains that runs Python versions of the core contracts.
It is good enough to exercise the deployer end to end without compiling Solidity:

- Contracts are deployed from simulated artifacts whose bytecode names the contract,
  see :py:func:`make_simulated_artifact`

- Calls are ABI encoded and decoded the same way as on a real chain

- Transparent proxies delegate to implementations and keep their own storage

- A reverting transaction rolls back all state changes and is not recorded

Example:

.. code-block:: python

    client = SimulatedChainClient(DEPLOYER)
    chain = client.add_chain("arbitrum")
    factories = install_factories(chain)

    deployer = CoreDeployer(client, client.registry, artifacts=create_simulated_artifacts(), ism_deployer=...)
    deployer.cache_addresses_map({"arbitrum": factories})
    results = deployer.deploy({"arbitrum": config})

    # Successful transactions only
    assert len(chain.transactions) > 0

"""

import copy
from dataclasses import dataclass, field
from typing import Optional

import eth_abi
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3

from eth_deployer.abi import ZERO_ADDRESS, ArtifactRegistry, ContractArtifact, decode_abi_values, get_abi_types, load_artifact
from eth_deployer.chain import ChainMetadata, ChainRegistry
from eth_deployer.client import ChainClient, TransactionFailed, TransactionReceipt, TransactionRequest
from eth_deployer.eip1967 import ADMIN_SLOT, IMPLEMENTATION_SLOT
from eth_deployer.ism import FACTORY_SLOTS, IsmType, ModuleType
from eth_deployer.hooks import AGGREGATION_HOOK_FACTORY_SLOT, OnchainHookType
from eth_deployer.utils import eq_address

#: Simulated bytecode is this prefix, the contract name and ``;``
SIMULATED_BYTECODE_PREFIX = b"SIM:"

#: Domain of simulated chains is chain id
SIMULATED_CHAIN_ID_START = 31337


class SimulatedRevert(Exception):
    """A simulated contract reverted."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass
class SimulatedAccount:
    """State of one address."""

    address: HexAddress

    #: Name of the contract logic, ``None`` for externally owned accounts
    code_name: Optional[str] = None

    #: Contract storage variables
    storage: dict = field(default_factory=dict)

    #: Raw storage slots, for EIP-1967
    slots: dict[int, int] = field(default_factory=dict)

    #: Values baked into the bytecode, shared by proxies delegating here
    immutables: dict = field(default_factory=dict)


class SimulatedContract:
    """Python implementation of a contract.

    Methods named after Solidity functions are called with the decoded arguments.
    """

    #: Bundled ABI the contract talks
    abi_name: str = None

    def __init__(self, sim: "SimulatedChain", msg_sender: HexAddress, account: SimulatedAccount, code: SimulatedAccount):
        self.sim = sim
        self.msg_sender = msg_sender
        #: Storage context, the proxy when delegated to
        self.account = account
        #: Code context
        self.code = code

    @property
    def this(self) -> HexAddress:
        return self.account.address

    @property
    def storage(self) -> dict:
        return self.account.storage

    @property
    def immutables(self) -> dict:
        return self.code.immutables

    @classmethod
    def get_artifact(cls) -> ContractArtifact:
        return load_artifact(cls.abi_name)

    def require(self, condition: bool, reason: str):
        if not condition:
            raise SimulatedRevert(reason)

    def constructor(self, *args):
        pass

    def dispatch(self, data: bytes) -> bytes:
        artifact = self.get_artifact()
        try:
            fn_abi, args = artifact.decode_function_input(data)
        except ValueError as e:
            raise SimulatedRevert(f"function selector was not recognized: {e}") from e

        result = getattr(self, fn_abi["name"])(*args)

        types = get_abi_types(fn_abi.get("outputs", []))
        if not types:
            return b""
        if len(types) == 1:
            result = (result,)
        return eth_abi.encode(types, list(result))


class OwnableContract(SimulatedContract):
    def constructor(self, *args):
        self.storage["owner"] = self.msg_sender

    def only_owner(self):
        self.require(eq_address(self.msg_sender, self.storage.get("owner", ZERO_ADDRESS)), "Ownable: caller is not the owner")

    def owner(self):
        return self.storage.get("owner", ZERO_ADDRESS)

    def transferOwnership(self, new_owner):
        self.only_owner()
        self.require(not eq_address(new_owner, ZERO_ADDRESS), "Ownable: new owner is the zero address")
        self.storage["owner"] = new_owner


class ProxyAdmin(OwnableContract):
    abi_name = "ProxyAdmin"

    def getProxyAdmin(self, proxy):
        return self.sim.read_slot_address(proxy, ADMIN_SLOT)

    def getProxyImplementation(self, proxy):
        return self.sim.read_slot_address(proxy, IMPLEMENTATION_SLOT)

    def _call_proxy(self, proxy, fn_name, *args):
        data = TransparentUpgradeableProxy.get_artifact().encode_function_data(fn_name, args)
        self.sim.execute(self.this, proxy, bytes(data))

    def changeProxyAdmin(self, proxy, new_admin):
        self.only_owner()
        self._call_proxy(proxy, "changeAdmin", new_admin)

    def upgrade(self, proxy, implementation):
        self.only_owner()
        self._call_proxy(proxy, "upgradeTo", implementation)

    def upgradeAndCall(self, proxy, implementation, data):
        self.only_owner()
        self._call_proxy(proxy, "upgradeToAndCall", implementation, data)


class TransparentUpgradeableProxy(SimulatedContract):
    """OpenZeppelin 4.x transparent proxy.

    The admin can only call the admin functions, everyone else is forwarded to the implementation.
    """

    abi_name = "TransparentUpgradeableProxy"

    def constructor(self, logic, admin, data):
        self.account.slots[IMPLEMENTATION_SLOT] = int(logic, 16)
        self.account.slots[ADMIN_SLOT] = int(admin, 16)
        if data:
            self.delegate(data)

    def get_admin(self) -> HexAddress:
        return self.sim.read_slot_address(self.this, ADMIN_SLOT)

    def get_implementation(self) -> HexAddress:
        return self.sim.read_slot_address(self.this, IMPLEMENTATION_SLOT)

    def delegate(self, data: bytes) -> bytes:
        implementation = self.get_implementation()
        self.require(self.sim.has_code(implementation), "ERC1967: new implementation is not a contract")
        return self.sim.execute(self.msg_sender, self.this, data, code_address=implementation)

    def dispatch(self, data: bytes) -> bytes:
        if eq_address(self.msg_sender, self.get_admin()):
            fn_abi = self.get_artifact().get_function_by_selector(data[0:4])
            self.require(fn_abi is not None, "TransparentUpgradeableProxy: admin cannot fallback to proxy target")
            return super().dispatch(data)
        return self.delegate(data)

    def admin(self):
        return self.get_admin()

    def implementation(self):
        return self.get_implementation()

    def changeAdmin(self, new_admin):
        self.require(not eq_address(new_admin, ZERO_ADDRESS), "ERC1967: new admin is the zero address")
        self.account.slots[ADMIN_SLOT] = int(new_admin, 16)

    def upgradeTo(self, new_implementation):
        self.require(self.sim.has_code(new_implementation), "ERC1967: new implementation is not a contract")
        self.account.slots[IMPLEMENTATION_SLOT] = int(new_implementation, 16)

    def upgradeToAndCall(self, new_implementation, data):
        self.upgradeTo(new_implementation)
        if data:
            self.delegate(data)


class Mailbox(OwnableContract):
    abi_name = "Mailbox"

    def constructor(self, local_domain):
        super().constructor()
        self.immutables["local_domain"] = local_domain

    def initialize(self, owner, default_ism, default_hook, required_hook):
        self.require(not self.storage.get("initialized"), "Initializable: contract is already initialized")
        self.storage["initialized"] = True
        self.storage["owner"] = owner
        self._set_default_ism(default_ism)
        self._set_default_hook(default_hook)
        self._set_required_hook(required_hook)

    def _set_default_ism(self, module):
        self.require(self.sim.has_code(module), "Mailbox: default ISM not contract")
        self.storage["default_ism"] = module

    def _set_default_hook(self, hook):
        self.require(self.sim.has_code(hook), "Mailbox: default hook not contract")
        self.storage["default_hook"] = hook

    def _set_required_hook(self, hook):
        self.require(self.sim.has_code(hook), "Mailbox: required hook not contract")
        self.storage["required_hook"] = hook

    def localDomain(self):
        return self.immutables["local_domain"]

    def nonce(self):
        return self.storage.get("nonce", 0)

    def defaultIsm(self):
        return self.storage.get("default_ism", ZERO_ADDRESS)

    def defaultHook(self):
        return self.storage.get("default_hook", ZERO_ADDRESS)

    def requiredHook(self):
        return self.storage.get("required_hook", ZERO_ADDRESS)

    def setDefaultIsm(self, module):
        self.only_owner()
        self._set_default_ism(module)

    def setDefaultHook(self, hook):
        self.only_owner()
        self._set_default_hook(hook)

    def setRequiredHook(self, hook):
        self.only_owner()
        self._set_required_hook(hook)


class ValidatorAnnounce(SimulatedContract):
    abi_name = "ValidatorAnnounce"

    def constructor(self, mailbox):
        self.immutables["mailbox"] = mailbox

    def mailbox(self):
        return self.immutables["mailbox"]

    def localDomain(self):
        data = Mailbox.get_artifact().encode_function_data("localDomain")
        result = self.sim.execute(self.this, self.immutables["mailbox"], bytes(data))
        return Mailbox.get_artifact().decode_function_result("localDomain", result)

    def getAnnouncedValidators(self):
        return []


class TestRecipient(OwnableContract):
    abi_name = "TestRecipient"

    def interchainSecurityModule(self):
        return self.storage.get("ism", ZERO_ADDRESS)

    def setInterchainSecurityModule(self, ism):
        self.only_owner()
        self.storage["ism"] = ism

    def hook(self):
        return self.storage.get("hook", ZERO_ADDRESS)

    def setHook(self, hook):
        self.only_owner()
        self.storage["hook"] = hook

    def lastSender(self):
        return b"\x00" * 32


class StubbornTestRecipient(TestRecipient):
    """Accepts ISM and hook changes but never applies them."""

    def setInterchainSecurityModule(self, ism):
        self.only_owner()

    def setHook(self, hook):
        self.only_owner()


class TimelockController(SimulatedContract):
    abi_name = "TimelockController"

    PROPOSER_ROLE = Web3.keccak(text="PROPOSER_ROLE")
    EXECUTOR_ROLE = Web3.keccak(text="EXECUTOR_ROLE")

    def constructor(self, min_delay, proposers, executors, admin):
        self.storage["min_delay"] = min_delay
        roles = set()
        for p in proposers:
            roles.add((bytes(self.PROPOSER_ROLE), p.lower()))
        for e in executors:
            roles.add((bytes(self.EXECUTOR_ROLE), e.lower()))
        self.storage["roles"] = roles

    def getMinDelay(self):
        return self.storage["min_delay"]

    def hasRole(self, role, account):
        return (bytes(role), account.lower()) in self.storage["roles"]


class TestIsm(SimulatedContract):
    abi_name = "TestIsm"

    def moduleType(self):
        return ModuleType.NULL

    def verify(self, metadata, message):
        return True


class StaticMultisigIsm(SimulatedContract):
    abi_name = "IMultisigIsm"

    def moduleType(self):
        return self.immutables["module_type"]

    def validatorsAndThreshold(self, message):
        return self.immutables["values"], self.immutables["threshold"]


class StaticAggregationIsm(SimulatedContract):
    abi_name = "IAggregationIsm"

    def moduleType(self):
        return ModuleType.AGGREGATION

    def modulesAndThreshold(self, message):
        return self.immutables["values"], self.immutables["threshold"]


class DomainRoutingIsm(OwnableContract):
    abi_name = "DomainRoutingIsm"

    def initialize(self, owner, domains, modules):
        self.require(not self.storage.get("initialized"), "Initializable: contract is already initialized")
        self.require(len(domains) == len(modules), "length mismatch")
        self.storage["initialized"] = True
        self.storage["owner"] = owner
        self.storage["modules"] = dict(zip(domains, modules))

    def moduleType(self):
        return ModuleType.ROUTING

    def domains(self):
        return list(self.storage.get("modules", {}).keys())

    def module(self, origin):
        modules = self.storage.get("modules", {})
        self.require(origin in modules, f"No ISM found for origin: {origin}")
        return modules[origin]

    def set(self, domain, module):
        self.only_owner()
        self.storage.setdefault("modules", {})[domain] = module


class MerkleTreeHook(SimulatedContract):
    abi_name = "MerkleTreeHook"

    def constructor(self, mailbox):
        self.immutables["mailbox"] = mailbox

    def hookType(self):
        return OnchainHookType.MERKLE_TREE

    def mailbox(self):
        return self.immutables["mailbox"]

    def count(self):
        return 0


class ProtocolFee(OwnableContract):
    abi_name = "ProtocolFee"

    def constructor(self, max_protocol_fee, protocol_fee, beneficiary, owner):
        self.require(protocol_fee <= max_protocol_fee, "ProtocolFee: exceeds max protocol fee")
        self.immutables["max_protocol_fee"] = max_protocol_fee
        self.storage["protocol_fee"] = protocol_fee
        self.storage["beneficiary"] = beneficiary
        self.storage["owner"] = owner

    def hookType(self):
        return OnchainHookType.PROTOCOL_FEE

    def beneficiary(self):
        return self.storage["beneficiary"]

    def maxProtocolFee(self):
        return self.immutables["max_protocol_fee"]

    def protocolFee(self):
        return self.storage["protocol_fee"]


class StaticAggregationHook(SimulatedContract):
    abi_name = "StaticAggregationHook"

    def hookType(self):
        return OnchainHookType.AGGREGATION

    def hooks(self, message):
        return self.immutables["values"]


class StaticThresholdAddressSetFactory(SimulatedContract):
    """CREATE2 style factory: the product address depends only on the inputs."""

    abi_name = "IStaticThresholdAddressSetFactory"

    def getAddress(self, values, threshold):
        salt = eth_abi.encode(["address[]", "uint8"], [list(values), threshold])
        return self.sim.derive_address(self.this, salt)

    def deploy(self, values, threshold):
        address = self.getAddress(values, threshold)
        if not self.sim.has_code(address):
            immutables = {"values": list(values), "threshold": threshold, **self.immutables.get("product_immutables", {})}
            self.sim.install(self.immutables["product"], immutables, address=address)
        return address


class StaticAddressSetFactory(SimulatedContract):
    abi_name = "IStaticAddressSetFactory"

    def getAddress(self, values):
        salt = eth_abi.encode(["address[]"], [list(values)])
        return self.sim.derive_address(self.this, salt)

    def deploy(self, values):
        address = self.getAddress(values)
        if not self.sim.has_code(address):
            self.sim.install(self.immutables["product"], {"values": list(values)}, address=address)
        return address


#: Contract name -> Python implementation
SIMULATED_CONTRACTS: dict[str, type[SimulatedContract]] = {
    "ProxyAdmin": ProxyAdmin,
    "TransparentUpgradeableProxy": TransparentUpgradeableProxy,
    "Mailbox": Mailbox,
    "ValidatorAnnounce": ValidatorAnnounce,
    "TestRecipient": TestRecipient,
    "StubbornTestRecipient": StubbornTestRecipient,
    "TimelockController": TimelockController,
    "TestIsm": TestIsm,
    "StaticMultisigIsm": StaticMultisigIsm,
    "StaticAggregationIsm": StaticAggregationIsm,
    "DomainRoutingIsm": DomainRoutingIsm,
    "MerkleTreeHook": MerkleTreeHook,
    "ProtocolFee": ProtocolFee,
    "StaticAggregationHook": StaticAggregationHook,
    "StaticThresholdAddressSetFactory": StaticThresholdAddressSetFactory,
    "StaticAddressSetFactory": StaticAddressSetFactory,
}


def make_simulated_artifact(name: str) -> ContractArtifact:
    """Artifact that deploys the simulated contract on :py:class:`SimulatedChain`."""
    abi = SIMULATED_CONTRACTS[name].get_artifact().abi
    return ContractArtifact(name, abi, HexBytes(SIMULATED_BYTECODE_PREFIX + name.encode("utf-8") + b";"))


def create_simulated_artifacts() -> ArtifactRegistry:
    """Artifacts of all deployable simulated contracts."""
    deployable = [
        "ProxyAdmin",
        "TransparentUpgradeableProxy",
        "Mailbox",
        "ValidatorAnnounce",
        "TestRecipient",
        "TimelockController",
        "TestIsm",
        "DomainRoutingIsm",
        "MerkleTreeHook",
        "ProtocolFee",
    ]
    return ArtifactRegistry(artifacts={name: make_simulated_artifact(name) for name in deployable})


class SimulatedChain:
    """In-memory EVM-like chain."""

    def __init__(self, name: str, chain_id: int):
        self.name = name
        self.chain_id = chain_id
        self.accounts: dict[str, SimulatedAccount] = {}
        self.nonces: dict[str, int] = {}
        self.block_number = 1
        self.install_counter = 0

        #: Successful transactions
        self.transactions: list[TransactionReceipt] = []

    def __repr__(self):
        return f"<SimulatedChain {self.name} block:{self.block_number} txs:{len(self.transactions)}>"

    def get_account(self, address: HexAddress) -> SimulatedAccount | None:
        return self.accounts.get(address.lower())

    def has_code(self, address: HexAddress) -> bool:
        account = self.get_account(address)
        return account is not None and account.code_name is not None

    def get_code(self, address: HexAddress) -> bytes:
        if not self.has_code(address):
            return b""
        return SIMULATED_BYTECODE_PREFIX + self.get_account(address).code_name.encode("utf-8")

    def read_slot(self, address: HexAddress, slot: int) -> int:
        account = self.get_account(address)
        if account is None:
            return 0
        return account.slots.get(slot, 0)

    def read_slot_address(self, address: HexAddress, slot: int) -> HexAddress:
        return Web3.to_checksum_address(self.read_slot(address, slot).to_bytes(32, "big")[-20:])

    def derive_address(self, creator: HexAddress, salt: bytes) -> HexAddress:
        return Web3.to_checksum_address(Web3.keccak(bytes.fromhex(creator[2:]) + salt)[-20:])

    def install(self, code_name: str, immutables: dict | None = None, address: HexAddress | None = None, storage: dict | None = None) -> HexAddress:
        """Put a contract on the chain without a transaction, like a genesis allocation."""
        assert code_name in SIMULATED_CONTRACTS, f"Unknown simulated contract {code_name}"
        if address is None:
            self.install_counter += 1
            address = self.derive_address(ZERO_ADDRESS, b"install" + self.install_counter.to_bytes(32, "big"))
        address = Web3.to_checksum_address(address)
        self.accounts[address.lower()] = SimulatedAccount(address, code_name, storage=dict(storage or {}), immutables=dict(immutables or {}))
        return address

    def execute(self, sender: HexAddress, to: HexAddress, data: bytes, code_address: HexAddress | None = None) -> bytes:
        """Run a call.

        :param code_address:
            Run this account's code in the storage context of ``to``, like ``DELEGATECALL``
        """
        account = self.get_account(to)
        if account is None or (account.code_name is None and code_address is None):
            return b""
        code = self.get_account(code_address) if code_address else account
        contract_class = SIMULATED_CONTRACTS[code.code_name]
        return contract_class(self, sender, account, code).dispatch(bytes(data))

    def create(self, sender: HexAddress, init_code: bytes) -> HexAddress:
        assert init_code.startswith(SIMULATED_BYTECODE_PREFIX), "Not a simulated contract"
        end = init_code.index(b";")
        code_name = init_code[len(SIMULATED_BYTECODE_PREFIX) : end].decode("utf-8")
        contract_class = SIMULATED_CONTRACTS[code_name]

        constructor = contract_class.get_artifact().get_constructor_abi()
        types = get_abi_types(constructor.get("inputs", [])) if constructor else []
        args = decode_abi_values(types, init_code[end + 1 :]) if types else ()

        nonce = self.nonces.get(sender.lower(), 0)
        address = self.derive_address(sender, nonce.to_bytes(32, "big"))
        account = SimulatedAccount(address, code_name)
        self.accounts[address.lower()] = account
        contract_class(self, sender, account, account).constructor(*args)
        return address

    def call(self, to: HexAddress, data: bytes, sender: HexAddress = ZERO_ADDRESS) -> bytes:
        """Read-only call. State changes are thrown away."""
        snapshot = copy.deepcopy(self.accounts)
        try:
            return self.execute(sender, to, data)
        finally:
            self.accounts = snapshot

    def transact(self, sender: HexAddress, to: HexAddress | None, data: bytes, description: str | None = None) -> TransactionReceipt:
        """Run a transaction, rolling back on revert.

        :raise SimulatedRevert:
            The transaction reverted
        """
        snapshot = copy.deepcopy(self.accounts)
        try:
            if to is None:
                contract_address = self.create(sender, data)
            else:
                contract_address = None
                self.execute(sender, to, data)
        except SimulatedRevert:
            self.accounts = snapshot
            raise

        nonce = self.nonces.get(sender.lower(), 0)
        self.nonces[sender.lower()] = nonce + 1
        self.block_number += 1
        tx_hash = HexBytes(Web3.keccak(bytes.fromhex(sender[2:]) + nonce.to_bytes(32, "big") + self.chain_id.to_bytes(32, "big")))
        receipt = TransactionReceipt(
            chain=self.name,
            tx_hash=tx_hash,
            status=1,
            block_number=self.block_number,
            contract_address=contract_address,
            gas_used=21_000,
        )
        self.transactions.append(receipt)
        return receipt


def install_factories(chain: SimulatedChain) -> dict[str, HexAddress]:
    """Install the static ISM and hook factories.

    :return:
        Ledger slot -> factory address, to seed the deployer with
    """
    return {
        FACTORY_SLOTS[IsmType.merkle_root_multisig]: chain.install(
            "StaticThresholdAddressSetFactory",
            {"product": "StaticMultisigIsm", "product_immutables": {"module_type": ModuleType.MERKLE_ROOT_MULTISIG}},
        ),
        FACTORY_SLOTS[IsmType.message_id_multisig]: chain.install(
            "StaticThresholdAddressSetFactory",
            {"product": "StaticMultisigIsm", "product_immutables": {"module_type": ModuleType.MESSAGE_ID_MULTISIG}},
        ),
        FACTORY_SLOTS[IsmType.aggregation]: chain.install(
            "StaticThresholdAddressSetFactory",
            {"product": "StaticAggregationIsm"},
        ),
        AGGREGATION_HOOK_FACTORY_SLOT: chain.install(
            "StaticAddressSetFactory",
            {"product": "StaticAggregationHook"},
        ),
    }


class SimulatedChainClient(ChainClient):
    """Chain client over :py:class:`SimulatedChain` instances.

    - The signer can be changed per chain to test authority checks

    - A chain can be made to fail every call to test failure handling
    """

    def __init__(self, signer: HexAddress):
        self.signer = Web3.to_checksum_address(signer)
        self.chains: dict[str, SimulatedChain] = {}
        self.registry = ChainRegistry([])
        self.signer_overrides: dict[str, HexAddress] = {}
        self.failures: dict[str, Exception] = {}

    def add_chain(self, name: str, chain_id: int | None = None) -> SimulatedChain:
        if chain_id is None:
            chain_id = SIMULATED_CHAIN_ID_START + len(self.chains)
        chain = SimulatedChain(name, chain_id)
        self.chains[name] = chain
        self.registry.add(ChainMetadata(name, chain_id))
        return chain

    def set_signer(self, chain: str, signer: HexAddress):
        self.signer_overrides[chain] = Web3.to_checksum_address(signer)

    def fail_chain(self, chain: str, error: Exception):
        """Make all calls to the chain raise the error."""
        self.failures[chain] = error

    def get_chain(self, chain: str) -> SimulatedChain:
        if chain in self.failures:
            raise self.failures[chain]
        return self.chains[chain]

    def get_code(self, chain, address):
        return self.get_chain(chain).get_code(address)

    def get_block_number(self, chain):
        return self.get_chain(chain).block_number

    def get_storage_at(self, chain, address, slot):
        return self.get_chain(chain).read_slot(address, slot).to_bytes(32, "big")

    def call(self, chain, to, data):
        try:
            return self.get_chain(chain).call(to, bytes(data))
        except SimulatedRevert as e:
            raise TransactionFailed(chain, f"call to {to}", e.reason) from e

    def submit(self, chain, tx: TransactionRequest):
        description = tx.description or f"tx to {tx.to}"
        try:
            return self.get_chain(chain).transact(self.get_signer_address(chain), tx.to, bytes(tx.data), description)
        except SimulatedRevert as e:
            raise TransactionFailed(chain, description, e.reason) from e

    def get_signer_address(self, chain):
        return self.signer_overrides.get(chain, self.signer)

    def get_transaction_overrides(self, chain):
        return {}
