"""ABI and contract artifact loading.

Provides functions to load ABI files and compiler artifacts, and to turn them into
:py:class:`ContractArtifact` objects the deployer can encode calls and deployments with.
The results are cached for the speedup.

- Interface ABIs the deployer needs to read and configure contracts are bundled
  in the ``abi`` folder of this package

- Creation bytecode comes from solc, Hardhat or Forge compiler output,
  see :py:func:`load_artifact`

We also provide some helper functions to deal with ABI encode/decode.
"""

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Sequence

import eth_abi
from eth_typing import HexAddress
from eth_utils import function_signature_to_4byte_selector
from eth_utils.abi import collapse_if_tuple
from hexbytes import HexBytes
from web3 import Web3
from web3._utils.abi import map_abi_data
from web3._utils.normalizers import BASE_RETURN_NORMALIZERS


# How big are our ABI and contract caches
_CACHE_SIZE = 512


#: Ethereum 0x0000000000000000000000000000000000000000 address as a string.
#:
#: Legacy. Use one below.
#:
ZERO_ADDRESS_STR = "0x0000000000000000000000000000000000000000"

#: Ethereum 0x0000000000000000000000000000000000000000 address
ZERO_ADDRESS = ZERO_ADDRESS_STR

#: Environment variable pointing to the compiler output folder
ARTIFACTS_PATH_ENV = "DEPLOYER_ARTIFACTS_PATH"


@lru_cache(maxsize=_CACHE_SIZE)
def get_abi_by_filename(fname: str | Path) -> dict | list:
    """Reads a embedded ABI file and returns it.

    Example::

        abi = get_abi_by_filename("Mailbox.json")

    You are most likely interested in the keys `abi` and `bytecode` of the JSON file.

    Loaded ABI files are cache in in-process memory to speed up future loading.

    :param fname:
        JSON filename in the bundled ``abi`` folder.

        Use an absolute path to read a file from elsewhere in the filesystem.

    :return:
        Full contract interface, including `bytecode` if the file has one.
    """

    here = Path(__file__).resolve().parent
    abi_path = here / "abi" / Path(fname)
    with open(abi_path, "rt", encoding="utf-8") as f:
        abi = json.load(f)
    return abi


def get_abi_types(params: Sequence[dict]) -> list[str]:
    """Get canonical ABI types for function inputs or outputs.

    Tuples are collapsed to ``(address,uint256)`` form understood by :py:mod:`eth_abi`.
    """
    return [collapse_if_tuple(dict(p)) for p in params]


def get_function_signature(fn_abi: dict) -> str:
    """Solidity function signature, e.g. ``setDefaultHook(address)``."""
    return f"{fn_abi['name']}({','.join(get_abi_types(fn_abi.get('inputs', [])))})"


def get_function_selector(fn_abi: dict) -> bytes:
    """Four byte function selector."""
    return function_signature_to_4byte_selector(get_function_signature(fn_abi))


def decode_abi_values(types: Sequence[str], data: bytes) -> tuple:
    """Decode ABI encoded values the way web3.py decodes contract call results.

    Addresses, also inside arrays and tuples, are returned checksummed.
    """
    decoded = eth_abi.decode(list(types), bytes(data))
    return tuple(map_abi_data(BASE_RETURN_NORMALIZERS, types, decoded))


def _parse_bytecode(contract_interface: dict) -> HexBytes | None:
    """Handle the different compiler output formats."""
    bytecode = contract_interface.get("bytecode")

    if type(bytecode) == dict:
        # Sol 0.8 / Forge?
        # Contains keys object, sourceMap, linkReferences
        bytecode = bytecode.get("object")

    if not bytecode or bytecode == "0x":
        return None

    return HexBytes(bytecode)


@dataclass(slots=True)
class ContractArtifact:
    """Compiled contract: ABI and optional creation bytecode.

    - Encodes constructor arguments, function calls and decodes return values
      without needing a :py:class:`web3.Web3` connection

    - Interface artifacts without bytecode can be used to talk to already deployed contracts,
      but not to deploy new ones
    """

    #: Solidity contract name, e.g. ``Mailbox``
    name: str

    #: ABI entries
    abi: list[dict] = field(repr=False)

    #: Creation bytecode.
    #:
    #: ``None`` for interface-only artifacts.
    bytecode: Optional[HexBytes] = field(default=None, repr=False)

    def get_constructor_abi(self) -> dict | None:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return entry
        return None

    def get_function_abi(self, fn_name: str, arg_count: int | None = None) -> dict:
        """Find a function ABI entry by its name.

        :param arg_count:
            Disambiguate overloaded functions.

        :raise ValueError:
            The ABI does not have the function
        """
        candidates = [e for e in self.abi if e.get("type") == "function" and e.get("name") == fn_name]
        if arg_count is not None:
            candidates = [c for c in candidates if len(c.get("inputs", [])) == arg_count]

        if not candidates:
            raise ValueError(f"Contract {self.name} ABI does not have function {fn_name}() with {arg_count} arguments")

        return candidates[0]

    def get_function_by_selector(self, selector: bytes) -> dict | None:
        for entry in self.abi:
            if entry.get("type") == "function" and get_function_selector(entry) == bytes(selector):
                return entry
        return None

    def encode_deploy(self, args: Sequence = ()) -> HexBytes:
        """ABI encode constructor arguments.

        :return:
            Encoded arguments only, without the bytecode.
            This is the form block explorers want for the source verification.
        """
        constructor = self.get_constructor_abi()
        if constructor is None:
            assert len(args) == 0, f"{self.name} has no constructor, got arguments {args}"
            return HexBytes(b"")
        types = get_abi_types(constructor.get("inputs", []))
        assert len(types) == len(args), f"{self.name} constructor takes {len(types)} arguments, got {args}"
        return HexBytes(eth_abi.encode(types, list(args)))

    def get_deploy_data(self, args: Sequence = ()) -> HexBytes:
        """Bytecode followed by the encoded constructor arguments."""
        assert self.bytecode, f"No bytecode for {self.name}, set {ARTIFACTS_PATH_ENV} to the compiler output folder"
        return HexBytes(bytes(self.bytecode) + bytes(self.encode_deploy(args)))

    def encode_function_data(self, fn_name: str, args: Sequence = ()) -> HexBytes:
        """Encode a function call payload.

        Example:

        .. code-block:: python

            data = mailbox_artifact.encode_function_data("setDefaultHook", [hook_address])

        """
        fn_abi = self.get_function_abi(fn_name, len(args))
        types = get_abi_types(fn_abi.get("inputs", []))
        return HexBytes(get_function_selector(fn_abi) + eth_abi.encode(types, list(args)))

    def decode_function_input(self, data: bytes) -> tuple[dict, tuple]:
        """Decode a function call payload.

        :return:
            Tuple (function ABI, decoded arguments)
        """
        fn_abi = self.get_function_by_selector(data[0:4])
        if fn_abi is None:
            raise ValueError(f"Contract {self.name} ABI has no function for selector {bytes(data[0:4]).hex()}")
        types = get_abi_types(fn_abi.get("inputs", []))
        return fn_abi, decode_abi_values(types, data[4:])

    def decode_function_result(self, fn_name: str, data: bytes, arg_count: int | None = None) -> Any:
        """Decode the return value of a function.

        :return:
            A single value for functions with one return value,
            otherwise a tuple.
        """
        fn_abi = self.get_function_abi(fn_name, arg_count)
        types = get_abi_types(fn_abi.get("outputs", []))
        if not types:
            return None
        result = decode_abi_values(types, data)
        if len(types) == 1:
            return result[0]
        return result


@dataclass(slots=True, frozen=True)
class DeployedContract:
    """A contract living at an address.

    The address may be a proxy, while the artifact describes the implementation
    interface we talk to.
    """

    #: Slot or contract name this contract was deployed as
    name: str

    #: Checksummed address
    address: HexAddress

    #: Interface we use to talk to the contract
    artifact: ContractArtifact = field(repr=False, compare=False)

    def __post_init__(self):
        assert self.address, f"Contract {self.name} got empty address"
        object.__setattr__(self, "address", Web3.to_checksum_address(self.address))

    def attach(self, address: HexAddress | str) -> "DeployedContract":
        """Same interface, different address."""
        return DeployedContract(self.name, address, self.artifact)


def _find_artifact_file(contract_name: str, artifacts_path: Path) -> Path | None:
    # Plain solc output, Forge out/Name.sol/Name.json, Hardhat artifacts/**/Name.sol/Name.json
    candidates = [
        artifacts_path / f"{contract_name}.json",
        artifacts_path / f"{contract_name}.sol" / f"{contract_name}.json",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate

    for candidate in artifacts_path.rglob(f"{contract_name}.json"):
        return candidate

    return None


@lru_cache(maxsize=_CACHE_SIZE)
def load_artifact(
    contract_name: str,
    artifacts_path: Path | None = None,
    abi_file: str | None = None,
) -> ContractArtifact:
    """Load a contract artifact.

    - If the compiler output folder is given, or set in ``DEPLOYER_ARTIFACTS_PATH`` environment variable,
      read ABI and bytecode from there

    - Otherwise fall back to the bundled interface ABI, which cannot be deployed

    Example:

    .. code-block:: python

        mailbox = load_artifact("Mailbox", Path("~/hyperlane-monorepo/solidity/out").expanduser())
        assert mailbox.bytecode

    Any results are cached.

    :param contract_name:
        Solidity contract name

    :param artifacts_path:
        Forge ``out`` or Hardhat ``artifacts`` folder

    :param abi_file:
        Override the bundled ABI file name, if it is not ``<contract_name>.json``

    :return:
        Contract artifact
    """

    if artifacts_path is None and os.environ.get(ARTIFACTS_PATH_ENV):
        artifacts_path = Path(os.environ[ARTIFACTS_PATH_ENV])

    if artifacts_path is not None:
        assert isinstance(artifacts_path, Path), f"Got {type(artifacts_path)}"
        path = _find_artifact_file(contract_name, artifacts_path)
        if path is not None:
            contract_interface = get_abi_by_filename(path.resolve())
            return ContractArtifact(contract_name, contract_interface["abi"], _parse_bytecode(contract_interface))

    contract_interface = get_abi_by_filename(abi_file or f"{contract_name}.json")
    if type(contract_interface) == list:
        # Etherscan copy-pasted ABI
        return ContractArtifact(contract_name, contract_interface)
    return ContractArtifact(contract_name, contract_interface["abi"], _parse_bytecode(contract_interface))


class ArtifactRegistry:
    """Resolve contract names to artifacts.

    - Explicitly registered artifacts win

    - Otherwise the artifact is loaded from the compiler output folder,
      falling back to the bundled interface ABI, see :py:func:`load_artifact`
    """

    def __init__(self, artifacts_path: Path | None = None, artifacts: dict[str, ContractArtifact] | None = None):
        self.artifacts_path = artifacts_path
        self.artifacts = dict(artifacts or {})

    def __repr__(self):
        return f"<ArtifactRegistry path:{self.artifacts_path} registered:{', '.join(self.artifacts)}>"

    def register(self, artifact: ContractArtifact):
        self.artifacts[artifact.name] = artifact

    def get(self, contract_name: str) -> ContractArtifact:
        artifact = self.artifacts.get(contract_name)
        if artifact is not None:
            return artifact
        return load_artifact(contract_name, self.artifacts_path)
