"""EIP-1967 transparent proxy storage slots.

- `EIP-1967 <https://eips.ethereum.org/EIPS/eip-1967>`__

See also :py:mod:`eth_deployer.proxy`.
"""

from eth_typing import HexAddress
from web3 import Web3

from eth_deployer.abi import ZERO_ADDRESS_STR, ContractArtifact
from eth_deployer.client import ChainClient

#: bytes32(uint256(keccak256('eip1967.proxy.implementation')) - 1)
IMPLEMENTATION_SLOT = 0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC

#: bytes32(uint256(keccak256('eip1967.proxy.admin')) - 1)
ADMIN_SLOT = 0xB53127684A568B3173AE13B9F8A6016E243E63B6E8EE1178D6A717850B5D6103


def read_address_slot(client: ChainClient, chain: str, address: HexAddress, slot: int) -> HexAddress:
    """Read an address stored in a storage slot.

    :return:
        Checksummed address, zero address if the slot is empty
    """
    data = client.get_storage_at(chain, address, slot)
    value = int.from_bytes(data, "big")
    return Web3.to_checksum_address(value.to_bytes(32, "big")[-20:])


def get_proxy_implementation(client: ChainClient, chain: str, proxy: HexAddress) -> HexAddress:
    return read_address_slot(client, chain, proxy, IMPLEMENTATION_SLOT)


def get_proxy_admin(client: ChainClient, chain: str, proxy: HexAddress) -> HexAddress:
    return read_address_slot(client, chain, proxy, ADMIN_SLOT)


def is_proxy(client: ChainClient, chain: str, address: HexAddress) -> bool:
    """Does the address carry a populated EIP-1967 implementation slot."""
    return get_proxy_implementation(client, chain, address).lower() != ZERO_ADDRESS_STR


def get_proxy_constructor_args(
    implementation_artifact: ContractArtifact,
    implementation: HexAddress,
    admin: HexAddress,
    initialize_args: list | None = None,
) -> list:
    """Constructor arguments for ``TransparentUpgradeableProxy(logic, admin, data)``.

    :param initialize_args:
        Arguments for the implementation ``initialize()``.
        If not given, the proxy is constructed with empty call data.
    """
    if initialize_args is None:
        init_data = b""
    else:
        init_data = bytes(implementation_artifact.encode_function_data("initialize", initialize_args))
    return [implementation, admin, init_data]
