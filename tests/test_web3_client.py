"""Web3 chain client against EthereumTester."""

import secrets

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import EthereumTesterProvider, Web3

from eth_deployer.abi import ContractArtifact
from eth_deployer.client import DeploymentError, TransactionRequest, Web3ChainClient, estimate_fee_overrides

#: Init code that deploys a single STOP opcode
TINY_CONTRACT = HexBytes("0x6001600c60003960016000f300")


@pytest.fixture
def tester_provider():
    return EthereumTesterProvider()


@pytest.fixture
def web3(tester_provider):
    """Set up a local unit testing blockchain."""
    return Web3(tester_provider)


@pytest.fixture()
def hot_wallet(web3) -> LocalAccount:
    """Deployer account funded with 10 ETH."""
    account = Account.from_key(HexBytes(secrets.token_bytes(32)))
    tx_hash = web3.eth.send_transaction({"from": web3.eth.accounts[0], "to": account.address, "value": 10 * 10**18})
    web3.eth.wait_for_transaction_receipt(tx_hash)
    return account


@pytest.fixture()
def web3_client(web3, hot_wallet) -> Web3ChainClient:
    return Web3ChainClient({"tester": web3}, hot_wallet)


def test_fee_overrides_london(web3: Web3):
    """EthereumTester is London hard fork compatible."""
    fees = estimate_fee_overrides(web3)
    assert fees["maxPriorityFeePerGas"] == 1000000000
    assert fees["maxFeePerGas"] > fees["maxPriorityFeePerGas"]
    assert "gasPrice" not in fees


def test_deploy_and_transact(web3: Web3, web3_client: Web3ChainClient, hot_wallet: LocalAccount):
    """Deploy a contract and send a plain transaction, with nonces tracked locally."""
    start_block = web3_client.get_block_number("tester")

    receipt = web3_client.deploy("tester", ContractArtifact("Tiny", [], TINY_CONTRACT))
    assert receipt.succeeded
    assert receipt.block_number > start_block
    assert web3_client.has_code("tester", receipt.contract_address)
    assert web3_client.get_storage_at("tester", receipt.contract_address, 0) == b"\x00" * 32

    tx = TransactionRequest(to=web3.eth.accounts[1], data=HexBytes(b""), value=1)
    receipt = web3_client.submit("tester", tx)
    assert receipt.succeeded
    assert web3_client.current_nonces["tester"] == 2
    assert web3.eth.get_transaction_count(hot_wallet.address) == 2


def test_no_connection(web3_client: Web3ChainClient):
    with pytest.raises(DeploymentError, match="No JSON-RPC connection"):
        web3_client.get_block_number("nochain")

