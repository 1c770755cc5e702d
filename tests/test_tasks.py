from unittest.mock import MagicMock

import pytest
from eth_abi import encode

from community_mine_harness.artifacts import Artifact
from community_mine_harness.errors import DeploymentError
from community_mine_harness import tasks

ADDRESS = "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"
# Anvil dev account #0
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


def constructor_abi(*types):
    return [{"type": "constructor", "inputs": [{"name": f"a{i}", "type": t} for i, t in enumerate(types)]}]


def test_no_constructor_encodes_nothing():
    assert tasks.encode_constructor_args([], ()) == ""
    assert tasks.encode_constructor_args(constructor_abi(), ()) == ""


def test_constructor_args_are_abi_encoded():
    encoded = tasks.encode_constructor_args(constructor_abi("address", "uint256"), (ADDRESS, 9000))
    assert encoded == encode(["address", "uint256"], [ADDRESS, 9000]).hex()


def test_constructor_arity_checked():
    with pytest.raises(DeploymentError, match="expects 2 argument"):
        tasks.encode_constructor_args(constructor_abi("address", "uint256"), (ADDRESS,))


def make_w3(status=1, base_fee=10**8):
    w3 = MagicMock()
    w3.eth.gas_price = 100
    w3.eth.max_priority_fee = 5
    w3.eth.get_block.return_value = {"number": 19} if base_fee is None else {"number": 19, "baseFeePerGas": base_fee}
    w3.eth.chain_id = 42161
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.send_raw_transaction.return_value = b"\x12" * 32
    w3.eth.wait_for_transaction_receipt.return_value = {
        "status": status,
        "contractAddress": ADDRESS.lower(),
        "blockNumber": 10,
    }
    w3.eth.block_number = 20
    return w3


def test_deploy_to_network_signs_with_fixed_gas():
    w3 = make_w3()
    artifact = Artifact("MagicMarketplaceBuyer", [], "0x6080", "test")

    address = tasks.deploy_to_network(w3, PRIVATE_KEY, artifact, gas=tasks.MAGIC_BUYER_GAS_LIMIT,
                                      confirmations=tasks.MAGIC_BUYER_CONFIRMATIONS)

    assert address == ADDRESS
    tx = w3.eth.account.sign_transaction.call_args[0][0]
    assert tx["gas"] == 170924192
    assert tx["maxFeePerGas"] == 2 * 10**8 + 5
    assert tx["maxPriorityFeePerGas"] == 5
    assert "gasPrice" not in tx
    assert tx["nonce"] == 7
    assert tx["chainId"] == 42161
    assert tx["data"] == "0x6080"
    w3.eth.estimate_gas.assert_not_called()


def test_failed_deployment_raises():
    artifact = Artifact("MagicMarketplaceBuyer", [], "0x6080", "test")
    with pytest.raises(DeploymentError, match="status: 0"):
        tasks.deploy_to_network(make_w3(status=0), PRIVATE_KEY, artifact, gas=1)


def test_legacy_gas_price_without_base_fee():
    assert tasks.fee_params(make_w3(base_fee=None)) == {"gasPrice": 100}


def test_explicit_gas_price_is_kept():
    assert tasks.fee_params(make_w3(), gas_price=3 * 10**9) == {"gasPrice": 3 * 10**9}
