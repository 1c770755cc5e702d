from unittest.mock import MagicMock

import pytest
from eth_utils import to_checksum_address
from web3.exceptions import ContractLogicError, TimeExhausted

from community_mine_harness.artifacts import Artifact
from community_mine_harness.deployer import ContractDeployer, HandleKind
from community_mine_harness.errors import DeploymentError

SENDER = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
DEPLOYED = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TX_HASH = b"\x34" * 32
ABI = [{"type": "constructor", "inputs": [{"name": "magic", "type": "address"}]}]


def make_deployer(status=1):
    w3 = MagicMock()
    w3.eth.contract.return_value.constructor.return_value.transact.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {
        "status": status,
        "contractAddress": DEPLOYED.lower(),
    }
    artifacts = MagicMock()
    artifacts.get.return_value = Artifact("AMagicStaking", ABI, "0x6080", "test")
    return ContractDeployer(w3, artifacts), w3


def test_deploy_returns_deployed_handle():
    deployer, w3 = make_deployer()
    magic = to_checksum_address("0x539bde0d7dbd336b79148aa742883198bbf60342")

    handle = deployer.deploy("AMagicStaking", SENDER, args=(magic,))

    factory = w3.eth.contract.return_value
    factory.constructor.assert_called_once_with(magic)
    factory.constructor.return_value.transact.assert_called_once_with(
        {"from": "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"}
    )
    assert handle.kind is HandleKind.DEPLOYED
    assert handle.address == DEPLOYED
    assert handle.constructor_args == (magic,)
    assert handle.tx_hash == "0x" + "34" * 32


def test_receipt_status_zero_raises():
    deployer, _ = make_deployer(status=0)
    with pytest.raises(DeploymentError, match="status: 0") as excinfo:
        deployer.deploy("AMagicStaking", SENDER, args=(SENDER,))
    assert excinfo.value.tx_hash == "0x" + "34" * 32


def test_constructor_revert_raises():
    deployer, w3 = make_deployer()
    w3.eth.contract.return_value.constructor.return_value.transact.side_effect = ContractLogicError(
        "execution reverted: Cannot set address zero"
    )
    with pytest.raises(DeploymentError, match="Cannot set address zero"):
        deployer.deploy("AMagicStaking", SENDER, args=(SENDER,))
    w3.eth.wait_for_transaction_receipt.assert_not_called()


def test_missing_receipt_raises():
    deployer, w3 = make_deployer()
    w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("no receipt")
    with pytest.raises(DeploymentError, match="no receipt"):
        deployer.deploy("AMagicStaking", SENDER, args=(SENDER,))


def test_attach_sends_no_transaction():
    deployer, w3 = make_deployer()

    handle = deployer.attach("magic", [], "0x539bde0d7dbd336b79148aa742883198bbf60342")

    assert handle.kind is HandleKind.ATTACHED
    assert handle.address == to_checksum_address("0x539bde0d7dbd336b79148aa742883198bbf60342")
    assert handle.tx_hash is None
    deployer.artifacts.get.assert_not_called()
    w3.eth.contract.return_value.constructor.assert_not_called()
    w3.eth.send_transaction.assert_not_called()
    w3.eth.send_raw_transaction.assert_not_called()


def test_handle_transact_waits_for_receipt():
    deployer, w3 = make_deployer()
    handle = deployer.attach("community_mine", [], DEPLOYED)
    function = handle.contract.functions.setMiningPercent.return_value
    function.transact.return_value = TX_HASH

    receipt = handle.transact("setMiningPercent", 10000, sender=SENDER)

    function.transact.assert_called_once_with({"from": "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"})
    assert receipt is handle.contract.w3.eth.wait_for_transaction_receipt.return_value
    assert handle.transact("setMiningPercent", 1, sender=SENDER, wait=False) == TX_HASH
