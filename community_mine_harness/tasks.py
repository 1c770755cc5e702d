"""
One-shot production deployment against a real network.
"""

import time
from typing import Any, Dict, Optional, Sequence

from eth_abi import encode
from eth_account import Account
from web3 import Web3
from web3.providers.rpc import HTTPProvider

from .artifacts import Artifact, ArtifactRepository
from .config import HarnessConfig
from .errors import DeploymentError

MAGIC_BUYER_ARTIFACT = 'MagicMarketplaceBuyer'
MAGIC_BUYER_GAS_LIMIT = 170924192
MAGIC_BUYER_CONFIRMATIONS = 6
RECEIPT_TIMEOUT = 86400  # a day


def encode_constructor_args(abi, args: Sequence[Any]) -> str:
    """ABI-encode constructor arguments as hex (no 0x prefix)"""
    constructor = next((item for item in abi if item.get('type') == 'constructor'), None)
    inputs = constructor.get('inputs', []) if constructor else []
    if len(inputs) != len(args):
        raise DeploymentError(
            'constructor', f"expects {len(inputs)} argument(s), got {len(args)}"
        )
    if not inputs:
        return ''
    return encode([i['type'] for i in inputs], list(args)).hex()


def wait_for_confirmations(w3: Web3, block_number: int, confirmations: int,
                           poll_interval: float = 2.0, timeout: float = RECEIPT_TIMEOUT):
    deadline = time.time() + timeout
    while w3.eth.block_number - block_number + 1 < confirmations:
        if time.time() > deadline:
            raise DeploymentError('confirmations', f"{confirmations} confirmations not reached in {timeout}s")
        time.sleep(poll_interval)


def fee_params(w3: Web3, gas_price: Optional[int] = None) -> Dict[str, int]:
    """
    Fee fields for a deployment transaction

    Dynamic-fee (EIP-1559) fields when the chain reports a base fee, a legacy
    gasPrice otherwise or when `gas_price` is given explicitly.
    """
    if gas_price:
        return {'gasPrice': gas_price}

    base_fee = w3.eth.get_block('latest').get('baseFeePerGas')
    if base_fee is None:
        return {'gasPrice': w3.eth.gas_price}

    max_priority = w3.eth.max_priority_fee
    return {
        'maxPriorityFeePerGas': max_priority,
        'maxFeePerGas': base_fee * 2 + max_priority,
    }


def deploy_to_network(w3: Web3, private_key: str, artifact: Artifact, args: Sequence[Any] = (),
                      gas: Optional[int] = None, gas_price: Optional[int] = None,
                      confirmations: int = 1) -> str:
    """
    Sign and send a deployment transaction, wait for confirmations

    Returns:
        Checksum address of the new contract
    """
    deployer = Account.from_key(private_key)
    deployment_data = artifact.bytecode + encode_constructor_args(artifact.abi, args)

    deploy_tx: Dict[str, Any] = {
        'from': deployer.address,
        'data': deployment_data,
        'nonce': w3.eth.get_transaction_count(deployer.address),
        'chainId': w3.eth.chain_id,
    }
    fees = fee_params(w3, gas_price)
    deploy_tx.update(fees)
    deploy_tx['gas'] = gas or w3.eth.estimate_gas(deploy_tx)

    print(f"🔨 Deploying {artifact.name} from {deployer.address}...")
    print(f"  • Gas limit: {deploy_tx['gas']}, fees: {fees}")

    signed_tx = w3.eth.account.sign_transaction(deploy_tx, deployer.key)
    tx_hash = w3.eth.send_raw_transaction(signed_tx.raw_transaction)
    print(f"  • Tx: {Web3.to_hex(tx_hash)}")

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT)
    if receipt['status'] != 1:
        raise DeploymentError(artifact.name, f"deployment failed with status: {receipt['status']}",
                              tx_hash=Web3.to_hex(tx_hash))

    if confirmations > 1:
        print(f"  • Waiting for {confirmations} confirmations...")
        wait_for_confirmations(w3, receipt['blockNumber'], confirmations)

    return Web3.to_checksum_address(receipt['contractAddress'])


def deploy_magic_buyer(config: HarnessConfig, network: str = 'arb',
                       w3: Optional[Web3] = None) -> str:
    """Deploy MagicMarketplaceBuyer with its fixed production settings"""
    if w3 is None:
        w3 = Web3(HTTPProvider(config.rpc_url(network), request_kwargs={'timeout': 120}))

    artifact = ArtifactRepository(config.project_root).get(MAGIC_BUYER_ARTIFACT)
    address = deploy_to_network(
        w3,
        config.deployer_private_key,
        artifact,
        gas=MAGIC_BUYER_GAS_LIMIT,
        confirmations=MAGIC_BUYER_CONFIRMATIONS,
    )
    print("Finished!", address)
    return address
