"""
Contract Deployer

Deploys artifacts from a sender account and attaches to contracts the harness
does not own. Deployment failures are raised, never retried here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from eth_utils import to_checksum_address
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError, TimeExhausted

from .artifacts import ArtifactRepository
from .errors import DeploymentError


class HandleKind(Enum):
    DEPLOYED = "deployed"
    ATTACHED = "attached"


@dataclass
class ContractHandle:
    """On-chain address plus callable interface"""
    name: str
    address: str
    abi: List[Dict[str, Any]]
    kind: HandleKind
    contract: Contract = field(repr=False)
    constructor_args: tuple = ()
    tx_hash: Optional[str] = None

    @property
    def functions(self):
        return self.contract.functions

    def call(self, method: str, *args) -> Any:
        """Read-only call of `method`"""
        return getattr(self.contract.functions, method)(*args).call()

    def transact(self, method: str, *args, sender: str, wait: bool = True, **tx_params):
        """
        Send a state-changing call from `sender`

        Returns:
            The receipt, or the tx hash when wait=False
        """
        params = {'from': to_checksum_address(sender)}
        params.update(tx_params)
        tx_hash = getattr(self.contract.functions, method)(*args).transact(params)
        if not wait:
            return tx_hash
        return self.contract.w3.eth.wait_for_transaction_receipt(tx_hash)


class ContractDeployer:
    """Deploy or attach contracts on the local fork"""

    def __init__(self, w3: Web3, artifacts: ArtifactRepository, receipt_timeout: int = 120):
        self.w3 = w3
        self.artifacts = artifacts
        self.receipt_timeout = receipt_timeout

    def deploy(self, artifact_name: str, sender: str, args: Sequence[Any] = (),
               gas: Optional[int] = None) -> ContractHandle:
        """
        Deploy `artifact_name` with constructor `args` from `sender`

        The sender must be unlocked on the node (dev account or impersonated).

        Raises:
            ArtifactNotFoundError: unknown artifact
            DeploymentError: constructor reverted or receipt status 0
        """
        artifact = self.artifacts.get(artifact_name)
        factory = self.w3.eth.contract(abi=artifact.abi, bytecode=artifact.bytecode)
        sender = to_checksum_address(sender)

        params: Dict[str, Any] = {'from': sender}
        if gas is not None:
            params['gas'] = gas

        try:
            tx_hash = factory.constructor(*args).transact(params)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except ContractLogicError as e:
            raise DeploymentError(artifact_name, f"constructor reverted: {e}") from e
        except TimeExhausted as e:
            raise DeploymentError(artifact_name, f"no receipt after {self.receipt_timeout}s") from e

        if receipt['status'] != 1:
            raise DeploymentError(
                artifact_name,
                f"deployment failed with status: {receipt['status']}",
                tx_hash=Web3.to_hex(tx_hash),
            )

        address = to_checksum_address(receipt['contractAddress'])
        print(f"  • {artifact_name} deployed: {address}")

        return ContractHandle(
            name=artifact_name,
            address=address,
            abi=artifact.abi,
            kind=HandleKind.DEPLOYED,
            contract=self.w3.eth.contract(address=address, abi=artifact.abi),
            constructor_args=tuple(args),
            tx_hash=Web3.to_hex(tx_hash),
        )

    def attach(self, name: str, abi: List[Dict[str, Any]], address: str) -> ContractHandle:
        """Handle for an existing contract; sends no transaction"""
        address = to_checksum_address(address)
        return ContractHandle(
            name=name,
            address=address,
            abi=abi,
            kind=HandleKind.ATTACHED,
            contract=self.w3.eth.contract(address=address, abi=abi),
        )
