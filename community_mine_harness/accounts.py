"""
Account Provisioner

Hands out the node's pre-funded dev accounts by index and keeps diagnostic
labels for addresses. Labels never influence on-chain behaviour.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from eth_utils import to_checksum_address

from .errors import ConfigurationError


@dataclass(frozen=True)
class NamedAccount:
    address: str
    label: str

    def __str__(self):
        return f"{self.label} ({self.address})"


class AccountProvisioner:
    """Deterministic dev accounts plus address labels"""

    def __init__(self, fork):
        self.fork = fork
        self._accounts: Optional[List[str]] = None
        self._labels: Dict[str, List[str]] = {}

    def account(self, index: int) -> str:
        """
        Address of the pre-funded dev account at `index`

        Raises:
            ConfigurationError: the node exposes fewer accounts
        """
        if self._accounts is None:
            self._accounts = self.fork.accounts()
        if index < 0 or index >= len(self._accounts):
            raise ConfigurationError(
                f"Account index {index} out of range (node has {len(self._accounts)} dev accounts)"
            )
        return self._accounts[index]

    def named(self, index: int, label: str) -> NamedAccount:
        """Provision account `index` and tag it with `label`"""
        address = self.account(index)
        self.tag(address, label)
        return NamedAccount(address=address, label=label)

    def tag(self, address: str, label: str):
        """Attach a diagnostic label to an address; never fails"""
        try:
            key = to_checksum_address(address)
        except (ValueError, TypeError):
            print(f"⚠️  Cannot tag {address!r} as '{label}': not an address")
            return

        labels = self._labels.setdefault(key, [])
        if label in labels:
            return
        if labels:
            print(f"⚠️  {key} already tagged as '{labels[0]}', also tagging as '{label}'")
        labels.append(label)

    def labels(self, address: str) -> List[str]:
        try:
            return list(self._labels.get(to_checksum_address(address), []))
        except (ValueError, TypeError):
            return []

    def label(self, address: str) -> str:
        """Human readable form of an address for log output"""
        labels = self.labels(address)
        if not labels:
            return address
        return f"{'/'.join(labels)} ({address})"
