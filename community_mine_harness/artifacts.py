"""
Contract Artifact Repository

Resolves a contract name to its ABI and creation bytecode. Lookup order:

1. Hardhat artifacts:  artifacts/**/<Name>.json
2. Foundry artifacts:  out/<Name>.sol/<Name>.json
3. Solidity source:    contracts/**/<Name>.sol, compiled with py-solc-x
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import solcx

from .config import SOLC_OPTIMIZER_RUNS, SOLC_VERSION
from .errors import ArtifactNotFoundError


@dataclass(frozen=True)
class Artifact:
    name: str
    abi: List[Dict[str, Any]]
    bytecode: str
    source: str  # where it was loaded from


def _normalize_bytecode(bytecode: str) -> str:
    if not bytecode.startswith('0x'):
        bytecode = '0x' + bytecode
    return bytecode


class ArtifactRepository:
    """Named, pre-compiled contract artifacts with source compilation fallback"""

    def __init__(self, root: Path, solc_version: str = SOLC_VERSION,
                 optimizer_runs: int = SOLC_OPTIMIZER_RUNS):
        self.root = Path(root)
        self.solc_version = solc_version
        self.optimizer_runs = optimizer_runs
        self._cache: Dict[str, Artifact] = {}

    def get(self, name: str) -> Artifact:
        """
        Load artifact by contract name

        Raises:
            ArtifactNotFoundError: no artifact and no source for `name`
        """
        if name in self._cache:
            return self._cache[name]

        artifact = (
            self._load_hardhat(name)
            or self._load_foundry(name)
            or self._compile_source(name)
        )
        if artifact is None:
            raise ArtifactNotFoundError(
                f"No artifact or source for '{name}' under {self.root} "
                f"(looked in artifacts/, out/ and contracts/)"
            )

        self._cache[name] = artifact
        return artifact

    def has(self, name: str) -> bool:
        try:
            self.get(name)
        except ArtifactNotFoundError:
            return False
        return True

    def _load_hardhat(self, name: str) -> Optional[Artifact]:
        artifacts_dir = self.root / 'artifacts'
        if not artifacts_dir.is_dir():
            return None
        for path in sorted(artifacts_dir.rglob(f'{name}.json')):
            # skip *.dbg.json and build-info
            if 'build-info' in path.parts:
                continue
            data = json.loads(path.read_text(encoding='utf-8'))
            bytecode = data.get('bytecode')
            if isinstance(bytecode, str) and len(bytecode) > 2:
                return Artifact(name, data['abi'], _normalize_bytecode(bytecode), str(path))
        return None

    def _load_foundry(self, name: str) -> Optional[Artifact]:
        path = self.root / 'out' / f'{name}.sol' / f'{name}.json'
        if not path.is_file():
            return None
        data = json.loads(path.read_text(encoding='utf-8'))
        bytecode = data.get('bytecode', {})
        if isinstance(bytecode, dict):
            bytecode = bytecode.get('object', '')
        if not bytecode or len(bytecode) <= 2:
            return None
        return Artifact(name, data['abi'], _normalize_bytecode(bytecode), str(path))

    def _compile_source(self, name: str) -> Optional[Artifact]:
        contracts_dir = self.root / 'contracts'
        if not contracts_dir.is_dir():
            return None
        sources = sorted(contracts_dir.rglob(f'{name}.sol'))
        if not sources:
            return None

        print(f"✓ Compiling {sources[0].name} (solc {self.solc_version}, runs={self.optimizer_runs})...")
        self._ensure_solc()

        remappings = []
        node_modules = self.root / 'node_modules'
        if node_modules.is_dir():
            remappings = [f'@openzeppelin/={node_modules / "@openzeppelin"}/']

        compiled = solcx.compile_files(
            [str(sources[0])],
            output_values=['abi', 'bin'],
            import_remappings=remappings or None,
            allow_paths=[str(self.root)],
            solc_version=self.solc_version,
            optimize=True,
            optimize_runs=self.optimizer_runs,
        )

        # Pick the contract with bytecode, skipping interfaces and imports
        for contract_id, interface in compiled.items():
            if contract_id.split(':')[-1] == name and len(interface.get('bin', '')) > 10:
                return Artifact(name, interface['abi'], _normalize_bytecode(interface['bin']), str(sources[0]))

        raise ArtifactNotFoundError(
            f"'{name}' not found in compilation output of {sources[0]} "
            f"(got: {', '.join(compiled)})"
        )

    def _ensure_solc(self):
        installed = {str(v) for v in solcx.get_installed_solc_versions()}
        if self.solc_version not in installed:
            print(f"  • Installing solc {self.solc_version}...")
            solcx.install_solc(self.solc_version)
