from types import SimpleNamespace

import pytest
from eth_utils import to_checksum_address

from community_mine_harness.artifacts import ArtifactRepository
from community_mine_harness.bootstrap import FULL_SYSTEM, HELLO_WORLD, prepare_for_tests
from community_mine_harness.config import load_config
from community_mine_harness.errors import ConfigurationError
from community_mine_harness.fork import ForkEnvironment, find_anvil


def make_address(n: int) -> str:
    return to_checksum_address("0x" + format(n, "040x"))


class FakeFork:
    """Stands in for ForkEnvironment in tests that do not need a node"""

    def __init__(self, n_accounts=10, fail_resets=0, reset_error=None):
        self.dev_accounts = [make_address(0x1000 + i) for i in range(n_accounts)]
        self.fail_resets = fail_resets
        self.reset_error = reset_error
        self.reset_calls = []
        self.balances = {}
        self.w3 = None
        self.config = SimpleNamespace(project_root=".")

    def reset_fork(self, block_number=None):
        self.reset_calls.append(block_number)
        if self.fail_resets > 0:
            self.fail_resets -= 1
            raise self.reset_error
        return block_number or 0

    def accounts(self):
        return list(self.dev_accounts)

    def set_balance(self, address, wei):
        self.balances[address] = wei


@pytest.fixture
def fake_fork():
    return FakeFork()


# --- fork fixtures -----------------------------------------------------------

REQUIRED_ARTIFACTS = ("AMagicToken", "CommunityMine", "AMagicStaking")


@pytest.fixture(scope="session")
def harness_config():
    return load_config()


@pytest.fixture(scope="session")
def fork(harness_config):
    if find_anvil() is None:
        pytest.skip("anvil not installed")
    try:
        harness_config.fork_point()
    except ConfigurationError as e:
        pytest.skip(f"no upstream RPC configured: {e}")

    env = ForkEnvironment(harness_config)
    env.start()
    yield env
    env.stop()


@pytest.fixture(scope="session")
def artifacts(harness_config):
    return ArtifactRepository(harness_config.project_root)


@pytest.fixture
def community_env(fork, artifacts):
    missing = [name for name in REQUIRED_ARTIFACTS if not artifacts.has(name)]
    if missing:
        pytest.skip(f"compiled artifacts missing: {', '.join(missing)}")
    return prepare_for_tests(fork, FULL_SYSTEM, artifacts=artifacts)


@pytest.fixture
def hello_env(fork, artifacts):
    if not artifacts.has("HelloWorld"):
        pytest.skip("compiled artifact missing: HelloWorld")
    return prepare_for_tests(fork, HELLO_WORLD, artifacts=artifacts)
