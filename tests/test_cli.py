import json

import pytest

from community_mine_harness import cli
from community_mine_harness.errors import ForkError, RetryExhaustedError


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.delenv("FORK_URL", raising=False)
    path = tmp_path / ".config.json"
    path.write_text(json.dumps({"alchemyKey": "alch"}))
    return path


def test_networks_lists_every_network(config_file, capsys):
    assert cli.main(["--config", str(config_file), "networks"]) == 0
    out = capsys.readouterr().out
    assert "https://arb-mainnet.g.alchemy.com/v2/alch" in out
    assert "5746555" in out
    # moralisKey is not configured
    assert "missing credentials" in out


def test_deploy_magic_buyer_reports_config_errors(config_file, capsys, monkeypatch):
    monkeypatch.delenv("DEPLOYER_PRIVATE_KEY", raising=False)
    assert cli.main(["--config", str(config_file), "deploy-magic-buyer", "--network", "arb"]) == 1
    assert "ConfigurationError" in capsys.readouterr().err


def test_subcommand_required():
    with pytest.raises(SystemExit):
        cli.main([])


def test_bootstrap_defaults():
    args = cli.build_parser().parse_args(["bootstrap"])
    assert args.variant == "full_system"
    assert args.max_attempts == 5
    assert args.node_kind == "anvil"


class StubFork:
    instances = []

    def __init__(self, config, node_url=None, node_kind="anvil"):
        self.diagnostics_printed = 0
        self.stopped = False
        StubFork.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stopped = True

    def print_diagnostics(self):
        self.diagnostics_printed += 1
        return {}


def test_failed_bootstrap_prints_node_diagnostics(config_file, capsys, monkeypatch):
    StubFork.instances = []

    def exhausted(fork, variant, block_number=None, policy=None):
        raise RetryExhaustedError(2, ForkError("anvil_reset failed: 429 Too Many Requests"))

    monkeypatch.setattr(cli, "ForkEnvironment", StubFork)
    monkeypatch.setattr(cli, "prepare_for_tests", exhausted)

    assert cli.main(["--config", str(config_file), "bootstrap", "--max-attempts", "2"]) == 1

    fork = StubFork.instances[0]
    assert fork.diagnostics_printed == 1
    assert fork.stopped
    assert "RetryExhaustedError" in capsys.readouterr().err
