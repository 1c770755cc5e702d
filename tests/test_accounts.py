import pytest

from community_mine_harness.accounts import AccountProvisioner
from community_mine_harness.errors import ConfigurationError


def test_accounts_are_stable_by_index(fake_fork):
    provisioner = AccountProvisioner(fake_fork)
    assert provisioner.account(0) == fake_fork.dev_accounts[0]
    assert provisioner.account(6) == fake_fork.dev_accounts[6]
    assert provisioner.account(6) == provisioner.account(6)


def test_index_out_of_range(fake_fork):
    provisioner = AccountProvisioner(fake_fork)
    with pytest.raises(ConfigurationError, match="out of range"):
        provisioner.account(10)
    with pytest.raises(ConfigurationError):
        provisioner.account(-1)


def test_named_account_is_tagged(fake_fork):
    provisioner = AccountProvisioner(fake_fork)
    treasury = provisioner.named(1, "treasury")
    assert treasury.address == fake_fork.dev_accounts[1]
    assert treasury.label == "treasury"
    assert provisioner.label(treasury.address) == f"treasury ({treasury.address})"


def test_double_tagging_keeps_both_labels(fake_fork, capsys):
    provisioner = AccountProvisioner(fake_fork)
    deployer = fake_fork.dev_accounts[0]
    provisioner.tag(deployer, "deployer")
    provisioner.tag(deployer.lower(), "user1")
    provisioner.tag(deployer, "user1")

    assert provisioner.labels(deployer) == ["deployer", "user1"]
    assert "already tagged as 'deployer'" in capsys.readouterr().out


def test_tagging_garbage_does_not_raise(fake_fork):
    provisioner = AccountProvisioner(fake_fork)
    provisioner.tag("not-an-address", "oops")
    assert provisioner.labels("not-an-address") == []
    assert provisioner.label("not-an-address") == "not-an-address"
