"""
CommunityMine Harness - Fork test environment for the CommunityMine contracts

Forks Arbitrum at a pinned block with Anvil, deploys the CommunityMine
contract set, wires it to the live AtlasMine protocol and exposes the
resulting environment to tests.
"""

__version__ = "0.1.0"
