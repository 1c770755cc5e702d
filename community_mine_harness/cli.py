"""
Command line entry point

Usage:
    # Deploy MagicMarketplaceBuyer to Arbitrum
    python -m community_mine_harness deploy-magic-buyer --network arb

    # Start a local fork and bootstrap an environment
    python -m community_mine_harness bootstrap --variant full_system --block 5746555

    # List configured networks
    python -m community_mine_harness networks
"""

import argparse
import json
import sys
from typing import List, Optional

from .bootstrap import VARIANTS, get_variant, prepare_for_tests
from .config import NETWORKS, load_config
from .errors import HarnessError
from .fork import ForkEnvironment
from .retry import UNBOUNDED, RetryPolicy
from .tasks import deploy_magic_buyer


def cmd_deploy_magic_buyer(args) -> int:
    config = load_config(args.config)
    deploy_magic_buyer(config, network=args.network)
    return 0


def cmd_bootstrap(args) -> int:
    config = load_config(args.config)
    if args.port is not None:
        config.anvil_port = args.port

    policy = UNBOUNDED if args.max_attempts == 0 else RetryPolicy(max_attempts=args.max_attempts)

    with ForkEnvironment(config, node_url=args.node_url, node_kind=args.node_kind) as fork:
        try:
            env = prepare_for_tests(fork, get_variant(args.variant), block_number=args.block, policy=policy)
        except HarnessError:
            fork.print_diagnostics()
            raise
        print(json.dumps(env.summary(), indent=2))
    return 0


def cmd_networks(args) -> int:
    config = load_config(args.config)
    print(f"{'name':<10} {'chain id':>9}  {'fork block':>10}  url")
    for name, network in NETWORKS.items():
        try:
            url = network.url(config.credentials)
        except HarnessError:
            url = f"{network.url_template}  (missing credentials)"
        fork_block = network.fork_block if network.fork_block is not None else '-'
        print(f"{name:<10} {network.chain_id:>9}  {fork_block:>10}  {url}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='community-mine-harness',
        description='CommunityMine fork-test harness',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to .config.json (default: $COMMUNITY_MINE_CONFIG or ./.config.json)'
    )
    sub = parser.add_subparsers(dest='command', required=True)

    deploy = sub.add_parser('deploy-magic-buyer', help='Deploy MagicMarketplaceBuyer to a real network')
    deploy.add_argument(
        '--network',
        type=str,
        default='arb',
        choices=sorted(NETWORKS),
        help='Target network (default: arb)'
    )
    deploy.set_defaults(func=cmd_deploy_magic_buyer)

    bootstrap = sub.add_parser('bootstrap', help='Fork, deploy and wire an environment')
    bootstrap.add_argument(
        '--variant',
        type=str,
        default='full_system',
        choices=sorted(VARIANTS),
        help='Environment layout (default: full_system)'
    )
    bootstrap.add_argument(
        '--block',
        type=int,
        default=None,
        help='Fork block number (default: pinned value)'
    )
    bootstrap.add_argument(
        '--port',
        type=int,
        default=None,
        help='Local node port (default: $ANVIL_PORT or 8545)'
    )
    bootstrap.add_argument(
        '--node-url',
        type=str,
        default=None,
        help='Use an already running node instead of spawning anvil'
    )
    bootstrap.add_argument(
        '--node-kind',
        type=str,
        default='anvil',
        choices=['anvil', 'hardhat'],
        help='Cheatcode namespace of the node (default: anvil)'
    )
    bootstrap.add_argument(
        '--max-attempts',
        type=int,
        default=5,
        help='Bootstrap attempts, 0 retries forever (default: 5)'
    )
    bootstrap.set_defaults(func=cmd_bootstrap)

    networks = sub.add_parser('networks', help='List configured networks')
    networks.set_defaults(func=cmd_networks)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except HarnessError as e:
        print(f"❌ {type(e).__name__}: {e}", file=sys.stderr)
        return 1
