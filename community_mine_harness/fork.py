"""
Fork Environment - Network Fork Resetter

Responsibilities:
1. Start a local Anvil node forked from the configured upstream network
2. Reset the local chain to the pinned fork point on demand
3. Provide the Web3 connection and the node cheatcodes the tests rely on
"""

import os
import queue
import socket
import subprocess
import threading
import time
from typing import Any, Dict, List, Optional

import psutil
import requests
from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.providers.rpc import HTTPProvider

from .config import ForkPoint, HarnessConfig
from .errors import ConfigurationError, ForkError

ANVIL_PATHS = [
    os.path.expanduser('~/.foundry/bin/anvil'),
    '/usr/local/bin/anvil',
    'anvil',
]

# Environment variables stripped before spawning the node
PROXY_VARS = ['http_proxy', 'https_proxy', 'HTTP_PROXY', 'HTTPS_PROXY',
              'all_proxy', 'ALL_PROXY', 'ftp_proxy', 'FTP_PROXY']


def find_anvil() -> Optional[str]:
    """Locate the anvil binary, None when Foundry is not installed"""
    for path in ANVIL_PATHS:
        try:
            subprocess.run(
                [path, '--version'],
                capture_output=True,
                check=True,
                text=True,
                timeout=5
            )
            return path
        except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
            continue
    return None


def _local_session() -> requests.Session:
    """HTTP session that never goes through a proxy (local connection)"""
    session = requests.Session()
    session.proxies = {'http': None, 'https': None}
    session.trust_env = False
    return session


class ForkEnvironment:
    """Local forked chain: process lifecycle, fork reset and cheatcodes"""

    def __init__(
        self,
        config: HarnessConfig,
        node_url: Optional[str] = None,
        node_kind: str = 'anvil',
        startup_timeout: int = 60,
    ):
        """
        Args:
            config: Harness configuration (fork point, port)
            node_url: RPC URL of an already running node. When given, no
                      process is spawned and stop() leaves the node alone.
            node_kind: 'anvil' or 'hardhat', selects the cheatcode namespace
            startup_timeout: Seconds to wait for a spawned node to listen
        """
        if node_kind not in ('anvil', 'hardhat'):
            raise ConfigurationError(f"Unsupported node kind: {node_kind}")

        self.config = config
        self.fork_point: ForkPoint = config.fork_point()
        self.node_kind = node_kind
        self.port = config.anvil_port
        self.node_url = node_url or f"http://127.0.0.1:{self.port}"
        self.external_node = node_url is not None
        self.startup_timeout = startup_timeout

        self.process: Optional[subprocess.Popen] = None
        self.w3: Optional[Web3] = None

    def start(self) -> Dict[str, Any]:
        """
        Start (or attach to) the node and connect Web3

        A node spawned here is stopped again when connecting fails.

        Returns:
            Environment info dictionary
        """
        if not self.external_node:
            self._start_anvil_fork()

        try:
            return self._connect()
        except Exception:
            self._cleanup_process()
            self.w3 = None
            raise

    def _connect(self) -> Dict[str, Any]:
        provider = HTTPProvider(
            self.node_url,
            session=_local_session(),
            request_kwargs={'timeout': 60}
        )
        self.w3 = Web3(provider)

        if not self.w3.is_connected():
            raise ForkError(f"Cannot connect to local node: {self.node_url}")

        info = {
            'rpc_url': self.node_url,
            'chain_id': self.w3.eth.chain_id,
            'block_number': self.w3.eth.block_number,
            'fork_network': self.fork_point.network,
            'fork_block': self.fork_point.block_number,
        }

        print(f"✓ Local node connected")
        print(f"  Chain ID: {info['chain_id']}")
        print(f"  RPC: {self.node_url}")
        print(f"  Fork: {self.fork_point.network} @ {self.fork_point.block_number}")

        return info

    def stop(self):
        """Stop environment"""
        self._cleanup_process()
        self.w3 = None
        print("✓ Environment cleaned up")

    def reset_fork(self, block_number: Optional[int] = None) -> int:
        """
        Re-fork the upstream network, discarding all local history

        Args:
            block_number: Fork height, defaults to the pinned one

        Returns:
            Block number of the fresh chain head

        Raises:
            ForkError: reset refused or upstream unavailable (caller retries)
        """
        if block_number is None:
            block_number = self.fork_point.block_number

        forking: Dict[str, Any] = {'jsonRpcUrl': self.fork_point.url}
        if block_number is not None:
            forking['blockNumber'] = block_number

        print(f"🔄 Resetting fork to block {block_number if block_number is not None else 'latest'}...")
        self._rpc(f'{self.node_kind}_reset', [{'forking': forking}])

        head = self._web3().eth.block_number
        print(f"  ✓ Chain reset (head: {head})")
        return head

    def accounts(self) -> List[str]:
        """Pre-funded dev accounts exposed by the node"""
        return [to_checksum_address(a) for a in self._web3().eth.accounts]

    def impersonate(self, address: str):
        self._rpc(f'{self.node_kind}_impersonateAccount', [to_checksum_address(address)])

    def stop_impersonating(self, address: str):
        self._rpc(f'{self.node_kind}_stopImpersonatingAccount', [to_checksum_address(address)])

    def set_balance(self, address: str, balance_wei: int):
        """Set address balance using the node cheatcode"""
        self._rpc(f'{self.node_kind}_setBalance', [to_checksum_address(address), hex(balance_wei)])

    def mine_block(self, seconds: int = 0):
        """Advance time by `seconds` then mine one block"""
        if seconds:
            self._rpc('evm_increaseTime', [seconds])
        self._rpc('evm_mine', [])

    def mine_blocks(self, count: int, seconds_per_block: int = 0):
        for _ in range(count):
            self.mine_block(seconds_per_block)

    def latest_timestamp(self) -> int:
        return self._web3().eth.get_block('latest')['timestamp']

    def get_diagnostics(self) -> Dict[str, Any]:
        """Snapshot of the node process and RPC state"""
        diagnostics: Dict[str, Any] = {
            'timestamp': time.strftime('%Y-%m-%dT%H:%M:%S'),
            'node_kind': self.node_kind,
            'node_url': self.node_url,
            'external_node': self.external_node,
            'process_pid': self.process.pid if self.process else None,
            'process_alive': None,
            'rpc_responsive': False,
            'rpc_response_time_ms': None,
            'current_block_number': None,
            'chain_id': None,
            'fork_network': self.fork_point.network,
            'fork_block': self.fork_point.block_number,
            'errors': [],
        }

        if self.process:
            returncode = self.process.poll()
            diagnostics['process_alive'] = returncode is None
            if returncode is not None:
                diagnostics['errors'].append(f'Node process exited with code {returncode}')
        elif not self.external_node:
            diagnostics['errors'].append('Node process not running')

        if not self.w3:
            diagnostics['errors'].append('Web3 not connected')
            return diagnostics

        try:
            started = time.time()
            diagnostics['current_block_number'] = self.w3.eth.block_number
            diagnostics['rpc_response_time_ms'] = round((time.time() - started) * 1000, 2)
            diagnostics['chain_id'] = self.w3.eth.chain_id
            diagnostics['rpc_responsive'] = True
        except (requests.exceptions.RequestException, OSError, ValueError, Web3Exception) as e:
            diagnostics['errors'].append(f'RPC call failed: {str(e)[:200]}')

        return diagnostics

    def check_health(self) -> bool:
        """True when the node answers RPC and, if spawned here, is still running"""
        diag = self.get_diagnostics()
        return diag['process_alive'] is not False and diag['rpc_responsive']

    def print_diagnostics(self) -> Dict[str, Any]:
        diag = self.get_diagnostics()

        print("\n" + "=" * 60)
        print(f"🔍 NODE DIAGNOSTICS ({diag['node_kind']})")
        print("=" * 60)
        print(f"  Timestamp: {diag['timestamp']}")
        print(f"  RPC: {diag['node_url']}{' (external)' if diag['external_node'] else ''}")
        if not diag['external_node']:
            print(f"  Process: PID {diag['process_pid']}, alive: {diag['process_alive']}")
        print(f"  Responsive: {'✓' if diag['rpc_responsive'] else '❌'} ({diag['rpc_response_time_ms']} ms)")
        print(f"  Block: {diag['current_block_number']}  Chain ID: {diag['chain_id']}")
        print(f"  Fork: {diag['fork_network']} @ {diag['fork_block']}")
        if diag['errors']:
            print(f"  ⚠️  Errors:")
            for err in diag['errors']:
                print(f"    - {err}")
        print("=" * 60 + "\n")

        return diag

    def _web3(self) -> Web3:
        if not self.w3:
            raise ForkError("Environment not started")
        return self.w3

    def _rpc(self, method: str, params: list) -> Any:
        """Raw RPC call; transport failures and RPC errors surface as ForkError"""
        w3 = self._web3()
        try:
            response = w3.provider.make_request(method, params)
        except (requests.exceptions.RequestException, OSError) as e:
            raise ForkError(f"{method} failed: {e}") from e

        if response.get('error'):
            error = response['error']
            message = error.get('message', error) if isinstance(error, dict) else error
            raise ForkError(f"{method} failed: {message}")
        return response.get('result')

    def _start_anvil_fork(self):
        """Start Anvil fork process"""
        # 1. Clean up leftover nodes bound to our port
        self._kill_stale_anvil()

        if self._is_port_in_use(self.port):
            raise ForkError(
                f"Port {self.port} is still in use, cannot start Anvil\n"
                f"  Linux/Mac: lsof -ti:{self.port} | xargs kill -9"
            )

        # 2. Test network connection to fork URL
        print(f"🔍 Testing connection to fork URL...")
        if not self._test_fork_url():
            print(f"⚠️  Warning: Cannot connect to fork URL quickly")
            print(f"   Continuing to start, but might be slow...")

        anvil_cmd = find_anvil()
        if not anvil_cmd:
            raise ConfigurationError(
                "Anvil not found! Please install Foundry:\n"
                "  curl -L https://foundry.paradigm.xyz | bash\n"
                "  foundryup"
            )

        print(f"🔨 Starting Anvil fork...")
        print(f"   Network: {self.fork_point.network}")
        print(f"   Port: {self.port}")

        cmd = [
            anvil_cmd,
            '--fork-url', self.fork_point.url,
            '--port', str(self.port),
            '--host', '127.0.0.1',
            '--timeout', '60000',
            '--retries', '3',
        ]
        if self.fork_point.block_number is not None:
            cmd += ['--fork-block-number', str(self.fork_point.block_number)]

        env = os.environ.copy()
        for var in PROXY_VARS:
            env.pop(var, None)
        env['no_proxy'] = '*'
        env['NO_PROXY'] = '*'

        # stdout discarded, stderr drained by a thread to avoid pipe deadlock
        self.process = subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            env=env
        )

        stderr_queue: "queue.Queue[str]" = queue.Queue()
        stderr_output: List[str] = []

        def read_stderr():
            for line in iter(self.process.stderr.readline, b''):
                stderr_queue.put(line.decode('utf-8', errors='ignore').strip())

        threading.Thread(target=read_stderr, daemon=True).start()

        def drain():
            while True:
                try:
                    line = stderr_queue.get_nowait()
                except queue.Empty:
                    return
                if line:
                    stderr_output.append(line)

        print(f"   Waiting for Anvil to start (max {self.startup_timeout}s)...")
        for i in range(self.startup_timeout):
            time.sleep(1)
            drain()

            if self._is_port_in_use(self.port):
                print(f"✓ Anvil started successfully ({i + 1}s)")
                return

            if self.process.poll() is not None:
                returncode = self.process.returncode
                time.sleep(0.5)
                drain()
                error_msg = '\n'.join(stderr_output[-20:]) if stderr_output else "No error message"
                self._cleanup_process()
                raise ForkError(
                    f"Anvil process exited unexpectedly (code {returncode})\n"
                    f"Error message: {error_msg[:500]}"
                )

            if (i + 1) % 10 == 0:
                print(f"   Waiting... ({i + 1}s)")

        drain()
        stderr_log = '\n'.join(stderr_output[-30:]) if stderr_output else "No output captured"
        self._cleanup_process()
        raise ForkError(
            f"Anvil start timed out ({self.startup_timeout}s)\n"
            f"Anvil stderr output (last 30 lines):\n{stderr_log}"
        )

    def _cleanup_process(self):
        if self.process:
            try:
                self.process.terminate()
                self.process.wait(timeout=5)
                print("✓ Anvil process terminated")
            except subprocess.TimeoutExpired:
                self.process.kill()
                self.process.wait()
                print("✓ Anvil process forcibly terminated")
            self.process = None

    def _is_port_in_use(self, port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            return s.connect_ex(('127.0.0.1', port)) == 0

    def _kill_stale_anvil(self):
        """
        Kill anvil processes left listening on our port by a previous run

        Only actual anvil binaries are matched, never the python test runner.
        """
        current_pid = os.getpid()
        killed_count = 0

        for proc in psutil.process_iter(['pid', 'name', 'cmdline']):
            try:
                if proc.info['pid'] == current_pid:
                    continue
                name = (proc.info.get('name') or '').lower()
                cmdline = proc.info.get('cmdline') or []
                is_anvil = name == 'anvil' or (cmdline and cmdline[0].endswith('/anvil'))
                if is_anvil and str(self.port) in ' '.join(cmdline):
                    print(f"   Cleaning up stale Anvil process: PID {proc.info['pid']}")
                    proc.kill()
                    proc.wait(timeout=3)
                    killed_count += 1
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.TimeoutExpired):
                continue

        if killed_count:
            print(f"   ✓ Cleaned up {killed_count} stale processes")
            time.sleep(1)  # port release

    def _test_fork_url(self, timeout: float = 5) -> bool:
        """Probe the upstream RPC with eth_blockNumber"""
        try:
            response = _local_session().post(
                self.fork_point.url,
                json={"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 1},
                timeout=timeout,
            )
            result = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            print(f"   ⚠️  Connection test failed: {e}")
            return False

        if 'result' in result:
            print(f"   ✓ Fork URL connected successfully (Block: {int(result['result'], 16)})")
            return True
        print(f"   ⚠️  Fork URL response abnormal: {result}")
        return False

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
