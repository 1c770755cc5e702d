"""
Test Environment Bootstrap

Builds a fresh, deterministic environment for every test case:

    reset fork -> provision accounts -> attach/deploy contracts -> initialize

The whole sequence runs under a RetryPolicy. Each attempt starts from a new
fork reset and a new TestEnvironment; nothing is reused between attempts.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import abis, addresses
from .accounts import AccountProvisioner, NamedAccount
from .artifacts import ArtifactRepository
from .deployer import ContractDeployer, ContractHandle
from .errors import ConfigurationError, WiringError
from .retry import RetryPolicy, run_with_retry

DEV_ACCOUNT_BALANCE = 10_000 * 10**18

# AtlasMine lock options: twoWeeks, oneMonth, threeMonths, sixMonths, twelveMonths
LOCK_OPTIONS = range(5)
MAX_BASIS_POINTS = 10000


@dataclass(frozen=True)
class Ref:
    """Constructor argument resolved to the address of an earlier contract"""
    name: str


@dataclass(frozen=True)
class Role:
    """Constructor argument resolved to the address of a provisioned account"""
    name: str


@dataclass(frozen=True)
class Attachment:
    name: str
    abi: List[Dict[str, Any]]
    address: str
    label: str


@dataclass(frozen=True)
class Deployment:
    name: str
    artifact: str
    sender: str
    label: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class InitializationParameters:
    """Arguments of CommunityMine.initialize, in call order"""
    weth: str
    magic: str
    a_magic: str
    atlas_mine: str
    a_magic_staking: str
    treasury: str
    reward_splitter: str
    mining_percent: int = 9000
    deposit_threshold: int = 10000
    lock: int = 4

    def as_args(self) -> tuple:
        return (
            self.weth,
            self.magic,
            self.a_magic,
            self.atlas_mine,
            self.a_magic_staking,
            self.treasury,
            self.reward_splitter,
            self.mining_percent,
            self.deposit_threshold,
            self.lock,
        )

    def expected_getters(self) -> Dict[str, Any]:
        """Getter name -> value CommunityMine reports after initialization"""
        return {
            'weth': self.weth,
            'magic': self.magic,
            'aMagic': self.a_magic,
            'atlasMine': self.atlas_mine,
            'aMagicStaking': self.a_magic_staking,
            'treasury': self.treasury,
            'rewardSplitter': self.reward_splitter,
            'miningPercent': self.mining_percent,
            'depositThreshold': self.deposit_threshold,
            'lock': self.lock,
        }


@dataclass
class SystemVariant:
    """Declarative layout of one test environment"""
    name: str
    roles: Tuple[Tuple[str, int], ...]
    attachments: Tuple[Attachment, ...] = ()
    deployments: Tuple[Deployment, ...] = ()
    initializer: Optional[Callable[['TestEnvironment'], InitializationParameters]] = None
    initializer_sender: str = 'timelock'
    primary: str = 'community_mine'


@dataclass
class TestEnvironment:
    """Accounts and contract handles of one test case, rebuilt per test"""
    __test__ = False  # not a pytest test class

    fork: Any
    variant: SystemVariant
    provisioner: AccountProvisioner
    deployer: ContractDeployer
    accounts: Dict[str, NamedAccount] = field(default_factory=dict)
    contracts: Dict[str, ContractHandle] = field(default_factory=dict)
    init_params: Optional[InitializationParameters] = None

    @property
    def initialized(self) -> bool:
        return self.init_params is not None

    @property
    def w3(self):
        return self.fork.w3

    def address(self, role: str) -> str:
        try:
            return self.accounts[role].address
        except KeyError:
            raise ConfigurationError(f"Variant '{self.variant.name}' has no account role '{role}'") from None

    def contract(self, name: str) -> ContractHandle:
        try:
            return self.contracts[name]
        except KeyError:
            raise ConfigurationError(f"Variant '{self.variant.name}' has no contract '{name}'") from None

    def resolve(self, arg: Any) -> Any:
        if isinstance(arg, Ref):
            return self.contract(arg.name).address
        if isinstance(arg, Role):
            return self.address(arg.name)
        return arg

    def summary(self) -> Dict[str, Any]:
        return {
            'variant': self.variant.name,
            'initialized': self.initialized,
            'accounts': {role: acct.address for role, acct in self.accounts.items()},
            'contracts': {name: handle.address for name, handle in self.contracts.items()},
        }


def default_initialization(env: TestEnvironment) -> InitializationParameters:
    """Initializer arguments used by the full-system environment"""
    return InitializationParameters(
        weth=addresses.WETH,
        magic=env.contract('magic').address,
        a_magic=env.contract('a_magic').address,
        atlas_mine=env.contract('atlas_mine').address,
        a_magic_staking=env.contract('a_magic_staking').address,
        treasury=env.address('treasury'),
        reward_splitter=env.address('splitter'),
    )


# One dev account per role; user1..user3 each get their own account
COMMUNITY_ROLES = (
    ('deployer', 0),
    ('treasury', 1),
    ('timelock', 2),
    ('splitter', 3),
    ('user1', 4),
    ('user2', 5),
    ('user3', 6),
)

PROTOCOL_ATTACHMENTS = (
    Attachment('magic', abis.ERC20_ABI, addresses.MAGIC, 'Magic Token'),
    Attachment('atlas_mine', abis.ATLAS_MINE_ABI, addresses.ATLAS_MINE, 'Atlas Mine'),
)

HELLO_WORLD = SystemVariant(
    name='hello_world',
    roles=(('deployer', 0), ('address1', 1)),
    deployments=(
        Deployment('hello_world', 'HelloWorld', sender='deployer', label='Hello World'),
    ),
)

STAKING = SystemVariant(
    name='staking',
    roles=COMMUNITY_ROLES,
    attachments=PROTOCOL_ATTACHMENTS,
    deployments=(
        Deployment('community_mine', 'CommunityMine', sender='timelock', label='Community Mine'),
        Deployment('a_magic_staking', 'AMagicStaking', sender='timelock', label='aMagic Staking',
                   args=(Ref('magic'), Ref('community_mine'))),
    ),
)

FULL_SYSTEM = SystemVariant(
    name='full_system',
    roles=COMMUNITY_ROLES,
    attachments=PROTOCOL_ATTACHMENTS,
    deployments=(
        Deployment('a_magic', 'AMagicToken', sender='timelock', label='aMagic Token'),
        Deployment('community_mine', 'CommunityMine', sender='timelock', label='Community Mine'),
        Deployment('a_magic_staking', 'AMagicStaking', sender='timelock', label='aMagic Staking',
                   args=(Ref('magic'), Ref('community_mine'))),
    ),
    initializer=default_initialization,
)

VARIANTS = {v.name: v for v in (HELLO_WORLD, STAKING, FULL_SYSTEM)}


def get_variant(name: str) -> SystemVariant:
    try:
        return VARIANTS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown variant '{name}' (available: {', '.join(sorted(VARIANTS))})"
        ) from None


def wire_system(env: TestEnvironment, params: InitializationParameters,
                sender: Optional[str] = None) -> dict:
    """
    Call initialize on the primary contract from the privileged account

    A second call on the same instance reverts with
    "Initializable: contract is already initialized".

    Raises:
        ContractLogicError: initializer reverted
        WiringError: transaction mined with status 0
    """
    sender_role = sender or env.variant.initializer_sender
    handle = env.contract(env.variant.primary)

    print(f"✓ Initializing {handle.name} from {env.provisioner.label(env.address(sender_role))}...")
    receipt = handle.transact('initialize', *params.as_args(), sender=env.address(sender_role))
    if receipt['status'] != 1:
        raise WiringError(f"{handle.name}.initialize failed with status: {receipt['status']}")

    env.init_params = params
    return receipt


def build_environment(fork, variant: SystemVariant, artifacts: ArtifactRepository,
                      block_number: Optional[int] = None) -> TestEnvironment:
    """Single bootstrap attempt; raises on any failure"""
    fork.reset_fork(block_number)

    provisioner = AccountProvisioner(fork)
    env = TestEnvironment(
        fork=fork,
        variant=variant,
        provisioner=provisioner,
        deployer=ContractDeployer(fork.w3, artifacts),
    )

    for role, index in variant.roles:
        account = provisioner.named(index, role)
        fork.set_balance(account.address, DEV_ACCOUNT_BALANCE)
        env.accounts[role] = account

    for attachment in variant.attachments:
        env.contracts[attachment.name] = env.deployer.attach(
            attachment.name, attachment.abi, attachment.address
        )
        provisioner.tag(attachment.address, attachment.label)

    for deployment in variant.deployments:
        args = tuple(env.resolve(arg) for arg in deployment.args)
        handle = env.deployer.deploy(deployment.artifact, env.address(deployment.sender), args)
        env.contracts[deployment.name] = handle
        provisioner.tag(handle.address, deployment.label)

    if variant.initializer is not None:
        wire_system(env, variant.initializer(env))

    return env


def prepare_for_tests(fork, variant: SystemVariant = FULL_SYSTEM, block_number: Optional[int] = None,
                      policy: Optional[RetryPolicy] = None,
                      artifacts: Optional[ArtifactRepository] = None) -> TestEnvironment:
    """
    Bootstrap a fresh TestEnvironment under the retry policy

    Args:
        fork: Started ForkEnvironment
        variant: Layout to build
        block_number: Fork height, defaults to the pinned one
        policy: Retry policy, defaults to RetryPolicy()
        artifacts: Artifact repository, defaults to the project root

    Returns:
        TestEnvironment
    """
    if artifacts is None:
        artifacts = ArtifactRepository(fork.config.project_root)

    env = run_with_retry(
        lambda: build_environment(fork, variant, artifacts, block_number),
        policy,
    )
    print(f"✅ Environment '{variant.name}' ready "
          f"({len(env.accounts)} accounts, {len(env.contracts)} contracts)\n")
    return env
