"""
Harness Errors

Exception hierarchy for the fork harness and the typed revert kinds that the
assertion layer maps on-chain reason strings onto.
"""

import re
from enum import Enum
from typing import Optional


class HarnessError(Exception):
    """Base class for all harness errors"""


class ConfigurationError(HarnessError):
    """Missing credentials, unknown network or invalid settings (never retried)"""


class ForkError(HarnessError):
    """Local node could not be started, reset or reached (retryable)"""


class ArtifactNotFoundError(HarnessError):
    """No compiled artifact and no Solidity source for a contract name"""


class DeploymentError(HarnessError):
    """Deployment transaction reverted or was mined with status 0"""

    def __init__(self, artifact_name: str, message: str, tx_hash: Optional[str] = None):
        self.artifact_name = artifact_name
        self.tx_hash = tx_hash
        super().__init__(f"{artifact_name}: {message}")


class RetryExhaustedError(HarnessError):
    """Bounded retry gave up"""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Giving up after {attempts} attempt(s): "
            f"{type(last_error).__name__}: {last_error}"
        )


class WiringError(HarnessError):
    """Initializer call of the primary contract was mined with status 0"""


class RevertExpectationError(AssertionError):
    """An expected revert did not happen, or happened for another reason"""


class RevertKind(Enum):
    ALREADY_INITIALIZED = "already_initialized"
    NOT_OWNER = "not_owner"
    ZERO_ADDRESS = "zero_address"
    VALUE_OUT_OF_RANGE = "value_out_of_range"
    OUT_OF_BOUNDS = "out_of_bounds"
    UNKNOWN = "unknown"


# Exact reason strings emitted by the contracts under test
REVERT_REASONS = {
    RevertKind.ALREADY_INITIALIZED: "Initializable: contract is already initialized",
    RevertKind.NOT_OWNER: "Ownable: caller is not the owner",
    RevertKind.ZERO_ADDRESS: "Cannot set address zero",
    RevertKind.VALUE_OUT_OF_RANGE: "Value greater than 10000, 100%",
}

# Solidity panic codes: 0x21 enum conversion, 0x32 array index
_OUT_OF_BOUNDS_PANICS = {0x21, 0x32}
_PANIC_RE = re.compile(r"panic(?: error)?(?: code)?[:\s]*(0x[0-9a-fA-F]+)", re.IGNORECASE)


def classify_revert(reason: Optional[str]) -> RevertKind:
    """
    Map a revert reason onto a RevertKind

    Args:
        reason: Decoded revert reason or panic message (may be None)

    Returns:
        Matching kind, RevertKind.UNKNOWN when nothing matches
    """
    if not reason:
        return RevertKind.UNKNOWN

    for kind, literal in REVERT_REASONS.items():
        if literal in reason:
            return kind

    panic = _PANIC_RE.search(reason)
    if panic and int(panic.group(1), 16) in _OUT_OF_BOUNDS_PANICS:
        return RevertKind.OUT_OF_BOUNDS
    if "out of bounds" in reason.lower() or "out-of-bounds" in reason.lower():
        return RevertKind.OUT_OF_BOUNDS

    return RevertKind.UNKNOWN
