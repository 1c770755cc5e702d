"""
Assertion Layer

Read-back checks against contract getters and expected-revert checks. Used
inside test bodies only; mismatches fail the test and are never retried.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from eth_utils import is_address, to_checksum_address
from web3.exceptions import ContractLogicError

from .errors import RevertExpectationError, RevertKind, classify_revert

_REVERT_PREFIX_RE = re.compile(r"^(?:VM Exception while processing transaction: )?(?:execution )?reverted(?: with reason string)?[:\s]*", re.IGNORECASE)


@dataclass(frozen=True)
class RevertInfo:
    reason: Optional[str]
    kind: RevertKind


def _strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    return text


def revert_reason(exc: BaseException) -> Optional[str]:
    """
    Extract the revert reason from a web3 error

    Handles ContractLogicError/ContractPanicError as well as raw JSON-RPC
    error payloads raised as ValueError({'code': ..., 'message': ...}).
    """
    message = getattr(exc, 'message', None)
    if not message and exc.args:
        first = exc.args[0]
        if isinstance(first, dict):
            message = first.get('message')
        elif isinstance(first, str):
            message = first
    if not message:
        return None
    return _strip_quotes(_REVERT_PREFIX_RE.sub('', str(message)).strip()) or None


def revert_info(exc: BaseException) -> RevertInfo:
    reason = revert_reason(exc)
    return RevertInfo(reason=reason, kind=classify_revert(reason))


def _is_revert(exc: BaseException) -> bool:
    if isinstance(exc, ContractLogicError):
        return True
    # Raw RPC error payload from older providers
    return isinstance(exc, ValueError) and bool(exc.args) and isinstance(exc.args[0], dict)


def expect_revert(call: Union[Callable[[], Any], Any], kind: Optional[RevertKind] = None,
                  reason: Optional[str] = None, sender: Optional[str] = None) -> RevertInfo:
    """
    Assert that `call` reverts

    Args:
        call: Zero-argument callable, or a bound contract function which is
              sent with transact({'from': sender})
        kind: Expected RevertKind
        reason: Expected reason string, matched exactly
        sender: Sender for contract functions

    Returns:
        RevertInfo of the observed revert

    Raises:
        RevertExpectationError: no revert, or a different reason/kind
    """
    if hasattr(call, 'transact'):
        if sender is None:
            raise ValueError("sender is required when passing a contract function")
        contract_fn = call

        def call():
            return contract_fn.transact({'from': to_checksum_address(sender)})

    try:
        result = call()
    except Exception as e:
        if not _is_revert(e):
            raise
        info = revert_info(e)
    else:
        status = result.get('status') if isinstance(result, Mapping) else None
        if status != 0:
            raise RevertExpectationError(
                f"Expected revert ({_describe(kind, reason)}) but the call succeeded"
            )
        info = RevertInfo(reason=None, kind=RevertKind.UNKNOWN)

    if reason is not None and info.reason != reason:
        raise RevertExpectationError(
            f"Revert reason mismatch\n  expected: {reason!r}\n  actual:   {info.reason!r}"
        )
    if kind is not None and info.kind != kind:
        raise RevertExpectationError(
            f"Revert kind mismatch\n  expected: {kind.name}\n  actual:   {info.kind.name} "
            f"(reason: {info.reason!r})"
        )
    return info


def _describe(kind: Optional[RevertKind], reason: Optional[str]) -> str:
    parts = []
    if kind is not None:
        parts.append(kind.name)
    if reason is not None:
        parts.append(repr(reason))
    return ', '.join(parts) or 'any reason'


def values_equal(expected: Any, actual: Any) -> bool:
    """Addresses compare checksum-normalised, everything else with =="""
    if isinstance(expected, str) and isinstance(actual, str) and is_address(expected) and is_address(actual):
        return to_checksum_address(expected) == to_checksum_address(actual)
    if isinstance(expected, bool) or isinstance(actual, bool):
        return expected is actual
    return expected == actual


def assert_getters(handle, expected: Dict[str, Any]):
    """
    Call each zero-argument getter on `handle` and compare with `expected`

    All mismatches are reported together.

    Raises:
        AssertionError: one or more getters differ
    """
    mismatches = []
    for getter, want in expected.items():
        got = getattr(handle.functions, getter)().call()
        if not values_equal(want, got):
            mismatches.append(f"  {getter}(): expected {want!r}, got {got!r}")

    if mismatches:
        raise AssertionError(
            f"{handle.name} state mismatch ({len(mismatches)}/{len(expected)}):\n" + '\n'.join(mismatches)
        )
