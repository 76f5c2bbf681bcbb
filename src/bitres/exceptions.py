"""Custom exceptions for the Bitres client core.

Quoting functions never raise; everything here is raised by the execution
layer (pre-flight checks, approval orchestration, step sequencing) and is
scoped to a single user action.
"""


class BitresError(Exception):
    """Base exception for all client-core errors."""


class InsufficientBalance(BitresError):
    """Raised when the wallet balance is below the amount an action needs."""


class InsufficientAllowance(BitresError):
    """Raised when a spending allowance could not be obtained."""


class PriceNotReady(BitresError):
    """Raised when a price feed is zero or not yet populated."""


class PriceDeviationRejected(BitresError):
    """Raised when two price sources disagree by more than the tolerance."""


class RateLimited(BitresError):
    """Raised when the per-user cooldown window for an operation is active."""

    def __init__(self, message: str, remaining_seconds: int = 0) -> None:
        super().__init__(message)
        self.remaining_seconds = remaining_seconds


class GasEstimationFailed(BitresError):
    """Raised when the ledger refuses to estimate gas (the call would revert)."""


class UserRejectedSignature(BitresError):
    """Raised when the signer declines a transaction."""


class LedgerCallFailed(BitresError):
    """Raised on RPC/network errors and reverted transactions."""


class DuplicateRequest(BitresError):
    """Raised when an identical request is already in flight."""


class SequenceStepFailed(BitresError):
    """Raised when step ``step`` (1-based) of a multi-call flow fails.

    Steps before ``step`` were confirmed on the ledger, so the assets they
    moved may already sit at the target contract.
    """

    def __init__(self, step: int, cause: BaseException, label: str = "") -> None:
        self.step = step
        self.cause = cause
        self.label = label
        name = f" ({label})" if label else ""
        super().__init__(f"Step {step}{name} failed: {cause}")


# Ordered: first match wins. Message fragments follow the revert strings and
# wallet error texts the protocol and common signers produce.
_MESSAGE_RULES: list[tuple[tuple[str, ...], type[BitresError]]] = [
    (("user rejected", "user denied", "rejected the request"), UserRejectedSignature),
    (("too frequent", "cooldown"), RateLimited),
    (("price mismatch",), PriceDeviationRejected),
    (("gas required exceeds",), GasEstimationFailed),
    (("allowance", "not approved"), InsufficientAllowance),
    (("insufficient", "exceeds balance"), InsufficientBalance),
]


def classify_ledger_error(exc: BaseException) -> BitresError:
    """Map a raw web3/RPC exception onto the client error taxonomy.

    Already-classified errors are returned unchanged. The original exception
    is attached as ``__cause__`` so callers can ``raise result from exc``
    without losing the traceback.
    """
    if isinstance(exc, BitresError):
        return exc

    message = str(exc)
    lowered = message.lower()

    for fragments, error_type in _MESSAGE_RULES:
        if any(fragment in lowered for fragment in fragments):
            error = error_type(message)
            break
    else:
        if "gas" in lowered and "fail" in lowered:
            error = GasEstimationFailed(message)
        else:
            error = LedgerCallFailed(message or type(exc).__name__)

    error.__cause__ = exc
    return error
