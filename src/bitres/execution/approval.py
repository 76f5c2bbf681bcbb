"""Approve-then-act execution for token-spending actions.

CRITICAL: the action must never be submitted while the spender's allowance
is below the amount, and must never be submitted twice for one request.
The approval receipt is awaited before the action is called.
"""

from collections.abc import Awaitable, Callable
from decimal import Decimal

from bitres.config import LedgerSettings
from bitres.exceptions import (
    DuplicateRequest,
    InsufficientAllowance,
    LedgerCallFailed,
    UserRejectedSignature,
    classify_ledger_error,
)
from bitres.execution.sequencer import (
    ApprovalRequested,
    Confirmed,
    Idle,
    SequenceEvent,
    StateObserver,
    Started,
    StepFailed,
    Submitted,
    TransactionStep,
    transition,
)
from bitres.execution.watchdog import PendingWatchdog
from bitres.ledger.client import LedgerClient
from bitres.logging import flow_context, get_logger
from bitres.models import TxReceipt
from bitres.units import to_base_units

logger = get_logger(__name__)

Action = Callable[[], Awaitable[str]]


class _ActionState:
    """Tracks one request's TransactionStep and reports changes."""

    def __init__(self, on_state: StateObserver | None) -> None:
        self.state: TransactionStep = Idle()
        self._on_state = on_state

    def apply(self, event: SequenceEvent) -> None:
        new_state = transition(self.state, event, total_steps=1)
        if new_state == self.state:
            return
        self.state = new_state
        if self._on_state is None:
            return
        try:
            self._on_state(new_state)
        except Exception:
            logger.warning("approval_state_observer_failed", exc_info=True)


class ApprovalExecutionOrchestrator:
    """Ensures allowance, then runs a spending action exactly once.

    Args:
        ledger: Ledger client for allowance reads, approvals and receipts.
        settings: Receipt timeout and stale-pending threshold.
        watchdog: Stale detector; one is built from settings when omitted.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        settings: LedgerSettings | None = None,
        watchdog: PendingWatchdog | None = None,
    ) -> None:
        self._ledger = ledger
        self._settings = settings or LedgerSettings()
        self._watchdog = watchdog or PendingWatchdog(self._settings.stale_after_seconds)
        self._in_flight: set[str] = set()

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    async def needs_approval(
        self,
        owner: str,
        token: str,
        spender: str,
        amount: Decimal | str | int,
        decimals: int,
    ) -> bool:
        """True if the current allowance is below ``amount``. Read-only."""
        required = to_base_units(amount, decimals)
        current = await self._ledger.allowance(token, owner, spender)
        return current < required

    async def execute(
        self,
        owner: str,
        token: str,
        spender: str,
        amount: Decimal | str | int,
        decimals: int,
        action: Action,
        request_key: str | None = None,
        label: str = "action",
        on_state: StateObserver | None = None,
    ) -> TxReceipt:
        """Approve ``spender`` if needed, then submit ``action`` and await it.

        Args:
            owner: Address whose tokens are spent.
            token: ERC20 token address.
            spender: Contract that pulls the tokens.
            amount: Human amount the action spends.
            decimals: Token decimals used to scale ``amount``.
            action: Submits the spending transaction, returning its hash.
            request_key: Identifies the request for duplicate protection;
                derived from the other arguments when omitted.
            label: Action name for logs.
            on_state: Receives each TransactionStep change.

        Returns:
            The successful receipt of the action.

        Raises:
            DuplicateRequest: If the same request is already in flight.
            UserRejectedSignature: If the approval signature is declined.
            InsufficientAllowance: If the approval fails or reverts.
            BitresError: Classified error if the action fails or reverts.
        """
        required = to_base_units(amount, decimals)
        key = request_key or f"{owner}:{token}:{spender}:{label}:{required}".lower()
        if key in self._in_flight:
            raise DuplicateRequest(f"Request {key} is already in flight")

        self._in_flight.add(key)
        tracker = _ActionState(on_state)
        try:
            with flow_context(label, request_key=key):
                await self._ensure_allowance(owner, token, spender, required, label, tracker)
                return await self._run_action(action, label, tracker)
        finally:
            self._in_flight.discard(key)

    async def _ensure_allowance(
        self,
        owner: str,
        token: str,
        spender: str,
        required: int,
        label: str,
        tracker: _ActionState,
    ) -> None:
        current = await self._ledger.allowance(token, owner, spender)
        if current >= required:
            logger.debug("allowance_sufficient", action=label, allowance=str(current))
            return

        logger.info(
            "approval_required",
            action=label,
            token=token,
            spender=spender,
            allowance=str(current),
            required=str(required),
        )
        tracker.apply(ApprovalRequested())
        try:
            tx_hash = await self._watchdog.watch(
                self._ledger.approve(token, spender, required), f"{label}:approve:sign"
            )
            receipt = await self._watchdog.watch(
                self._ledger.wait_for_receipt(
                    tx_hash, self._settings.receipt_timeout_seconds
                ),
                f"{label}:approve:confirm",
            )
        except Exception as exc:
            error = classify_ledger_error(exc)
            tracker.apply(StepFailed(0, str(error)))
            logger.warning("approval_failed", action=label, error=str(error))
            if isinstance(error, UserRejectedSignature):
                if error is exc:
                    raise
                raise error from exc
            raise InsufficientAllowance(f"Approval for {label} failed: {error}") from exc

        if not receipt.success:
            tracker.apply(StepFailed(0, "approval reverted"))
            logger.warning("approval_reverted", action=label, tx_hash=tx_hash)
            raise InsufficientAllowance(f"Approval transaction {tx_hash} reverted")

        logger.info("approval_confirmed", action=label, tx_hash=tx_hash)

    async def _run_action(
        self, action: Action, label: str, tracker: _ActionState
    ) -> TxReceipt:
        tracker.apply(Started())
        try:
            tx_hash = await self._watchdog.watch(action(), f"{label}:sign")
            tracker.apply(Submitted(1, tx_hash))
            receipt = await self._watchdog.watch(
                self._ledger.wait_for_receipt(
                    tx_hash, self._settings.receipt_timeout_seconds
                ),
                f"{label}:confirm",
            )
        except Exception as exc:
            error = classify_ledger_error(exc)
            tracker.apply(StepFailed(1, str(error)))
            logger.warning("action_failed", action=label, error=str(error))
            if error is exc:
                raise
            raise error from exc

        if not receipt.success:
            tracker.apply(StepFailed(1, "reverted"))
            logger.warning("action_reverted", action=label, tx_hash=tx_hash)
            raise LedgerCallFailed(f"{label} transaction {tx_hash} reverted")

        tracker.apply(Confirmed(1))
        logger.info("action_confirmed", action=label, tx_hash=tx_hash)
        return receipt
