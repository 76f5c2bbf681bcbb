"""Multi-step transaction sequencing as an explicit state machine.

A flow is an ordered list of ledger writes where step k+1 may only be
submitted after step k's receipt confirms successfully. The state is a
TransactionStep value and every change goes through the pure transition()
function, so the machine can be tested without a ledger.

State graph (N = total steps):

    Idle --Started--> AwaitingStep(1) --Confirmed(1)--> AwaitingStep(2) ... --Confirmed(N)--> Done
    AwaitingStep(k) --StepFailed(k)--> Failed(k)  --Retry--> AwaitingStep(k)
    Done / Failed --Reset--> Idle

Confirmations or failures for any step other than the current one are
ignored. Nothing is rolled back: a Failed(k) flow leaves steps 1..k-1
confirmed on the ledger, and retry() resumes at k without resubmitting them.
"""

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from bitres.exceptions import (
    LedgerCallFailed,
    SequenceStepFailed,
    classify_ledger_error,
)
from bitres.execution.watchdog import PendingWatchdog
from bitres.ledger.client import LedgerClient
from bitres.logging import flow_context, get_logger
from bitres.models import PoolInfo, TxReceipt
from bitres.quoting.amm import swap_amounts_out

logger = get_logger(__name__)


# -- states ----------------------------------------------------------------


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class AwaitingApproval:
    pass


@dataclass(frozen=True)
class AwaitingStep:
    """Step ``index`` (1-based) is being submitted or awaiting its receipt."""

    index: int
    tx_hash: str | None = None


@dataclass(frozen=True)
class Done:
    pass


@dataclass(frozen=True)
class Failed:
    """Step ``step`` failed; 0 means the approval before step 1.

    ``tx_hash`` is set when the step was already submitted and its outcome
    is unknown (receipt wait failed). Retry waits on it before resubmitting.
    """

    step: int
    reason: str
    tx_hash: str | None = None


TransactionStep = Idle | AwaitingApproval | AwaitingStep | Done | Failed


# -- events ----------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalRequested:
    pass


@dataclass(frozen=True)
class Started:
    pass


@dataclass(frozen=True)
class Submitted:
    step: int
    tx_hash: str


@dataclass(frozen=True)
class Confirmed:
    step: int


@dataclass(frozen=True)
class StepFailed:
    step: int
    reason: str
    reverted: bool = False


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class Reset:
    pass


SequenceEvent = (
    ApprovalRequested | Started | Submitted | Confirmed | StepFailed | Retry | Reset
)


def transition(
    state: TransactionStep, event: SequenceEvent, total_steps: int
) -> TransactionStep:
    """Return the state after ``event``. Pure; unknown combinations are no-ops."""
    if isinstance(event, Reset):
        if isinstance(state, (Done, Failed, AwaitingApproval)):
            return Idle()
        return state

    if isinstance(state, Idle):
        if isinstance(event, ApprovalRequested):
            return AwaitingApproval()
        if isinstance(event, Started):
            return AwaitingStep(1) if total_steps > 0 else Done()
        return state

    if isinstance(state, AwaitingApproval):
        if isinstance(event, Started):
            return AwaitingStep(1) if total_steps > 0 else Done()
        if isinstance(event, StepFailed) and event.step == 0:
            return Failed(0, event.reason)
        return state

    if isinstance(state, AwaitingStep):
        if getattr(event, "step", None) != state.index:
            return state
        if isinstance(event, Submitted):
            return AwaitingStep(state.index, event.tx_hash)
        if isinstance(event, Confirmed):
            if state.index >= total_steps:
                return Done()
            return AwaitingStep(state.index + 1)
        if isinstance(event, StepFailed):
            pending = None if event.reverted else state.tx_hash
            return Failed(state.index, event.reason, pending)
        return state

    if isinstance(state, Failed):
        if isinstance(event, Retry) and state.step >= 1:
            return AwaitingStep(state.step, state.tx_hash)
        return state

    return state


# -- flows -----------------------------------------------------------------


@dataclass(frozen=True)
class FlowStep:
    """One ledger write in a flow; ``submit`` returns the transaction hash."""

    label: str
    submit: Callable[[], Awaitable[str]]


def add_liquidity_flow(
    ledger: LedgerClient, pool: PoolInfo, amount0: int, amount1: int, to: str
) -> list[FlowStep]:
    """transfer(token0 -> pair), transfer(token1 -> pair), mint(to)."""
    return [
        FlowStep(
            f"transfer_{pool.token0.symbol}",
            functools.partial(ledger.transfer, pool.token0.address, pool.address, amount0),
        ),
        FlowStep(
            f"transfer_{pool.token1.symbol}",
            functools.partial(ledger.transfer, pool.token1.address, pool.address, amount1),
        ),
        FlowStep("mint_lp", functools.partial(ledger.pair_mint, pool.address, to)),
    ]


def remove_liquidity_flow(
    ledger: LedgerClient, pool: PoolInfo, lp_amount: int, to: str
) -> list[FlowStep]:
    """transfer(LP -> pair), burn(to)."""
    return [
        FlowStep(
            "transfer_lp",
            functools.partial(ledger.transfer, pool.address, pool.address, lp_amount),
        ),
        FlowStep("burn_lp", functools.partial(ledger.pair_burn, pool.address, to)),
    ]


def swap_flow(
    ledger: LedgerClient,
    pool: PoolInfo,
    token_in: str,
    amount_in: int,
    amount_out: int,
    to: str,
) -> list[FlowStep]:
    """transfer(token_in -> pair), swap(amount0Out, amount1Out, to)."""
    source = pool.token0 if token_in == pool.token0.symbol else pool.token1
    amount0_out, amount1_out = swap_amounts_out(pool, token_in, amount_out)
    return [
        FlowStep(
            f"transfer_{source.symbol}",
            functools.partial(ledger.transfer, source.address, pool.address, amount_in),
        ),
        FlowStep(
            "swap",
            functools.partial(ledger.pair_swap, pool.address, amount0_out, amount1_out, to),
        ),
    ]


# -- sequencer -------------------------------------------------------------


StateObserver = Callable[[TransactionStep], None]


class MultiStepTransactionSequencer:
    """Drives a flow of dependent ledger writes through the state machine.

    One instance owns one flow. Steps run strictly in order and each waits
    for a successful receipt before the next is submitted.

    Args:
        ledger: Ledger client used to wait for receipts.
        steps: Ordered flow steps.
        name: Flow name for logs.
        watchdog: Optional stale-pending detector around submits and waits.
        on_refresh: Called once when the flow reaches Done.
        receipt_timeout: Per-receipt timeout; ledger default when None.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        steps: list[FlowStep],
        name: str = "flow",
        watchdog: PendingWatchdog | None = None,
        on_refresh: Callable[[], None] | None = None,
        receipt_timeout: float | None = None,
    ) -> None:
        self._ledger = ledger
        self._steps = list(steps)
        self._name = name
        self._watchdog = watchdog
        self._on_refresh = on_refresh
        self._receipt_timeout = receipt_timeout
        self._state: TransactionStep = Idle()
        self._observers: list[StateObserver] = []
        self._refreshed = False
        self._receipts: dict[int, TxReceipt] = {}

    @property
    def state(self) -> TransactionStep:
        return self._state

    @property
    def total_steps(self) -> int:
        return len(self._steps)

    @property
    def receipts(self) -> list[TxReceipt]:
        """Confirmed receipts in step order."""
        return [self._receipts[k] for k in sorted(self._receipts)]

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        """Register a state observer; returns an unsubscribe function."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def dispatch(self, event: SequenceEvent) -> TransactionStep:
        """Apply an event, notify observers on change, fire refresh on Done."""
        new_state = transition(self._state, event, self.total_steps)
        if new_state == self._state:
            return self._state

        self._state = new_state
        logger.debug("sequence_state_changed", flow=self._name, state=repr(new_state))
        for observer in list(self._observers):
            try:
                observer(new_state)
            except Exception:
                logger.warning("sequence_observer_failed", flow=self._name, exc_info=True)

        if isinstance(new_state, Done) and not self._refreshed:
            self._refreshed = True
            if self._on_refresh is not None:
                try:
                    self._on_refresh()
                except Exception:
                    logger.warning("sequence_refresh_failed", flow=self._name, exc_info=True)
        return self._state

    async def start(self) -> list[TxReceipt]:
        """Run the flow from step 1.

        Returns:
            The confirmed receipts, one per step.

        Raises:
            RuntimeError: If the sequencer is not Idle.
            SequenceStepFailed: If any step fails; ``.step`` is 1-based.
        """
        if not isinstance(self._state, (Idle, AwaitingApproval)):
            raise RuntimeError(f"Flow {self._name} already started: {self._state!r}")
        logger.info("sequence_started", flow=self._name, total_steps=self.total_steps)
        self.dispatch(Started())
        return await self._run()

    async def retry(self) -> list[TxReceipt]:
        """Resume a failed flow at the failed step.

        A step whose transaction was already submitted is not resubmitted
        until its receipt shows a revert.

        Raises:
            RuntimeError: If the flow is not in a retryable Failed state.
            SequenceStepFailed: If a step fails again.
        """
        state = self._state
        if not isinstance(state, Failed) or state.step < 1:
            raise RuntimeError(f"Flow {self._name} is not retryable: {state!r}")
        logger.info("sequence_retry", flow=self._name, step=state.step)
        self.dispatch(Retry())
        return await self._run()

    def reset(self) -> None:
        """Dismiss a finished or failed flow, returning to Idle."""
        self.dispatch(Reset())
        if isinstance(self._state, Idle):
            self._refreshed = False
            self._receipts.clear()

    async def _watch(self, awaitable: Awaitable, label: str):
        if self._watchdog is None:
            return await awaitable
        return await self._watchdog.watch(awaitable, label)

    async def _run(self) -> list[TxReceipt]:
        with flow_context(self._name):
            return await self._run_steps()

    async def _run_steps(self) -> list[TxReceipt]:
        while isinstance(self._state, AwaitingStep):
            index = self._state.index
            step = self._steps[index - 1]
            tx_hash = self._state.tx_hash
            try:
                receipt = None
                if tx_hash is not None:
                    # Submitted by an earlier attempt; settle it before resubmitting
                    receipt = await self._confirm(tx_hash, step)
                    if not receipt.success:
                        logger.warning(
                            "sequence_pending_reverted",
                            flow=self._name,
                            step=index,
                            label=step.label,
                            tx_hash=tx_hash,
                        )
                        receipt = None
                if receipt is None:
                    tx_hash = await self._watch(
                        step.submit(), f"{self._name}:{step.label}:sign"
                    )
                    self.dispatch(Submitted(index, tx_hash))
                    receipt = await self._confirm(tx_hash, step)
            except Exception as exc:
                error = classify_ledger_error(exc)
                self._fail(index, step, error)
                raise SequenceStepFailed(index, error, step.label) from exc

            if not receipt.success:
                error = LedgerCallFailed(f"Transaction {tx_hash} reverted")
                self._fail(index, step, error, reverted=True)
                raise SequenceStepFailed(index, error, step.label)

            self._receipts[index] = receipt
            logger.info(
                "sequence_step_confirmed",
                flow=self._name,
                step=index,
                label=step.label,
                tx_hash=tx_hash,
            )
            self.dispatch(Confirmed(index))

        logger.info("sequence_done", flow=self._name)
        return self.receipts

    async def _confirm(self, tx_hash: str, step: FlowStep) -> TxReceipt:
        return await self._watch(
            self._ledger.wait_for_receipt(tx_hash, self._receipt_timeout),
            f"{self._name}:{step.label}:confirm",
        )

    def _fail(
        self, index: int, step: FlowStep, error: Exception, reverted: bool = False
    ) -> None:
        logger.warning(
            "sequence_step_failed",
            flow=self._name,
            step=index,
            label=step.label,
            error=str(error),
        )
        self.dispatch(StepFailed(index, str(error), reverted))
