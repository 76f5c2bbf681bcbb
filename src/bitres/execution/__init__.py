"""Execution layer -- approvals, multi-step flows and user actions."""

from bitres.execution.actions import ProtocolActions
from bitres.execution.approval import ApprovalExecutionOrchestrator
from bitres.execution.sequencer import MultiStepTransactionSequencer, transition
from bitres.execution.watchdog import PendingWatchdog

__all__ = [
    "ApprovalExecutionOrchestrator",
    "MultiStepTransactionSequencer",
    "PendingWatchdog",
    "ProtocolActions",
    "transition",
]
