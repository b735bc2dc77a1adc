"""Run and failure bookkeeping."""

from agent_pulse.ledger.failures import FailureLedger, FailureRecord, FailureStage
from agent_pulse.ledger.runs import (
    RunLedger,
    RunRecord,
    RunStatus,
    TriggerSource,
    determine_run_status,
)

__all__ = [
    "FailureLedger",
    "FailureRecord",
    "FailureStage",
    "RunLedger",
    "RunRecord",
    "RunStatus",
    "TriggerSource",
    "determine_run_status",
]
