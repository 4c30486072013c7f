"""Reconciliation engine: the single-flight alert cycle and its periodic trigger."""

from alertcpl.engine.reconciliation import ReconciliationLoop, build_reconciliation_loop
from alertcpl.engine.scheduler import EngineScheduler
from alertcpl.engine.schemas import (
    AccountResult,
    AlertOutcome,
    CycleResult,
    CycleStatus,
    RunState,
    SampleResult,
    UnitStatus,
)

__all__ = [
    "AccountResult",
    "AlertOutcome",
    "CycleResult",
    "CycleStatus",
    "EngineScheduler",
    "ReconciliationLoop",
    "RunState",
    "SampleResult",
    "UnitStatus",
    "build_reconciliation_loop",
]
