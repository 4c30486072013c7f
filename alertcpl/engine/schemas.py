"""Run-state and result types for the reconciliation engine.

A cycle produces a ``CycleResult`` that aggregates one ``AccountResult``
per active account, each of which aggregates one ``SampleResult`` per ad.
Every unit carries its own status so one bad ad or account never hides
the outcome of the rest.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class RunState(str, Enum):
    """Engine run state. Transitions: IDLE -> RUNNING -> IDLE."""

    IDLE = "idle"
    RUNNING = "running"


class CycleStatus(str, Enum):
    COMPLETED = "completed"
    NO_ACCOUNTS = "no_accounts"
    ALREADY_RUNNING = "already_running"
    FAILED = "failed"


class UnitStatus(str, Enum):
    """Outcome of one account or one sample."""

    OK = "ok"
    SKIPPED = "skipped"
    ERROR = "error"


class AlertOutcome(str, Enum):
    """What happened to an alert decision in the delivery pipeline."""

    SUPPRESSED = "suppressed"
    DEDUP_FAILED = "dedup_failed"
    LOG_FAILED = "log_failed"
    NO_DESTINATION = "no_destination"
    SEND_FAILED = "send_failed"
    NOTIFIED = "notified"


@dataclass
class SampleResult:
    """Outcome for one ad within an account."""

    ad_id: str
    status: UnitStatus
    history_written: bool = False
    alert_kind: str | None = None
    alert_outcome: AlertOutcome | None = None
    alert_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ad_id": self.ad_id,
            "status": self.status.value,
            "history_written": self.history_written,
            "alert_kind": self.alert_kind,
            "alert_outcome": self.alert_outcome.value if self.alert_outcome else None,
            "alert_id": self.alert_id,
            "error": self.error,
        }


@dataclass
class AccountResult:
    """Outcome for one account: its fetch plus every sample it produced."""

    account_id: str
    status: UnitStatus
    samples: list[SampleResult] = field(default_factory=list)
    error: str | None = None

    @property
    def history_written(self) -> int:
        return sum(1 for s in self.samples if s.history_written)

    def alert_outcomes(self) -> Counter:
        return Counter(s.alert_outcome.value for s in self.samples if s.alert_outcome)

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "status": self.status.value,
            "samples": len(self.samples),
            "history_written": self.history_written,
            "alerts": dict(self.alert_outcomes()),
            "error": self.error,
        }


@dataclass
class CycleResult:
    """Summary of one reconciliation invocation.

    Attributes:
        status: Overall cycle status.
        cycle_id: Correlation id bound to every log line of the cycle.
        started_at: When the cycle entered RUNNING (None if rejected).
        finished_at: When the cycle returned to IDLE.
        accounts: Per-account results in processing order.
        error: Why the cycle failed, for FAILED results.
    """

    status: CycleStatus
    cycle_id: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    accounts: list[AccountResult] = field(default_factory=list)
    error: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def samples_evaluated(self) -> int:
        return sum(len(a.samples) for a in self.accounts)

    @property
    def history_written(self) -> int:
        return sum(a.history_written for a in self.accounts)

    def account_counts(self) -> dict[str, int]:
        return dict(Counter(a.status.value for a in self.accounts))

    def alert_outcomes(self) -> dict[str, int]:
        total: Counter = Counter()
        for account in self.accounts:
            total.update(account.alert_outcomes())
        return dict(total)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "status": self.status.value,
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "accounts": self.account_counts(),
            "samples_evaluated": self.samples_evaluated,
            "history_written": self.history_written,
            "alerts": self.alert_outcomes(),
            "error": self.error,
        }
