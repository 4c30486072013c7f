"""Alert evaluation, suppression and persistence.

Components:
- evaluator: pure threshold rules mapping a sample to an AlertDecision
- DedupGate: suppression-window check against the alert log
- AlertRepository / HistoryRepository: asyncpg persistence
"""

from alertcpl.alerts.config import AlertConfig
from alertcpl.alerts.dedup import DedupGate
from alertcpl.alerts.evaluator import build_history_record, evaluate, sanitize_sample
from alertcpl.alerts.repository import AlertRepository, HistoryRepository
from alertcpl.alerts.schemas import (
    HIGH_COST_PER_LEAD,
    VALID_ALERT_KINDS,
    ZERO_LEADS_HIGH_SPEND,
    AlertDecision,
    AlertKind,
    AlertRecord,
    MetricHistoryRecord,
)

__all__ = [
    "AlertConfig",
    "AlertDecision",
    "AlertKind",
    "AlertRecord",
    "AlertRepository",
    "DedupGate",
    "HIGH_COST_PER_LEAD",
    "HistoryRepository",
    "MetricHistoryRecord",
    "VALID_ALERT_KINDS",
    "ZERO_LEADS_HIGH_SPEND",
    "build_history_record",
    "evaluate",
    "sanitize_sample",
]
