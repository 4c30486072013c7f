"""
Reconciliation loop - the single-flight CPL alert cycle.

One invocation:
1. Lists active accounts (a failure here fails the whole cycle)
2. For each account, sequentially, fetches ad-level samples
3. For each sample, writes CPL history and evaluates the threshold
4. For each alert decision: dedup, log, resolve destination, render,
   attach message, deliver once

The alert record is always written before delivery is attempted, so a
crash or a failed send still counts as "already alerted" for the
suppression window. Delivery failures never remove the record.

The periodic scheduler, the HTTP trigger and ``alertcpl run-once`` share
one loop instance; an invocation that arrives while a cycle is in flight
is dropped with an ALREADY_RUNNING result rather than queued.
"""

import asyncio
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from alertcpl.accounts.repository import AccountRepository
from alertcpl.accounts.schemas import Account
from alertcpl.alerts.config import AlertConfig
from alertcpl.alerts.dedup import DedupGate
from alertcpl.alerts.evaluator import build_history_record, evaluate, sanitize_sample
from alertcpl.alerts.repository import AlertRepository, HistoryRepository
from alertcpl.alerts.schemas import AlertDecision, AlertRecord
from alertcpl.engine.schemas import (
    AccountResult,
    AlertOutcome,
    CycleResult,
    CycleStatus,
    RunState,
    SampleResult,
    UnitStatus,
)
from alertcpl.insights.client import MetaInsightsClient
from alertcpl.insights.schemas import MetricSample
from alertcpl.notifications.channels import NotificationError, NotificationSink, TelegramChannel
from alertcpl.notifications.render import AlertMessage, render_alert_message
from alertcpl.observability.metrics import get_metrics
from alertcpl.observability.tracing import get_tracer, traced
from alertcpl.storage.database import Database

logger = structlog.get_logger(__name__)

_FAILED_OUTCOMES = frozenset({
    AlertOutcome.DEDUP_FAILED,
    AlertOutcome.LOG_FAILED,
    AlertOutcome.SEND_FAILED,
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationLoop:
    """
    Single-flight orchestrator for the alert cycle.

    Owns the run state (IDLE/RUNNING) and an ``asyncio.Lock`` guarding it.
    Accounts and samples are processed strictly in order; errors are
    isolated to the smallest unit (sample, account, incident) and reported
    in the returned ``CycleResult``.

    Usage:
        loop = ReconciliationLoop(accounts, history, alerts, source, sink)
        result = await loop.run()
    """

    def __init__(
        self,
        account_repo: AccountRepository,
        history_repo: HistoryRepository,
        alert_repo: AlertRepository,
        metrics_source: MetaInsightsClient,
        sink: NotificationSink,
        config: AlertConfig | None = None,
        dedup: DedupGate | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the loop.

        Args:
            account_repo: Active-account listing and destination lookup
            history_repo: CPL history writes
            alert_repo: Alert record writes and suppression lookups
            metrics_source: Per-ad insights provider
            sink: Notification channel
            config: Alert configuration (window, reporting window, markup)
            dedup: Suppression gate (built from alert_repo by default)
            clock: Returns the current UTC time
        """
        self._accounts = account_repo
        self._history = history_repo
        self._alerts = alert_repo
        self._source = metrics_source
        self._sink = sink
        self._config = config or AlertConfig()
        self._dedup = dedup or DedupGate(alert_repo, self._config)
        self._clock = clock or _utcnow
        self._metrics = get_metrics()

        self._lock = asyncio.Lock()
        self._state = RunState.IDLE
        self._last_run_started_at: datetime | None = None
        self._last_result: CycleResult | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is RunState.RUNNING

    @property
    def last_run_started_at(self) -> datetime | None:
        return self._last_run_started_at

    @property
    def last_result(self) -> CycleResult | None:
        """Result of the most recent cycle that actually ran."""
        return self._last_result

    async def run(self) -> CycleResult:
        """
        Run one reconciliation cycle unless one is already in flight.

        Returns:
            CycleResult; ALREADY_RUNNING immediately if another cycle holds
            the guard.
        """
        if self._lock.locked():
            logger.info("Reconciliation already running, trigger dropped")
            self._metrics.record_cycle(CycleStatus.ALREADY_RUNNING.value)
            return CycleResult(status=CycleStatus.ALREADY_RUNNING)

        async with self._lock:
            started_at = self._clock()
            cycle_id = uuid.uuid4().hex[:12]
            self._state = RunState.RUNNING
            self._last_run_started_at = started_at
            self._metrics.set_running(True, started_at.timestamp())
            start = time.monotonic()

            try:
                with structlog.contextvars.bound_contextvars(cycle_id=cycle_id):
                    result = await self._run_cycle(cycle_id, started_at)
            except Exception as e:
                logger.exception("Reconciliation cycle failed", cycle_id=cycle_id)
                result = CycleResult(
                    status=CycleStatus.FAILED,
                    cycle_id=cycle_id,
                    started_at=started_at,
                    error=str(e),
                )
            finally:
                self._state = RunState.IDLE
                self._metrics.set_running(False)

            result.finished_at = self._clock()
            self._last_result = result
            self._metrics.record_cycle(result.status.value, time.monotonic() - start)
            return result

    async def _run_cycle(self, cycle_id: str, started_at: datetime) -> CycleResult:
        tracer = get_tracer(__name__)
        result = CycleResult(
            status=CycleStatus.COMPLETED,
            cycle_id=cycle_id,
            started_at=started_at,
        )

        with traced(tracer, "reconciliation.cycle", {"cycle.id": cycle_id}) as span:
            logger.info("Reconciliation cycle started")

            try:
                accounts = await self._accounts.list_active()
            except Exception as e:
                logger.error("Failed to list active accounts", error=str(e))
                result.status = CycleStatus.FAILED
                result.error = f"account listing failed: {e}"
                return result

            if not accounts:
                logger.info("No active accounts to reconcile")
                result.status = CycleStatus.NO_ACCOUNTS
                return result

            span.set_attribute("cycle.accounts", len(accounts))

            for account in accounts:
                with traced(tracer, "reconciliation.account", {"account.id": account.account_id}):
                    account_result = await self._process_account(account, started_at)
                result.accounts.append(account_result)
                self._metrics.record_account(account_result.status.value)

        logger.info(
            "Reconciliation cycle finished",
            accounts=result.account_counts(),
            samples=result.samples_evaluated,
            history_written=result.history_written,
            alerts=result.alert_outcomes(),
        )
        return result

    async def _process_account(self, account: Account, checked_at: datetime) -> AccountResult:
        log = logger.bind(account_id=account.account_id, account_name=account.account_name)

        if not account.is_active:
            log.warning("Inactive account listed as active, skipping")
            return AccountResult(account_id=account.account_id, status=UnitStatus.SKIPPED)

        try:
            samples = await self._source.fetch_samples(
                account.account_id, self._config.reporting_window,
            )
        except Exception as e:
            log.error("Failed to fetch samples", error=str(e))
            return AccountResult(
                account_id=account.account_id,
                status=UnitStatus.ERROR,
                error=str(e),
            )

        if not samples:
            log.info("No samples for account, skipping")
            return AccountResult(account_id=account.account_id, status=UnitStatus.SKIPPED)

        log.info("Evaluating account", samples=len(samples), threshold=account.cpl_threshold)

        account_result = AccountResult(account_id=account.account_id, status=UnitStatus.OK)
        for sample in samples:
            try:
                sample_result = await self._process_sample(account, sample, checked_at)
            except Exception as e:
                log.error("Unexpected error evaluating sample", ad_id=sample.ad_id, error=str(e))
                sample_result = SampleResult(
                    ad_id=sample.ad_id, status=UnitStatus.ERROR, error=str(e),
                )
            account_result.samples.append(sample_result)

        return account_result

    async def _process_sample(
        self,
        account: Account,
        sample: MetricSample,
        checked_at: datetime,
    ) -> SampleResult:
        sample = sanitize_sample(sample)
        self._metrics.record_sample()

        if sample.spend == 0:
            return SampleResult(ad_id=sample.ad_id, status=UnitStatus.SKIPPED)

        result = SampleResult(ad_id=sample.ad_id, status=UnitStatus.OK)

        history = build_history_record(sample, account, checked_at)
        if history is not None:
            try:
                await self._history.insert(history)
            except Exception as e:
                logger.error(
                    "Failed to write CPL history, skipping sample",
                    account_id=account.account_id,
                    ad_id=sample.ad_id,
                    error=str(e),
                )
                self._metrics.record_history(False)
                result.status = UnitStatus.ERROR
                result.error = f"history write failed: {e}"
                return result
            self._metrics.record_history(True)
            result.history_written = True

        decision = evaluate(sample, account)
        if decision is None:
            return result

        outcome, alert_id = await self._handle_alert(account, sample, decision)
        self._metrics.record_alert(decision.kind, outcome.value)

        result.alert_kind = decision.kind
        result.alert_outcome = outcome
        result.alert_id = alert_id
        if outcome in _FAILED_OUTCOMES:
            result.status = UnitStatus.ERROR
        return result

    async def _handle_alert(
        self,
        account: Account,
        sample: MetricSample,
        decision: AlertDecision,
    ) -> tuple[AlertOutcome, str | None]:
        """Run the dedup / log / notify pipeline for one incident."""
        log = logger.bind(
            account_id=account.account_id,
            ad_id=sample.ad_id,
            alert_kind=decision.kind,
        )
        now = self._clock()

        try:
            suppressed = await self._dedup.should_suppress(
                sample.ad_id, decision.kind, account.id, now,
            )
        except Exception as e:
            log.error("Suppression lookup failed, skipping incident", error=str(e))
            return AlertOutcome.DEDUP_FAILED, None

        if suppressed:
            log.info("Duplicate alert inside suppression window, skipped")
            return AlertOutcome.SUPPRESSED, None

        record = AlertRecord(
            account_id=account.id,
            agency_id=account.agency_id,
            kind=decision.kind,
            ad_id=sample.ad_id,
            campaign_name=sample.campaign_name,
            adset_name=sample.adset_name,
            ad_name=sample.ad_name,
            spend=decision.spend,
            leads=decision.leads,
            cpl=decision.cpl,
            threshold=decision.threshold,
            created_at=now,
        )

        try:
            record_id = await self._alerts.insert(record)
        except Exception as e:
            log.error("Failed to log alert, not notifying", error=str(e))
            return AlertOutcome.LOG_FAILED, None

        log = log.bind(alert_id=record_id)

        try:
            destination = await self._accounts.get_notification_destination(account.id)
        except Exception as e:
            log.error("Failed to resolve notification destination", error=str(e))
            destination = None

        if destination is None:
            log.warning("No notification destination for account, alert logged only")
            return AlertOutcome.NO_DESTINATION, record_id

        text = render_alert_message(AlertMessage.from_record(record), self._config.markup)

        try:
            await self._alerts.update_message(record_id, text)
        except Exception as e:
            log.warning("Failed to attach message to alert record", error=str(e))

        try:
            await self._sink.send(destination, text)
        except NotificationError as e:
            log.error(
                "Notification delivery failed",
                channel=self._sink.name,
                status_code=e.status_code,
                retryable=e.retryable,
                error=str(e),
            )
            self._metrics.record_notification(False)
            return AlertOutcome.SEND_FAILED, record_id
        except Exception as e:
            log.error("Notification delivery failed", channel=self._sink.name, error=str(e))
            self._metrics.record_notification(False)
            return AlertOutcome.SEND_FAILED, record_id

        self._metrics.record_notification(True)
        log.info("Alert notified", chat_id=destination.chat_id)

        try:
            await self._alerts.mark_sent(record_id, self._clock())
        except Exception as e:
            log.warning("Failed to stamp alert as sent", error=str(e))

        return AlertOutcome.NOTIFIED, record_id


def build_reconciliation_loop(
    database: Database,
    config: AlertConfig | None = None,
) -> ReconciliationLoop:
    """Wire a loop to the PostgreSQL store, the Graph API and Telegram."""
    config = config or AlertConfig()
    return ReconciliationLoop(
        account_repo=AccountRepository(database),
        history_repo=HistoryRepository(database),
        alert_repo=AlertRepository(database),
        metrics_source=MetaInsightsClient(),
        sink=TelegramChannel(dialect=config.markup),
        config=config,
    )
