"""Tests for threshold evaluation."""

from datetime import datetime, timezone

import pytest

from alertcpl.accounts.schemas import Account
from alertcpl.alerts.evaluator import build_history_record, evaluate, sanitize_sample
from alertcpl.alerts.schemas import HIGH_COST_PER_LEAD, ZERO_LEADS_HIGH_SPEND

CHECKED_AT = datetime(2026, 5, 4, 12, 0, 0, tzinfo=timezone.utc)


def _account(threshold: float) -> Account:
    return Account(id="acc-1", account_id="123", account_name="Acme", cpl_threshold=threshold)


class TestEvaluate:
    """Tests for evaluate()."""

    @pytest.mark.parametrize("leads", [0, 1, 50])
    def test_zero_spend_never_alerts(self, sample_factory, leads):
        assert evaluate(sample_factory(spend=0.0, leads=leads), _account(1.0)) is None

    def test_zero_leads_spend_over_threshold(self, sample_factory):
        decision = evaluate(sample_factory(spend=100.0, leads=0), _account(50.0))

        assert decision.kind == ZERO_LEADS_HIGH_SPEND
        assert decision.cpl == 0.0
        assert decision.spend == 100.0
        assert decision.threshold == 50.0

    def test_zero_leads_spend_equal_threshold(self, sample_factory):
        decision = evaluate(sample_factory(spend=50.0, leads=0), _account(50.0))

        assert decision.kind == ZERO_LEADS_HIGH_SPEND

    def test_zero_leads_spend_under_threshold(self, sample_factory):
        assert evaluate(sample_factory(spend=40.0, leads=0), _account(50.0)) is None

    def test_high_cost_per_lead(self, sample_factory):
        decision = evaluate(sample_factory(spend=100.0, leads=10), _account(5.0))

        assert decision.kind == HIGH_COST_PER_LEAD
        assert decision.cpl == 10.0
        assert decision.leads == 10

    def test_cpl_equal_threshold_does_not_alert(self, sample_factory):
        assert evaluate(sample_factory(spend=100.0, leads=10), _account(10.0)) is None

    def test_cpl_under_threshold(self, sample_factory):
        assert evaluate(sample_factory(spend=100.0, leads=10), _account(20.0)) is None

    def test_same_input_same_decision(self, sample_factory):
        sample = sample_factory(spend=100.0, leads=10)
        account = _account(5.0)

        assert evaluate(sample, account) == evaluate(sample, account)

    def test_negative_leads_treated_as_zero(self, sample_factory):
        decision = evaluate(sample_factory(spend=80.0, leads=-3), _account(50.0))

        assert decision.kind == ZERO_LEADS_HIGH_SPEND
        assert decision.leads == 0


class TestBuildHistoryRecord:
    """Tests for build_history_record()."""

    def test_record_regardless_of_alert(self, sample_factory):
        sample = sample_factory(ad_id="ad_7", spend=100.0, leads=10)

        alerting = build_history_record(sample, _account(5.0), CHECKED_AT)
        quiet = build_history_record(sample, _account(20.0), CHECKED_AT)

        assert alerting.cpl == 10.0
        assert quiet.cpl == 10.0
        assert quiet.ad_id == "ad_7"
        assert quiet.account_id == "acc-1"
        assert quiet.checked_at == CHECKED_AT

    def test_no_record_without_leads(self, sample_factory):
        assert build_history_record(sample_factory(spend=100.0, leads=0), _account(5.0), CHECKED_AT) is None

    def test_no_record_without_spend(self, sample_factory):
        assert build_history_record(sample_factory(spend=0.0, leads=4), _account(5.0), CHECKED_AT) is None


class TestSanitizeSample:
    def test_clean_sample_returned_unchanged(self, sample_factory):
        sample = sample_factory(spend=10.0, leads=1)
        assert sanitize_sample(sample) is sample

    def test_negatives_clamped(self, sample_factory):
        clamped = sanitize_sample(sample_factory(spend=-1.5, leads=-2))

        assert clamped.spend == 0.0
        assert clamped.leads == 0

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_spend_clamped(self, sample_factory, bad):
        clamped = sanitize_sample(sample_factory(spend=bad, leads=3))

        assert clamped.spend == 0.0
        assert clamped.leads == 3

    def test_nan_leads_clamped(self, sample_factory):
        clamped = sanitize_sample(sample_factory(spend=12.0, leads=float("nan")))

        assert clamped.leads == 0
        assert clamped.spend == 12.0

    def test_nan_spend_is_not_an_alert(self, sample_factory):
        assert evaluate(sample_factory(spend=float("nan"), leads=0), _account(5.0)) is None
