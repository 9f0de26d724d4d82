"""
test_risk_aggregator.py -- Unit tests for renewal_risk/services/risk_aggregator.py

Covers:
- assess_account(): AT_RISK / SAFE / NO_DATA, soonest driver, archived rows
- duplicate at-risk groups per service line
- AccountRiskStatus payload round trip
- idempotency with unchanged input

Called by: pytest
Depends on: renewal_risk/services/risk_aggregator.py, conftest.py
"""

from conftest import NOW, in_days
from renewal_risk.services.estimate_classifier import EstimateRecord
from renewal_risk.services.risk_aggregator import (
    AccountRiskStatus,
    RiskStatus,
    assess_account,
)

WINDOW = 180


def _est(id, days, division="Maintenance", address="100 Main St", status="Contract Signed", **kw):
    return EstimateRecord(
        id=id,
        account_id="a1",
        division=division,
        address=address,
        status=status,
        contract_end=in_days(days) if days is not None else None,
        **kw,
    )


def _assess(*estimates):
    return assess_account("a1", list(estimates), NOW, WINDOW)


class TestAccountStatus:
    def test_at_risk_driven_by_soonest(self):
        result = _assess(
            _est("far", 120, division="Snow"),
            _est("soon", 45, division="Irrigation"),
            _est("mid", 90),
        )
        s = result.status
        assert s.status is RiskStatus.AT_RISK
        assert s.driving_estimate_id == "soon"
        assert s.days_until_expiry == 45
        assert s.expiry_date == in_days(45)

    def test_tie_on_expiry_broken_by_id(self):
        s = _assess(_est("b", 30, division="X"), _est("a", 30, division="Y")).status
        assert s.driving_estimate_id == "a"

    def test_renewed_account_is_safe(self):
        s = _assess(_est("old", 30), _est("new", 400)).status
        assert s.status is RiskStatus.SAFE
        assert s.driving_estimate_id is None
        assert s.days_until_expiry is None

    def test_expired_only_is_safe(self):
        assert _assess(_est("gone", -10)).status.status is RiskStatus.SAFE

    def test_ungroupable_won_dated_counts_as_safe_not_risk(self):
        s = _assess(_est("loose", 20, address="")).status
        assert s.status is RiskStatus.SAFE

    def test_no_won_dated_is_no_data(self):
        s = _assess(_est("lost", 30, status="Lost"), _est("undated", None)).status
        assert s.status is RiskStatus.NO_DATA

    def test_no_estimates_is_no_data(self):
        assert _assess().status.status is RiskStatus.NO_DATA

    def test_archived_estimates_ignored(self):
        s = _assess(_est("arch", 30, archived=True)).status
        assert s.status is RiskStatus.NO_DATA

    def test_same_day_expiry_is_at_risk(self):
        s = _assess(_est("today", 0)).status
        assert s.status is RiskStatus.AT_RISK
        assert s.days_until_expiry == 0

    def test_idempotent(self):
        estimates = [_est("x", 30), _est("y", 60, division="Snow")]
        first = assess_account("a1", estimates, NOW, WINDOW).status
        second = assess_account("a1", estimates, NOW, WINDOW).status
        assert first == second
        assert first.to_payload() == second.to_payload()


class TestDuplicates:
    def test_two_at_risk_on_one_line(self):
        result = _assess(_est("d1", 30, estimate_number="E-1"), _est("d2", 60, estimate_number="E-2"))
        (group,) = result.duplicates
        assert [r.id for r in group.estimates] == ["d1", "d2"]
        details = group.to_details()
        assert details["department"] == "maintenance"
        assert [e["estimate_number"] for e in details["estimates"]] == ["E-1", "E-2"]
        assert group.entity_id == "a1|maintenance|100 main st"

    def test_renewed_rows_are_not_duplicates(self):
        result = _assess(_est("d1", 30), _est("d2", 60), _est("renewal", 500))
        assert result.duplicates == []

    def test_different_lines_are_not_duplicates(self):
        result = _assess(_est("d1", 30), _est("d2", 60, address="200 Oak Ave"))
        assert result.duplicates == []


class TestPayload:
    def test_round_trip(self):
        status = _assess(_est("x", 30)).status
        restored = AccountRiskStatus.from_payload(status.to_payload())
        assert restored == status

    def test_payload_is_json_friendly(self):
        payload = _assess(_est("x", 30)).status.to_payload()
        assert payload["status"] == "at_risk"
        assert payload["expiry_date"] == in_days(30).isoformat()
        assert isinstance(payload["computed_at"], str)
