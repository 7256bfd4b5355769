from datetime import date, timedelta

import pytest

from compliance_model.config.models import CompliancePolicy, ForecastRules
from compliance_model.errors import InvalidInput
from compliance_model.projections.forecast import analyze_trend, forecast_compliance
from compliance_model.state.models import ComplianceSnapshot
from compliance_model.utils.status_enums import ComplianceStatus, TrendDirection, Volatility

START = date(2025, 1, 1)


def make_history(percentages, step_days=30, **overrides):
    history = []
    for i, pct in enumerate(percentages):
        fields = dict(
            organization_id="ORG1",
            as_of=START + timedelta(days=i * step_days),
            total_employees=20,
            qualifying_employees=int(pct / 5),
            percentage=pct,
            status=ComplianceStatus.COMPLIANT,
        )
        fields.update(overrides)
        history.append(ComplianceSnapshot(**fields))
    return history


def test_single_snapshot_projects_flat_with_low_confidence():
    history = make_history([42.0])
    points = forecast_compliance(history, 4)
    assert len(points) == 4
    for p in points:
        assert p.percentage == pytest.approx(42.0)
        assert p.low_confidence is True
        assert p.lower_bound == p.upper_bound == pytest.approx(42.0)
    assert points[0].as_of == START + timedelta(days=30)
    assert points[-1].as_of == START + timedelta(days=120)


def test_empty_history_projects_zero():
    points = forecast_compliance([], 2, start=START)
    assert [p.percentage for p in points] == [0.0, 0.0]
    assert all(p.low_confidence for p in points)
    assert all(p.status is ComplianceStatus.CRITICAL for p in points)


def test_zero_periods_returns_nothing():
    assert forecast_compliance(make_history([40.0, 41.0]), 0) == []


@pytest.mark.parametrize("periods", [-1, 61])
def test_periods_out_of_range(periods):
    with pytest.raises(InvalidInput):
        forecast_compliance(make_history([40.0]), periods)


def test_linear_history_extrapolates():
    points = forecast_compliance(make_history([30.0, 31.0, 32.0, 33.0]), 2)
    assert points[0].percentage == pytest.approx(34.0)
    assert points[1].percentage == pytest.approx(35.0)
    assert points[0].low_confidence is False
    assert points[0].variance == pytest.approx(0.0, abs=1e-9)


def test_two_points_are_low_confidence():
    points = forecast_compliance(make_history([40.0, 42.0]), 1)
    assert points[0].low_confidence is True
    assert points[0].percentage == pytest.approx(44.0)


def test_uncertainty_widens_with_distance():
    points = forecast_compliance(make_history([30.0, 32.0, 31.0, 33.0, 32.0]), 6)
    variances = [p.variance for p in points]
    assert all(b > a for a, b in zip(variances, variances[1:]))
    for p in points:
        assert 0.0 <= p.lower_bound <= p.percentage <= p.upper_bound <= 100.0


def test_projections_are_clipped():
    points = forecast_compliance(make_history([30.0, 10.0, 0.0]), 3)
    assert all(p.percentage == 0.0 for p in points)
    assert all(p.lower_bound >= 0.0 for p in points)

    rising = forecast_compliance(make_history([80.0, 90.0, 99.0]), 3)
    assert all(p.percentage <= 100.0 and p.upper_bound <= 100.0 for p in rising)


def test_history_window_limits_fit():
    policy = CompliancePolicy(forecast=ForecastRules(history_window=3, min_history=2))
    # Early points would pull the line down; only the flat tail is used
    points = forecast_compliance(make_history([0.0, 0.0, 50.0, 50.0, 50.0]), 1, policy)
    assert points[0].percentage == pytest.approx(50.0)


def test_grace_end_keeps_projection_compliant():
    history = make_history(
        [30.0, 25.0, 20.0],
        grace_period_active=True,
        grace_period_end=START + timedelta(days=60 + 45),
    )
    points = forecast_compliance(history, 2, threshold=35.0)
    assert points[0].status is ComplianceStatus.COMPLIANT
    assert points[1].status is ComplianceStatus.CRITICAL


def test_status_uses_office_flag():
    history = make_history([60.0, 60.0, 60.0], principal_office_qualifying=False)
    points = forecast_compliance(history, 1)
    assert points[0].status is ComplianceStatus.WARNING


def test_trend_declining_and_volatility():
    trend = analyze_trend(make_history([40.0, 38.0, 35.0]))
    assert trend.direction is TrendDirection.DECLINING
    assert trend.change == pytest.approx(-5.0)
    assert trend.slope_per_period == pytest.approx(-2.5)
    assert trend.volatility is Volatility.MEDIUM


def test_trend_stable_low_volatility():
    trend = analyze_trend(make_history([35.0, 36.0, 36.5]))
    assert trend.direction is TrendDirection.STABLE
    assert trend.volatility is Volatility.LOW


def test_trend_high_volatility_and_improving():
    trend = analyze_trend(make_history([20.0, 40.0, 20.0, 40.0]))
    assert trend.direction is TrendDirection.IMPROVING
    assert trend.volatility is Volatility.HIGH
    assert "Strong compliance improvement over period" in trend.insights


def test_trend_without_history():
    trend = analyze_trend([])
    assert trend.direction is TrendDirection.STABLE
    assert trend.snapshots == 0
