# compliance_model/projections/forecast.py
"""
Compliance forecasting from the snapshot history.

A least-squares line (numpy.polyfit, degree 1) is fitted to percentage
against day offset over the trailing history window and projected forward
every ``forecast.period_days`` days. The uncertainty band uses the
prediction interval of the fit, so it widens with distance from the data.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

import numpy as np

from compliance_model.config.models import DEFAULT_THRESHOLD_PCT, CompliancePolicy, resolve_policy
from compliance_model.engines.calculator import classify_status
from compliance_model.errors import InvalidInput
from compliance_model.state.models import ComplianceSnapshot, ProjectedSnapshot
from compliance_model.utils.date_utils import add_days
from compliance_model.utils.status_enums import ComplianceStatus, TrendDirection, Volatility

logger = logging.getLogger(__name__)

# Standard deviation (percentage points) separating volatility bands
MEDIUM_VOLATILITY_STD = 2.0
HIGH_VOLATILITY_STD = 5.0


def _chronological(history: Sequence[ComplianceSnapshot]) -> List[ComplianceSnapshot]:
    return sorted(history, key=lambda s: (s.as_of, s.created_at))


def _clip(value: float) -> float:
    return float(min(100.0, max(0.0, value)))


def forecast_compliance(
    history: Sequence[ComplianceSnapshot],
    periods: int,
    policy: Optional[CompliancePolicy] = None,
    start: Optional[date] = None,
    threshold: float = DEFAULT_THRESHOLD_PCT,
) -> List[ProjectedSnapshot]:
    """
    Project compliance ``periods`` steps ahead.

    Args:
        history: Snapshots of one organization, in any order.
        periods: Number of projected points, 0 to ``forecast.max_periods``.
        policy: Compliance policy; defaults apply when omitted.
        start: Date the projection steps from (default: the latest as-of date,
            or today when the history is empty).
        threshold: Threshold used to classify projected points.

    Returns:
        One ProjectedSnapshot per period. With fewer than two snapshots the
        projection is flat (0.0 or the single value) and low confidence.

    Raises:
        InvalidInput: If ``periods`` is out of range.
    """
    policy = resolve_policy(policy)
    rules = policy.forecast
    if not isinstance(periods, int) or periods < 0 or periods > rules.max_periods:
        raise InvalidInput(f"Forecast periods must be between 0 and {rules.max_periods}, got {periods}")
    if periods == 0:
        return []

    window = _chronological(history)[-rules.history_window:]
    n = len(window)
    last = window[-1] if window else None
    if start is None:
        start = last.as_of if last is not None else date.today()
    office_ok = last.principal_office_qualifying if last is not None else True
    grace_end = last.grace_period_end if last is not None and last.grace_period_active else None
    low_confidence = n < rules.min_history

    origin = window[0].as_of if window else start
    x = np.array([(s.as_of - origin).days for s in window], dtype=float)
    y = np.array([s.percentage for s in window], dtype=float)

    if n >= 2:
        x_mean = float(x.mean())
        sxx = float(((x - x_mean) ** 2).sum())
    else:
        x_mean, sxx = 0.0, 0.0

    if sxx > 0:
        slope, intercept = np.polyfit(x, y, 1)
        residuals = y - (slope * x + intercept)
        # Residual variance needs at least one degree of freedom
        se2 = float((residuals ** 2).sum() / (n - 2)) if n > 2 else 0.0
    else:
        # Zero or one point, or every snapshot on the same day
        slope = 0.0
        intercept = float(y.mean()) if n else 0.0
        se2 = float(y.var(ddof=1)) if n > 1 else 0.0

    projections: List[ProjectedSnapshot] = []
    for k in range(1, periods + 1):
        target = add_days(start, k * rules.period_days)
        xk = float((target - origin).days)
        raw = float(slope * xk + intercept)
        if sxx > 0:
            variance = se2 * (1.0 + 1.0 / n + (xk - x_mean) ** 2 / sxx)
        else:
            variance = se2
        half_width = rules.z_score * math.sqrt(variance)
        pct = _clip(raw)

        if grace_end is not None and target <= grace_end:
            status = ComplianceStatus.COMPLIANT
        else:
            status = classify_status(pct, threshold, office_ok, policy)

        projections.append(
            ProjectedSnapshot(
                period=k,
                as_of=target,
                percentage=pct,
                status=status,
                lower_bound=_clip(raw - half_width),
                upper_bound=_clip(raw + half_width),
                variance=variance,
                low_confidence=low_confidence,
            )
        )

    logger.debug(
        f"Forecast {periods} period(s) from {n} snapshot(s): slope {slope:.4f} pts/day, "
        f"low_confidence={low_confidence}"
    )
    return projections


@dataclass
class TrendAnalysis:
    direction: TrendDirection
    volatility: Volatility
    start_percentage: float
    end_percentage: float
    change: float
    slope_per_period: float
    std_dev: float
    workforce_change: int
    snapshots: int
    insights: List[str] = field(default_factory=list)


def analyze_trend(
    history: Sequence[ComplianceSnapshot], policy: Optional[CompliancePolicy] = None
) -> TrendAnalysis:
    """
    Direction, volatility and slope of the trailing history window.

    Direction is improving/declining when the percentage moved more than
    ``forecast.trend_change_points`` between the first and last snapshot.
    """
    policy = resolve_policy(policy)
    rules = policy.forecast
    window = _chronological(history)[-rules.history_window:]
    if not window:
        return TrendAnalysis(
            TrendDirection.STABLE, Volatility.LOW, 0.0, 0.0, 0.0, 0.0, 0.0, 0, 0,
            ["Insufficient data for trend analysis"],
        )

    pcts = np.array([s.percentage for s in window], dtype=float)
    change = float(pcts[-1] - pcts[0])
    if change > rules.trend_change_points:
        direction = TrendDirection.IMPROVING
    elif change < -rules.trend_change_points:
        direction = TrendDirection.DECLINING
    else:
        direction = TrendDirection.STABLE

    std_dev = float(pcts.std()) if len(pcts) > 1 else 0.0
    if std_dev > HIGH_VOLATILITY_STD:
        volatility = Volatility.HIGH
    elif std_dev > MEDIUM_VOLATILITY_STD:
        volatility = Volatility.MEDIUM
    else:
        volatility = Volatility.LOW

    days = (window[-1].as_of - window[0].as_of).days
    slope_per_period = change / days * rules.period_days if days > 0 else 0.0
    workforce_change = window[-1].total_employees - window[0].total_employees

    insights: List[str] = []
    if len(window) < rules.min_history:
        insights.append("Insufficient data for trend analysis")
    if change > 5:
        insights.append("Strong compliance improvement over period")
    elif change < -5:
        insights.append("Significant compliance decline - investigate causes")
    if workforce_change > 5:
        insights.append("Rapid workforce growth - monitor compliance impact")

    return TrendAnalysis(
        direction=direction,
        volatility=volatility,
        start_percentage=float(pcts[0]),
        end_percentage=float(pcts[-1]),
        change=change,
        slope_per_period=slope_per_period,
        std_dev=std_dev,
        workforce_change=workforce_change,
        snapshots=len(window),
        insights=insights,
    )
