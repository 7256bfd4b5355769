# compliance_model/reporting/metrics.py
"""
Functions to calculate summary metrics from compliance results: risk score,
recommendations, risk assessment and a tabular view of the snapshot history.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import List, Sequence

import pandas as pd

from compliance_model.state.models import ComplianceSnapshot, Employee
from compliance_model.state.schema import (
    SNAPSHOT_AS_OF,
    SNAPSHOT_COLS,
    SNAPSHOT_PERCENTAGE,
)

logger = logging.getLogger(__name__)

# Source-system risk weights
BELOW_THRESHOLD_RISK = 50
THIN_BUFFER_RISK = 30
MODERATE_BUFFER_RISK = 15
BASE_RISK = 5
VERY_SMALL_WORKFORCE = 5
SMALL_WORKFORCE = 10


def calculate_risk_score(
    percentage: float, total_employees: int, legacy_count: int, threshold: float
) -> int:
    """
    Score compliance risk from 0 (none) to 100.

    Components: distance of the percentage above the threshold, workforce
    size (each person moves a small workforce a lot) and legacy usage.
    """
    score = 0
    if percentage < threshold:
        score += BELOW_THRESHOLD_RISK
    elif percentage < threshold + 5:
        score += THIN_BUFFER_RISK
    elif percentage < threshold + 10:
        score += MODERATE_BUFFER_RISK
    else:
        score += BASE_RISK

    if total_employees < VERY_SMALL_WORKFORCE:
        score += 20
    elif total_employees < SMALL_WORKFORCE:
        score += 10

    if legacy_count >= 4:
        score += 15
    elif legacy_count >= 3:
        score += 10

    return min(100, score)


def qualifying_hires_needed(qualifying: int, total: int, threshold: float) -> int:
    """
    Smallest number of additional qualifying hires n such that
    (qualifying + n) / (total + n) reaches ``threshold`` percent.

    Returns -1 when the threshold cannot be reached by hiring alone.
    """
    if total > 0 and 100.0 * qualifying / total >= threshold:
        return 0
    if threshold >= 100.0:
        return 0 if qualifying == total else -1
    needed = (threshold * total - 100.0 * qualifying) / (100.0 - threshold)
    # Guard against float noise just above an integer
    return max(0, math.ceil(round(needed, 9)))


def build_recommendations(snapshot: ComplianceSnapshot, threshold: float) -> List[str]:
    recommendations: List[str] = []
    pct = snapshot.percentage

    if pct < threshold:
        needed = qualifying_hires_needed(
            snapshot.qualifying_employees, snapshot.total_employees, threshold
        )
        if needed > 0:
            recommendations.append(
                f"Hire {needed} qualifying resident(s) to reach {threshold:.0f}% compliance"
            )
        if snapshot.grace_period_active:
            recommendations.append(
                f"Restore compliance before the grace period ends on {snapshot.grace_period_end}"
            )
        else:
            recommendations.append("Review grace period eligibility")
        recommendations.append("Consider relocation assistance for current employees")
    elif pct < threshold + 10:
        recommendations.append(
            "Build compliance buffer by prioritizing qualifying residents for open positions"
        )
        recommendations.append("Monitor employees in redesignated areas for potential impact")
    else:
        recommendations.append("Maintain current hiring practices")
        recommendations.append("Document 'attempt to maintain' efforts for audit readiness")

    if snapshot.pending_employees:
        recommendations.append(
            f"Track {snapshot.pending_employees} employee(s) completing the residency minimum"
        )
    if not snapshot.principal_office_qualifying:
        recommendations.append("Relocate the principal office into a qualifying zone")

    recommendations.append("Verify all employee addresses are current")
    return recommendations


@dataclass(frozen=True)
class RiskItem:
    category: str
    risk: str
    probability: int
    impact: str
    mitigation: str


@dataclass
class RiskAssessment:
    assessment_date: date
    overall_risk: str
    risks: List[RiskItem] = field(default_factory=list)

    @property
    def recommendations(self) -> List[str]:
        if not self.risks:
            return ["Maintain current practices"]
        return [r.mitigation for r in self.risks]


def assess_risk(
    snapshot: ComplianceSnapshot,
    employees: Sequence[Employee],
    threshold: float,
    small_workforce_size: int = SMALL_WORKFORCE,
) -> RiskAssessment:
    """Categorized risk list for a snapshot and its workforce."""
    risks: List[RiskItem] = []
    pct = snapshot.percentage

    if pct < threshold:
        risks.append(
            RiskItem(
                "compliance",
                f"Currently below {threshold:.0f}% threshold",
                100,
                "Certification at risk",
                "Immediate hiring of qualifying residents",
            )
        )
    elif pct < threshold + 5:
        risks.append(
            RiskItem(
                "compliance",
                "Thin compliance buffer",
                60,
                "Single departure could cause non-compliance",
                "Build buffer through qualifying hires",
            )
        )

    if 0 < snapshot.total_employees < small_workforce_size:
        risks.append(
            RiskItem(
                "workforce",
                "Small workforce volatility",
                50,
                "Each employee change significantly affects compliance",
                "Grow workforce or maintain a higher compliance buffer",
            )
        )

    at_risk = sum(1 for e in employees if e.is_active and e.at_risk_redesignation)
    if at_risk:
        risks.append(
            RiskItem(
                "geospatial",
                f"{at_risk} employee(s) in redesignation risk areas",
                30,
                "Map changes could reduce the qualifying employee count",
                "Monitor zone map updates and plan contingencies",
            )
        )

    if not risks:
        overall = "low"
    elif any(r.probability >= 80 for r in risks):
        overall = "high"
    else:
        overall = "medium"
    return RiskAssessment(assessment_date=snapshot.as_of, overall_risk=overall, risks=risks)


def history_to_frame(history: Sequence[ComplianceSnapshot]) -> pd.DataFrame:
    """Snapshot history as a DataFrame sorted by as-of date."""
    if not history:
        return pd.DataFrame(columns=SNAPSHOT_COLS)
    df = pd.DataFrame([s.to_dict() for s in history])
    df[SNAPSHOT_AS_OF] = pd.to_datetime(df[SNAPSHOT_AS_OF])
    df[SNAPSHOT_PERCENTAGE] = df[SNAPSHOT_PERCENTAGE].astype(float)
    return df.sort_values(SNAPSHOT_AS_OF, kind="stable").reset_index(drop=True)
