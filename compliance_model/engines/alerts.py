# compliance_model/engines/alerts.py
"""
Alert Generator: derives actionable warnings from a compliance snapshot, the
evaluated workforce, the snapshot history and the grace period.

Output is deterministic: sorted by severity, then subject id, then type.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from compliance_model.config.models import CompliancePolicy, DEFAULT_THRESHOLD_PCT, resolve_policy
from compliance_model.rules.eligibility import evaluate
from compliance_model.rules.residency import is_verification_stale
from compliance_model.state.models import ComplianceSnapshot, Employee, GracePeriod, Organization
from compliance_model.utils.status_enums import AlertSeverity, AlertType, EligibilityReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Alert:
    alert_type: AlertType
    severity: AlertSeverity
    subject_id: str
    title: str
    description: str
    action_required: bool = False
    suggested_action: Optional[str] = None

    @property
    def sort_key(self):
        return (self.severity.rank, self.subject_id, self.alert_type.value)

    def to_dict(self):
        return {
            "type": self.alert_type.value,
            "severity": self.severity.value,
            "subject_id": self.subject_id,
            "title": self.title,
            "description": self.description,
            "action_required": self.action_required,
            "suggested_action": self.suggested_action,
        }


def _is_trending_down(history: Sequence[ComplianceSnapshot]) -> bool:
    if len(history) < 2:
        return False
    ordered = sorted(history, key=lambda s: (s.as_of, s.created_at))
    return ordered[-1].percentage < ordered[-2].percentage


def legacy_cap_exceeded(
    legacy_count: int, qualifying_count: int, policy: Optional[CompliancePolicy] = None
) -> bool:
    """True when legacy employees exceed the cap fraction of qualifying employees or the absolute cap."""
    policy = resolve_policy(policy)
    if legacy_count == 0:
        return False
    if legacy_count > policy.legacy.cap_fraction * qualifying_count:
        return True
    max_count = policy.legacy.max_count
    return max_count is not None and legacy_count > max_count


def generate_alerts(
    snapshot: ComplianceSnapshot,
    employees: Sequence[Employee],
    as_of: date,
    organization: Optional[Organization] = None,
    history: Sequence[ComplianceSnapshot] = (),
    grace_period: Optional[GracePeriod] = None,
    policy: Optional[CompliancePolicy] = None,
) -> List[Alert]:
    """
    Build the alert list for one organization.

    Args:
        snapshot: Current compliance snapshot.
        employees: The organization's employees.
        as_of: Reference date for per-employee and grace alerts.
        organization: Supplies the threshold (defaults to 35%).
        history: Chronological snapshots; the breach trend needs at least two.
        grace_period: The organization's current grace period, if any.
        policy: Compliance policy; defaults apply when omitted.
    """
    policy = resolve_policy(policy)
    rules = policy.alerts
    threshold = organization.threshold if organization is not None else DEFAULT_THRESHOLD_PCT
    org_id = snapshot.organization_id
    pct = snapshot.percentage
    alerts: List[Alert] = []

    if snapshot.total_employees > 0 and pct < threshold:
        alerts.append(
            Alert(
                AlertType.THRESHOLD_BREACHED,
                AlertSeverity.CRITICAL,
                org_id,
                "Below Compliance Threshold",
                f"Current compliance is {pct:.1f}%, below the required {threshold:.0f}%."
                + (
                    f" Grace period active until {snapshot.grace_period_end}."
                    if snapshot.grace_period_active
                    else " Immediate action required."
                ),
                action_required=True,
                suggested_action="Hire qualifying residents or review grace period eligibility",
            )
        )

    if threshold <= pct < threshold + rules.breach_margin and _is_trending_down(history):
        alerts.append(
            Alert(
                AlertType.THRESHOLD_BREACH_IMMINENT,
                AlertSeverity.WARNING,
                org_id,
                "Approaching Compliance Threshold",
                f"Compliance at {pct:.1f}% is within {rules.breach_margin:.1f} points of the "
                f"{threshold:.0f}% minimum and declining.",
                suggested_action="Prioritize qualifying residents for open positions",
            )
        )

    if not snapshot.principal_office_qualifying:
        alerts.append(
            Alert(
                AlertType.PRINCIPAL_OFFICE_NOT_QUALIFYING,
                AlertSeverity.CRITICAL,
                org_id,
                "Principal Office Not in a Qualifying Zone",
                "The principal office must be located in a qualifying zone.",
                action_required=True,
                suggested_action="Relocate the principal office",
            )
        )

    active = [e for e in employees if e.is_active]
    legacy_count = sum(1 for e in active if e.is_legacy_employee)
    if legacy_cap_exceeded(legacy_count, snapshot.qualifying_employees, policy):
        cap = policy.legacy.max_count
        alerts.append(
            Alert(
                AlertType.LEGACY_CAP_EXCEEDED,
                AlertSeverity.WARNING,
                org_id,
                f"Legacy Employees: {legacy_count}" + (f"/{cap}" if cap is not None else ""),
                f"{legacy_count} legacy employee(s) exceed the cap of "
                f"{policy.legacy.cap_fraction:.0%} of {snapshot.qualifying_employees} qualifying "
                "employees" + (f" or {cap} in total." if cap is not None else "."),
                action_required=True,
                suggested_action="Replace legacy coverage with qualifying resident hires",
            )
        )

    if grace_period is not None and grace_period.covers(as_of):
        remaining = grace_period.days_remaining(as_of)
        if remaining <= rules.grace_expiry_lead_days:
            alerts.append(
                Alert(
                    AlertType.GRACE_PERIOD_EXPIRING,
                    AlertSeverity.WARNING,
                    org_id,
                    "Grace Period Expiring",
                    f"The {grace_period.trigger.value} grace period ends on "
                    f"{grace_period.end_date} ({remaining} day(s) remaining).",
                    action_required=pct < threshold,
                    suggested_action="Restore compliance before the grace period ends",
                )
            )

    at_risk = [e for e in active if e.at_risk_redesignation]
    if at_risk:
        alerts.append(
            Alert(
                AlertType.REDESIGNATION_RISK,
                AlertSeverity.WARNING,
                org_id,
                f"{len(at_risk)} Employee(s) in At-Risk Areas",
                "Some employees reside in zones that may lose designation.",
                suggested_action="Monitor zone map updates",
            )
        )

    if 0 < snapshot.total_employees < rules.small_workforce_size:
        alerts.append(
            Alert(
                AlertType.SMALL_WORKFORCE_RISK,
                AlertSeverity.INFO,
                org_id,
                "Small Workforce Compliance Risk",
                f"With {snapshot.total_employees} employees, each person represents "
                f"{100.0 / snapshot.total_employees:.1f}% of compliance.",
            )
        )

    for emp in active:
        result = evaluate(emp, as_of, policy)
        if (
            result.reason is EligibilityReason.PENDING_90_DAY
            and result.days_resident is not None
            and result.days_resident >= rules.pending_lead_days
        ):
            alerts.append(
                Alert(
                    AlertType.PENDING_RESIDENCY_NEAR_COMPLETE,
                    AlertSeverity.INFO,
                    emp.employee_id,
                    "Residency Requirement Nearly Met",
                    f"Employee {emp.employee_id} has {result.days_remaining} day(s) left "
                    f"before counting toward compliance.",
                )
            )
        if (
            emp.is_qualifying_resident
            and not emp.is_legacy_employee
            and is_verification_stale(emp, as_of, policy)
        ):
            alerts.append(
                Alert(
                    AlertType.STALE_VERIFICATION,
                    AlertSeverity.INFO,
                    emp.employee_id,
                    "Address Verification Stale",
                    f"Employee {emp.employee_id} address was last verified "
                    f"{emp.last_verified or 'never'}.",
                    suggested_action="Re-verify the employee address",
                )
            )

    alerts.sort(key=lambda a: a.sort_key)
    logger.debug(f"Generated {len(alerts)} alert(s) for {org_id} as of {as_of}")
    return alerts
