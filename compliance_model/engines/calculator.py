# compliance_model/engines/calculator.py
"""
Compliance Calculator: aggregates per-employee eligibility into the
organization-level percentage and status.

The calculation is a pure function. Persisting the resulting snapshot and
applying grace period transitions is done by ComplianceEngine under the
per-organization lock.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from compliance_model.config.models import CompliancePolicy, resolve_policy
from compliance_model.errors import InvalidInput
from compliance_model.reporting.metrics import calculate_risk_score
from compliance_model.rules.eligibility import evaluate
from compliance_model.state.models import ComplianceSnapshot, Employee, GracePeriod, Organization
from compliance_model.utils.status_enums import ComplianceStatus, EligibilityReason

logger = logging.getLogger(__name__)


def classify_status(
    percentage: float,
    threshold: float,
    principal_office_qualifying: bool = True,
    policy: Optional[CompliancePolicy] = None,
) -> ComplianceStatus:
    """
    Raw status from a percentage, without any grace override.

    compliant: at/above threshold with a qualifying principal office
    warning:   within ``compliance.warning_buffer`` points below threshold
               (or above threshold with a non-qualifying office)
    critical:  otherwise
    """
    policy = resolve_policy(policy)
    if percentage >= threshold and principal_office_qualifying:
        return ComplianceStatus.COMPLIANT
    if percentage >= threshold - policy.compliance.warning_buffer:
        return ComplianceStatus.WARNING
    return ComplianceStatus.CRITICAL


def calculate(
    employees: Iterable[Employee],
    as_of: date,
    organization: Organization,
    policy: Optional[CompliancePolicy] = None,
    grace_period: Optional[GracePeriod] = None,
) -> ComplianceSnapshot:
    """
    Compute a compliance snapshot for ``organization`` as of ``as_of``.

    Args:
        employees: The organization's employee records (inactive ones are ignored).
        as_of: Evaluation date; must not precede the certification date.
        organization: Threshold, certification date and office status.
        policy: Compliance policy; defaults apply when omitted.
        grace_period: The organization's current grace period, if any. When it
            covers ``as_of`` the status is forced to compliant.

    Returns:
        A new, unpersisted ComplianceSnapshot.

    Raises:
        InvalidInput: If ``as_of`` precedes the certification date or an
            employee belongs to another organization.
    """
    policy = resolve_policy(policy)
    if as_of < organization.certification_date:
        raise InvalidInput(
            f"As-of date {as_of} precedes certification date "
            f"{organization.certification_date} for {organization.organization_id}"
        )

    total = 0
    qualifying = 0
    legacy = 0
    pending = 0
    for emp in employees:
        if emp.organization_id != organization.organization_id:
            raise InvalidInput(
                f"Employee {emp.employee_id} belongs to {emp.organization_id}, "
                f"not {organization.organization_id}"
            )
        if not emp.is_active:
            continue
        total += 1
        result = evaluate(emp, as_of, policy)
        if result.counts:
            qualifying += 1
        if result.reason is EligibilityReason.LEGACY:
            legacy += 1
        elif result.reason is EligibilityReason.PENDING_90_DAY:
            pending += 1

    percentage = 0.0 if total == 0 else 100.0 * qualifying / total
    threshold = organization.threshold

    grace_active = False
    grace_end = None
    if total == 0:
        # An empty workforce is never compliant, grace or not
        status = ComplianceStatus.CRITICAL
    else:
        status = classify_status(
            percentage, threshold, organization.principal_office_qualifying, policy
        )
        if grace_period is not None and grace_period.covers(as_of):
            grace_active = True
            grace_end = grace_period.end_date
            if status is not ComplianceStatus.COMPLIANT:
                logger.info(
                    f"Grace period ({grace_period.trigger.value}) until {grace_end} overrides "
                    f"{status.value} status for {organization.organization_id}"
                )
            status = ComplianceStatus.COMPLIANT

    snapshot = ComplianceSnapshot(
        organization_id=organization.organization_id,
        as_of=as_of,
        total_employees=total,
        qualifying_employees=qualifying,
        percentage=percentage,
        status=status,
        grace_period_active=grace_active,
        grace_period_end=grace_end,
        principal_office_qualifying=organization.principal_office_qualifying,
        legacy_employees=legacy,
        pending_employees=pending,
        risk_score=calculate_risk_score(percentage, total, legacy, threshold),
    )
    logger.debug(
        f"Compliance for {organization.organization_id} as of {as_of}: "
        f"{qualifying}/{total} = {percentage:.2f}% ({status.value})"
    )
    return snapshot
