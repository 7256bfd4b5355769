# compliance_model/rules/eligibility.py
"""
Eligibility module for determining whether an employee counts toward the
organization's residency percentage on a given as-of date.

Rules, in priority order:
    1. inactive employees never count
    2. legacy employees always count
    3. qualifying residents count once resident for ``residency.min_days``
       (inclusive); before that they are reported as pending
    4. everyone else is a non-resident
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

import numpy as np
import pandas as pd

from compliance_model.config.models import CompliancePolicy, resolve_policy
from compliance_model.state.models import Employee
from compliance_model.state.schema import (
    COUNTS_TOWARD_COMPLIANCE,
    DAYS_RESIDENT,
    ELIGIBILITY_REASON,
    EMP_ACTIVE,
    IS_LEGACY,
    IS_QUALIFYING_RESIDENT,
    RESIDENCY_START_DATE,
)
from compliance_model.utils.date_utils import days_between
from compliance_model.utils.status_enums import EligibilityReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of evaluating one employee."""

    employee_id: str
    counts: bool
    reason: EligibilityReason
    days_resident: Optional[int] = None
    days_remaining: Optional[int] = None

    @property
    def is_pending(self) -> bool:
        return self.reason is EligibilityReason.PENDING_90_DAY


def evaluate(
    employee: Employee, as_of: date, policy: Optional[CompliancePolicy] = None
) -> EligibilityResult:
    """
    Evaluate a single employee. Pure function of its inputs.

    Args:
        employee: Employee record with pre-resolved residency facts.
        as_of: Evaluation date.
        policy: Compliance policy; defaults apply when omitted.

    Returns:
        EligibilityResult with the counting decision and its reason.
    """
    policy = resolve_policy(policy)
    emp_id = employee.employee_id

    if not employee.is_active:
        return EligibilityResult(emp_id, False, EligibilityReason.INACTIVE)

    if employee.is_legacy_employee:
        return EligibilityResult(emp_id, True, EligibilityReason.LEGACY)

    if employee.is_qualifying_resident:
        if employee.residency_start_date is None:
            if policy.residency.unknown_start_qualifies:
                return EligibilityResult(emp_id, True, EligibilityReason.QUALIFIED_RESIDENT)
            return EligibilityResult(emp_id, False, EligibilityReason.PENDING_90_DAY)

        days_resident = days_between(employee.residency_start_date, as_of)
        if days_resident >= policy.residency.min_days:
            return EligibilityResult(
                emp_id, True, EligibilityReason.QUALIFIED_RESIDENT, days_resident=days_resident
            )
        return EligibilityResult(
            emp_id,
            False,
            EligibilityReason.PENDING_90_DAY,
            days_resident=days_resident,
            days_remaining=policy.residency.min_days - days_resident,
        )

    return EligibilityResult(emp_id, False, EligibilityReason.NON_RESIDENT)


def evaluate_frame(
    df: pd.DataFrame, as_of: date, policy: Optional[CompliancePolicy] = None
) -> pd.DataFrame:
    """
    Apply the eligibility rules to a ledger DataFrame (see EmployeeLedger.to_frame).

    Returns a copy with ``counts_toward_compliance``, ``eligibility_reason`` and
    ``days_resident`` columns added.
    """
    policy = resolve_policy(policy)
    out = df.copy()
    if out.empty:
        out[COUNTS_TOWARD_COMPLIANCE] = pd.Series(dtype=bool)
        out[ELIGIBILITY_REASON] = pd.Series(dtype=object)
        out[DAYS_RESIDENT] = pd.Series(dtype="Int64")
        return out

    active = out[EMP_ACTIVE].fillna(False).astype(bool)
    legacy = out[IS_LEGACY].fillna(False).astype(bool)
    resident = out[IS_QUALIFYING_RESIDENT].fillna(False).astype(bool)
    start = pd.to_datetime(out[RESIDENCY_START_DATE], errors="coerce")
    days = (pd.Timestamp(as_of) - start).dt.days

    unknown_start = resident & start.isna()
    tenured = days >= policy.residency.min_days
    if policy.residency.unknown_start_qualifies:
        qualified = resident & (tenured | unknown_start)
    else:
        qualified = resident & tenured.fillna(False)

    conditions = [~active, legacy, qualified, resident]
    choices = [
        EligibilityReason.INACTIVE.value,
        EligibilityReason.LEGACY.value,
        EligibilityReason.QUALIFIED_RESIDENT.value,
        EligibilityReason.PENDING_90_DAY.value,
    ]
    out[ELIGIBILITY_REASON] = np.select(
        [c.fillna(False).to_numpy(dtype=bool) for c in conditions],
        choices,
        default=EligibilityReason.NON_RESIDENT.value,
    )
    out[COUNTS_TOWARD_COMPLIANCE] = out[ELIGIBILITY_REASON].isin(
        [EligibilityReason.LEGACY.value, EligibilityReason.QUALIFIED_RESIDENT.value]
    )
    out[DAYS_RESIDENT] = days.where(resident).astype("Int64")
    logger.debug(
        f"Evaluated {len(out)} ledger rows as of {as_of}: "
        f"{int(out[COUNTS_TOWARD_COMPLIANCE].sum())} counting"
    )
    return out
