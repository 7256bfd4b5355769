# compliance_model/projections/simulation.py
"""
Hypothetical workforce changes evaluated against a forked ledger.

Nothing here is persisted: each simulation clones the ledger, applies the
change and re-enters the calculator.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence, Tuple

from compliance_model.config.models import CompliancePolicy, resolve_policy
from compliance_model.engines.calculator import calculate
from compliance_model.errors import InvalidInput
from compliance_model.state.ledger import EmployeeLedger
from compliance_model.state.models import ComplianceSnapshot, Employee, GracePeriod, Organization

logger = logging.getLogger(__name__)

MAX_SCENARIO_WORKERS = 4


def simulate_hire(
    ledger: EmployeeLedger,
    employee: Employee,
    as_of: date,
    organization: Organization,
    policy: Optional[CompliancePolicy] = None,
    grace_period: Optional[GracePeriod] = None,
) -> ComplianceSnapshot:
    """
    Compliance as of ``as_of`` if ``employee`` were added to the workforce.

    Raises:
        InvalidInput: If the employee id already exists in the ledger.
    """
    forked = ledger.with_employee(employee)
    snapshot = calculate(forked, as_of, organization, policy, grace_period)
    logger.debug(
        f"Simulated hire of {employee.employee_id} for {organization.organization_id}: "
        f"{snapshot.percentage:.2f}%"
    )
    return snapshot


def simulate_termination(
    ledger: EmployeeLedger,
    employee_id: str,
    as_of: date,
    organization: Organization,
    policy: Optional[CompliancePolicy] = None,
    grace_period: Optional[GracePeriod] = None,
) -> ComplianceSnapshot:
    """
    Compliance as of ``as_of`` if ``employee_id`` left the workforce.

    Raises:
        NotFound: If the employee id is not in the ledger.
    """
    forked = ledger.with_deactivated(employee_id)
    snapshot = calculate(forked, as_of, organization, policy, grace_period)
    logger.debug(
        f"Simulated termination of {employee_id} for {organization.organization_id}: "
        f"{snapshot.percentage:.2f}%"
    )
    return snapshot


@dataclass(frozen=True)
class Scenario:
    """A named batch of hypothetical hires and terminations."""

    name: str
    hires: Tuple[Employee, ...] = ()
    terminations: Tuple[str, ...] = ()

    def apply(self, ledger: EmployeeLedger) -> EmployeeLedger:
        forked = ledger
        for emp in self.hires:
            forked = forked.with_employee(emp)
        for emp_id in self.terminations:
            forked = forked.with_deactivated(emp_id)
        return forked


@dataclass(frozen=True)
class ScenarioResult:
    scenario: str
    snapshot: ComplianceSnapshot
    baseline_percentage: float

    @property
    def percentage(self) -> float:
        return self.snapshot.percentage

    @property
    def change(self) -> float:
        return self.snapshot.percentage - self.baseline_percentage

    def to_dict(self):
        return {
            "scenario": self.scenario,
            "percentage": round(self.percentage, 2),
            "change": round(self.change, 2),
            "status": self.snapshot.status.value,
        }


def scenario_analysis(
    ledger: EmployeeLedger,
    scenarios: Sequence[Scenario],
    as_of: date,
    organization: Organization,
    policy: Optional[CompliancePolicy] = None,
    grace_period: Optional[GracePeriod] = None,
    max_workers: int = MAX_SCENARIO_WORKERS,
) -> List[ScenarioResult]:
    """
    Evaluate each scenario independently against the same baseline ledger.

    Results are ranked by resulting percentage (highest first), ties by
    scenario name. Scenario names must be unique.
    """
    policy = resolve_policy(policy)
    names = [s.name for s in scenarios]
    if len(set(names)) != len(names):
        raise InvalidInput(f"Scenario names must be unique: {names}")
    if not scenarios:
        return []

    baseline = calculate(ledger, as_of, organization, policy, grace_period)

    def _run(scenario: Scenario) -> ScenarioResult:
        forked = scenario.apply(ledger)
        snapshot = calculate(forked, as_of, organization, policy, grace_period)
        return ScenarioResult(scenario.name, snapshot, baseline.percentage)

    workers = max(1, min(max_workers, len(scenarios)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        results = list(executor.map(_run, scenarios))

    results.sort(key=lambda r: (-r.percentage, r.scenario))
    logger.info(
        f"Evaluated {len(results)} scenario(s) for {organization.organization_id}; "
        f"best: {results[0].scenario} ({results[0].percentage:.2f}%)"
    )
    return results


@dataclass
class WorkforcePlan:
    target_percentage: float
    current_total: int
    current_qualifying: int
    future_total: int
    qualifying_needed: int
    additional_qualifying_hires: int
    recommendations: List[str] = field(default_factory=list)


def plan_workforce(
    snapshot: ComplianceSnapshot,
    target_percentage: float,
    planned_hires: int,
    planned_terminations: int = 0,
) -> WorkforcePlan:
    """
    Qualifying hires needed to hold ``target_percentage`` after planned growth.

    Terminations are assumed to fall proportionally on qualifying and
    non-qualifying employees.
    """
    if not (0.0 < target_percentage <= 100.0):
        raise InvalidInput(f"Target percentage must be in (0, 100], got {target_percentage}")
    if planned_hires < 0 or planned_terminations < 0:
        raise InvalidInput("Planned hires and terminations must be non-negative")
    if planned_terminations > snapshot.total_employees:
        raise InvalidInput(
            f"Cannot terminate {planned_terminations} of {snapshot.total_employees} employees"
        )

    total = snapshot.total_employees
    qualifying = snapshot.qualifying_employees
    future_total = total + planned_hires - planned_terminations
    if total:
        retained_qualifying = qualifying - math.floor(planned_terminations * qualifying / total)
    else:
        retained_qualifying = 0
    qualifying_needed = math.ceil(round(target_percentage / 100.0 * future_total, 9))
    additional = max(0, qualifying_needed - retained_qualifying)

    recommendations: List[str] = []
    if additional > planned_hires:
        recommendations.append(
            f"Planned hiring of {planned_hires} cannot reach {target_percentage:.0f}%; "
            f"{additional} qualifying hires are needed"
        )
    elif additional > 0:
        recommendations.append(
            f"Fill at least {additional} of {planned_hires} planned position(s) with qualifying residents"
        )
        recommendations.append("Partner with local workforce agencies in qualifying zones")
    else:
        recommendations.append("Planned changes keep the target without additional qualifying hires")
    if future_total < 10:
        recommendations.append("Maintain a larger buffer: each hire moves a small workforce significantly")

    return WorkforcePlan(
        target_percentage=target_percentage,
        current_total=total,
        current_qualifying=qualifying,
        future_total=future_total,
        qualifying_needed=qualifying_needed,
        additional_qualifying_hires=additional,
        recommendations=recommendations,
    )
