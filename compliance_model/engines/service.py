# compliance_model/engines/service.py
"""
ComplianceEngine: the caller-facing surface over the evaluator, calculator,
grace tracker, alert generator and projections.

Every operation takes explicit ids. Writes for one organization are
serialized by a per-organization lock; reads (simulations, forecasts,
history) work on copies taken at call time and do not lock.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from compliance_model.config.models import CompliancePolicy, resolve_policy
from compliance_model.engines.alerts import Alert, generate_alerts
from compliance_model.engines.calculator import calculate
from compliance_model.engines.grace import GracePeriodTracker, GraceTransition
from compliance_model.errors import ExternalProviderUnavailable, InvalidInput, PersistenceConflict
from compliance_model.projections.forecast import forecast_compliance
from compliance_model.projections.simulation import (
    Scenario,
    ScenarioResult,
    WorkforcePlan,
    plan_workforce,
    scenario_analysis,
    simulate_hire,
    simulate_termination,
)
from compliance_model.reporting.metrics import RiskAssessment, assess_risk
from compliance_model.rules.eligibility import EligibilityResult, evaluate
from compliance_model.rules.residency import (
    ResidencyFactProvider,
    apply_residency_fact,
    is_verification_stale,
    resolve_fact,
)
from compliance_model.state.ledger import EmployeeLedger
from compliance_model.state.models import (
    ComplianceSnapshot,
    Employee,
    GracePeriod,
    Organization,
    ProjectedSnapshot,
)
from compliance_model.state.repository import ComplianceRepository
from compliance_model.utils.status_enums import EligibilityReason, GraceState, GraceTrigger

logger = logging.getLogger(__name__)


@dataclass
class EmployeeStatus:
    """Eligibility of one employee plus the factors that put it at risk."""

    employee_id: str
    organization_id: str
    name: str
    as_of: date
    counts: bool
    reason: EligibilityReason
    days_resident: Optional[int] = None
    days_remaining: Optional[int] = None
    is_qualifying_resident: bool = False
    is_legacy_employee: bool = False
    last_verified: Optional[date] = None
    risk_factors: List[str] = field(default_factory=list)

    @property
    def meets_residency_requirement(self) -> bool:
        return self.reason is not EligibilityReason.PENDING_90_DAY

    def to_dict(self):
        return {
            "employee_id": self.employee_id,
            "organization_id": self.organization_id,
            "name": self.name,
            "as_of": self.as_of.isoformat(),
            "counts": self.counts,
            "reason": self.reason.value,
            "days_resident": self.days_resident,
            "days_remaining": self.days_remaining,
            "is_qualifying_resident": self.is_qualifying_resident,
            "is_legacy_employee": self.is_legacy_employee,
            "last_verified": self.last_verified.isoformat() if self.last_verified else None,
            "risk_factors": list(self.risk_factors),
        }


@dataclass
class GraceStatus:
    """The organization's grace period standing on one date."""

    organization_id: str
    as_of: date
    state: GraceState
    trigger: Optional[GraceTrigger] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_remaining: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.state is GraceState.ACTIVE

    def to_dict(self):
        return {
            "organization_id": self.organization_id,
            "as_of": self.as_of.isoformat(),
            "state": self.state.value,
            "trigger": self.trigger.value if self.trigger else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "days_remaining": self.days_remaining,
        }


@dataclass
class LegacyRoster:
    organization_id: str
    employees: List[Employee]
    max_allowed: Optional[int] = None

    @property
    def count(self) -> int:
        return len(self.employees)

    @property
    def remaining(self) -> Optional[int]:
        if self.max_allowed is None:
            return None
        return max(0, self.max_allowed - self.count)


@dataclass
class AtRiskRoster:
    organization_id: str
    employees: List[Employee]

    @property
    def count(self) -> int:
        return len(self.employees)

    @property
    def recommendation(self) -> str:
        if self.employees:
            return "Consider assisting these employees with relocation to stable qualifying areas"
        return "No employees at risk from redesignation"


@dataclass
class ResidencyRoster:
    """Active qualifying residents split into those meeting the minimum and those pending."""

    organization_id: str
    as_of: date
    qualified: List[str] = field(default_factory=list)
    pending: List[EligibilityResult] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.pending:
            return f"{len(self.pending)} employee(s) pending residency qualification"
        return "All qualifying residents meet residency requirements"


def _risk_factors(
    employee: Employee, result: EligibilityResult, as_of: date, policy: CompliancePolicy
) -> List[str]:
    factors: List[str] = []
    if not employee.is_active:
        factors.append("Employee is inactive")
    if not employee.is_qualifying_resident and not employee.is_legacy_employee:
        factors.append("Not a qualifying zone resident")
    if employee.at_risk_redesignation:
        factors.append("Located in area at risk of redesignation")
    if result.reason is EligibilityReason.PENDING_90_DAY:
        factors.append(f"Has not met {policy.residency.min_days}-day residency requirement")
    if is_verification_stale(employee, as_of, policy):
        factors.append("Address verification is stale")
    return factors


class ComplianceEngine:
    """
    Compliance operations over a repository.

    Args:
        repository: Record store for organizations, employees, snapshots and
            grace periods.
        policy: Compliance policy; defaults apply when omitted.
        residency_provider: Zone lookup used by ``refresh_residency``.
        clock: Returns today's date; used whenever ``as_of`` is omitted.
        sleep: Called with the backoff delay between persistence retries.
    """

    def __init__(
        self,
        repository: ComplianceRepository,
        policy: Optional[CompliancePolicy] = None,
        residency_provider: Optional[ResidencyFactProvider] = None,
        clock: Callable[[], date] = date.today,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repository = repository
        self.policy = resolve_policy(policy)
        self.residency_provider = residency_provider
        self.clock = clock
        self.tracker = GracePeriodTracker(self.policy)
        self._sleep = sleep
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # --- Internals ---

    def _org_lock(self, organization_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(organization_id)
            if lock is None:
                lock = self._locks[organization_id] = threading.Lock()
            return lock

    def _as_of(self, as_of: Optional[date]) -> date:
        return as_of if as_of is not None else self.clock()

    def _latest_grace_period(self, organization_id: str) -> Optional[GracePeriod]:
        periods = self.repository.get_grace_periods(organization_id)
        return periods[-1] if periods else None

    def _ledger(self, organization_id: str) -> EmployeeLedger:
        return EmployeeLedger(self.repository.list_employees(organization_id))

    def _current_snapshot(self, organization: Organization, as_of: date) -> ComplianceSnapshot:
        """Unpersisted snapshot using the grace period currently on record."""
        org_id = organization.organization_id
        return calculate(
            self.repository.list_employees(org_id),
            as_of,
            organization,
            self.policy,
            self.repository.get_active_grace_period(org_id),
        )

    def _append_with_retry(
        self, organization_id: str, snapshot: ComplianceSnapshot
    ) -> ComplianceSnapshot:
        """Append with exponential backoff on PersistenceConflict; returns the appended snapshot."""
        retries = self.policy.persistence.max_retries
        backoff = self.policy.persistence.backoff_seconds
        attempt = 0
        while True:
            try:
                self.repository.append_snapshot(organization_id, snapshot)
                return snapshot
            except PersistenceConflict as e:
                if attempt >= retries:
                    logger.error(
                        f"Giving up appending snapshot for {organization_id} after "
                        f"{attempt + 1} attempt(s): {e}"
                    )
                    raise
                delay = backoff * (2 ** attempt)
                logger.warning(
                    f"Snapshot append conflict for {organization_id} (attempt {attempt + 1}); "
                    f"retrying in {delay:.3f}s"
                )
                self._sleep(delay)
                attempt += 1
                snapshot = replace(snapshot, snapshot_id=str(uuid.uuid4()))

    def _apply_transition(self, organization_id: str, transition: GraceTransition) -> None:
        if transition.changed and transition.period is not None:
            self.repository.upsert_grace_period(organization_id, transition.period)
            logger.info(
                f"Grace period {transition.event} for {organization_id}: "
                f"{transition.period.start_date} to {transition.period.end_date} "
                f"(active={transition.period.active})"
            )

    # --- Compliance ---

    def calculate_compliance(
        self, organization_id: str, as_of: Optional[date] = None
    ) -> ComplianceSnapshot:
        """
        Calculate, apply the grace transition and append the snapshot.

        History read, grace transition, snapshot append and grace upsert run
        under the organization's lock.
        """
        as_of = self._as_of(as_of)
        organization = self.repository.get_organization(organization_id)
        with self._org_lock(organization_id):
            employees = self.repository.list_employees(organization_id)
            raw = calculate(employees, as_of, organization, self.policy)

            # An empty workforce carries no percentage to cross from
            earlier = [
                s
                for s in self.repository.get_history(organization_id)
                if s.as_of <= as_of and s.total_employees > 0
            ]
            previous = max(earlier, key=lambda s: (s.as_of, s.created_at)) if earlier else None
            period = self._latest_grace_period(organization_id)
            if raw.total_employees == 0:
                transition = self.tracker.expire(period, as_of)
            else:
                transition = self.tracker.evaluate(
                    organization, period, previous, raw.percentage, as_of
                )

            snapshot = calculate(
                employees, as_of, organization, self.policy, transition.active_period
            )
            snapshot = self._append_with_retry(organization_id, snapshot)
            self._apply_transition(organization_id, transition)

        logger.info(
            f"Compliance for {organization_id} as of {as_of}: {snapshot.percentage:.2f}% "
            f"({snapshot.status.value})"
        )
        return snapshot

    def check_employee_status(
        self, employee_id: str, as_of: Optional[date] = None
    ) -> EmployeeStatus:
        as_of = self._as_of(as_of)
        employee = self.repository.get_employee(employee_id)
        result = evaluate(employee, as_of, self.policy)
        return EmployeeStatus(
            employee_id=employee.employee_id,
            organization_id=employee.organization_id,
            name=employee.name,
            as_of=as_of,
            counts=result.counts,
            reason=result.reason,
            days_resident=result.days_resident,
            days_remaining=result.days_remaining,
            is_qualifying_resident=employee.is_qualifying_resident,
            is_legacy_employee=employee.is_legacy_employee,
            last_verified=employee.last_verified,
            risk_factors=_risk_factors(employee, result, as_of, self.policy),
        )

    def get_compliance_history(
        self, organization_id: str, since: Optional[date] = None
    ) -> List[ComplianceSnapshot]:
        self.repository.get_organization(organization_id)
        return self.repository.get_history(organization_id, since=since)

    def generate_alerts(self, organization_id: str, as_of: Optional[date] = None) -> List[Alert]:
        """Alerts for the organization's current state; nothing is persisted."""
        as_of = self._as_of(as_of)
        organization = self.repository.get_organization(organization_id)
        employees = self.repository.list_employees(organization_id)
        grace_period = self.repository.get_active_grace_period(organization_id)
        snapshot = calculate(employees, as_of, organization, self.policy, grace_period)
        history = [s for s in self.repository.get_history(organization_id) if s.as_of < as_of]
        return generate_alerts(
            snapshot,
            employees,
            as_of,
            organization=organization,
            history=history + [snapshot],
            grace_period=grace_period,
            policy=self.policy,
        )

    def check_grace_period(self, organization_id: str, as_of: Optional[date] = None) -> GraceStatus:
        """State of the most recent grace period on ``as_of``; nothing is persisted."""
        as_of = self._as_of(as_of)
        self.repository.get_organization(organization_id)
        periods = self.repository.get_grace_periods(organization_id)
        state = self.tracker.current_state(periods, as_of)
        if not periods:
            return GraceStatus(organization_id, as_of, state)
        latest = periods[-1]
        return GraceStatus(
            organization_id=organization_id,
            as_of=as_of,
            state=state,
            trigger=latest.trigger,
            start_date=latest.start_date,
            end_date=latest.end_date,
            days_remaining=latest.days_remaining(as_of) if state is GraceState.ACTIVE else None,
        )

    def assess_risk(self, organization_id: str, as_of: Optional[date] = None) -> RiskAssessment:
        as_of = self._as_of(as_of)
        organization = self.repository.get_organization(organization_id)
        snapshot = self._current_snapshot(organization, as_of)
        return assess_risk(
            snapshot,
            self.repository.list_employees(organization_id),
            organization.threshold,
            self.policy.alerts.small_workforce_size,
        )

    # --- Rosters ---

    def _active_employees(self, organization_id: str) -> List[Employee]:
        self.repository.get_organization(organization_id)
        return [e for e in self.repository.list_employees(organization_id) if e.is_active]

    def get_legacy_employees(self, organization_id: str) -> LegacyRoster:
        employees = [e for e in self._active_employees(organization_id) if e.is_legacy_employee]
        return LegacyRoster(organization_id, employees, self.policy.legacy.max_count)

    def get_at_risk_employees(self, organization_id: str) -> AtRiskRoster:
        employees = [e for e in self._active_employees(organization_id) if e.at_risk_redesignation]
        return AtRiskRoster(organization_id, employees)

    def check_residency_requirements(
        self, organization_id: str, as_of: Optional[date] = None
    ) -> ResidencyRoster:
        as_of = self._as_of(as_of)
        roster = ResidencyRoster(organization_id, as_of)
        for emp in self._active_employees(organization_id):
            if not emp.is_qualifying_resident:
                continue
            result = evaluate(emp, as_of, self.policy)
            if result.is_pending:
                roster.pending.append(result)
            else:
                roster.qualified.append(emp.employee_id)
        return roster

    # --- Projections ---

    def simulate_hire(
        self, organization_id: str, employee: Employee, as_of: Optional[date] = None
    ) -> ComplianceSnapshot:
        as_of = self._as_of(as_of)
        organization = self.repository.get_organization(organization_id)
        return simulate_hire(
            self._ledger(organization_id),
            employee,
            as_of,
            organization,
            self.policy,
            self.repository.get_active_grace_period(organization_id),
        )

    def simulate_termination(
        self, organization_id: str, employee_id: str, as_of: Optional[date] = None
    ) -> ComplianceSnapshot:
        as_of = self._as_of(as_of)
        organization = self.repository.get_organization(organization_id)
        return simulate_termination(
            self._ledger(organization_id),
            employee_id,
            as_of,
            organization,
            self.policy,
            self.repository.get_active_grace_period(organization_id),
        )

    def scenario_analysis(
        self,
        organization_id: str,
        scenarios: Sequence[Scenario],
        as_of: Optional[date] = None,
    ) -> List[ScenarioResult]:
        as_of = self._as_of(as_of)
        organization = self.repository.get_organization(organization_id)
        return scenario_analysis(
            self._ledger(organization_id),
            scenarios,
            as_of,
            organization,
            self.policy,
            self.repository.get_active_grace_period(organization_id),
        )

    def forecast_compliance(self, organization_id: str, periods: int) -> List[ProjectedSnapshot]:
        organization = self.repository.get_organization(organization_id)
        history = self.repository.get_history(organization_id)
        start = None if history else self.clock()
        return forecast_compliance(
            history, periods, self.policy, start=start, threshold=organization.threshold
        )

    def plan_workforce(
        self,
        organization_id: str,
        target_percentage: float,
        planned_hires: int,
        planned_terminations: int = 0,
    ) -> WorkforcePlan:
        organization = self.repository.get_organization(organization_id)
        snapshot = self._current_snapshot(organization, self.clock())
        return plan_workforce(snapshot, target_percentage, planned_hires, planned_terminations)

    # --- Workforce changes ---

    def record_redesignation(
        self, organization_id: str, employee_ids: Iterable[str], effective_date: date
    ) -> GraceTransition:
        """
        Record that the zones of ``employee_ids`` lost their designation.

        The employees stop being qualifying residents. If the organization
        falls below threshold as a result, a redesignation grace period is
        opened (or an active one extended).

        Raises:
            NotFound: Unknown organization or employee.
            InvalidInput: An employee belongs to another organization, or the
                effective date precedes certification.
        """
        organization = self.repository.get_organization(organization_id)
        employee_ids = list(employee_ids)
        with self._org_lock(organization_id):
            affected = []
            for emp_id in employee_ids:
                emp = self.repository.get_employee(emp_id)
                if emp.organization_id != organization_id:
                    raise InvalidInput(
                        f"Employee {emp_id} belongs to {emp.organization_id}, not {organization_id}"
                    )
                affected.append(
                    replace(
                        emp,
                        is_qualifying_resident=False,
                        zone_type=None,
                        residency_start_date=None,
                        at_risk_redesignation=False,
                    )
                )

            by_id = {e.employee_id: e for e in affected}
            after = [
                by_id.get(e.employee_id, e)
                for e in self.repository.list_employees(organization_id)
            ]
            snapshot_after = calculate(after, effective_date, organization, self.policy)
            period = self._latest_grace_period(organization_id)
            if snapshot_after.total_employees == 0:
                transition = self.tracker.expire(period, effective_date)
            else:
                transition = self.tracker.on_redesignation(
                    organization, period, snapshot_after.percentage, effective_date
                )

            for emp in affected:
                self.repository.save_employee(emp)
            self._apply_transition(organization_id, transition)

        logger.info(
            f"Recorded redesignation for {len(affected)} employee(s) of {organization_id} "
            f"effective {effective_date}: {snapshot_after.percentage:.2f}% after"
        )
        return transition

    def promote_to_legacy(self, organization_id: str, employee_id: str) -> Employee:
        """
        Grant the legacy carve-out to an active employee.

        Raises:
            InvalidInput: The employee is inactive, already legacy, belongs to
                another organization, or the legacy cap is already reached.
        """
        self.repository.get_organization(organization_id)
        with self._org_lock(organization_id):
            employee = self.repository.get_employee(employee_id)
            if employee.organization_id != organization_id:
                raise InvalidInput(
                    f"Employee {employee_id} belongs to {employee.organization_id}, "
                    f"not {organization_id}"
                )
            if not employee.is_active:
                raise InvalidInput(f"Employee {employee_id} is inactive")
            if employee.is_legacy_employee:
                raise InvalidInput(f"Employee {employee_id} is already a legacy employee")

            max_count = self.policy.legacy.max_count
            legacy_count = sum(
                1
                for e in self.repository.list_employees(organization_id)
                if e.is_active and e.is_legacy_employee
            )
            if max_count is not None and legacy_count >= max_count:
                raise InvalidInput(
                    f"Legacy cap reached for {organization_id}: {legacy_count}/{max_count}"
                )

            promoted = replace(employee, is_legacy_employee=True)
            self.repository.save_employee(promoted)

        logger.info(
            f"Promoted {employee_id} to legacy for {organization_id} "
            f"({legacy_count + 1} legacy employee(s))"
        )
        return promoted

    def refresh_residency(self, employee_id: str, as_of: Optional[date] = None) -> Employee:
        """
        Re-resolve an employee's residency through the residency provider.

        Raises:
            ExternalProviderUnavailable: No provider is configured or the
                lookup failed. Residency is never defaulted.
        """
        as_of = self._as_of(as_of)
        if self.residency_provider is None:
            raise ExternalProviderUnavailable("No residency provider configured")
        employee = self.repository.get_employee(employee_id)
        if not employee.address:
            raise InvalidInput(f"Employee {employee_id} has no address on file")
        fact = resolve_fact(self.residency_provider, employee.address)

        with self._org_lock(employee.organization_id):
            current = self.repository.get_employee(employee_id)
            updated = apply_residency_fact(current, fact, as_of, self.policy)
            if updated is not current:
                self.repository.save_employee(updated)

        logger.info(
            f"Refreshed residency for {employee_id}: resident={updated.is_qualifying_resident} "
            f"(confidence {fact.confidence:.2f})"
        )
        return updated
