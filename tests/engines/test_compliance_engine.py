import threading
from dataclasses import replace
from datetime import date, timedelta

import pytest

from compliance_model.config.models import CompliancePolicy, GraceRules, PersistenceRules
from compliance_model.engines.service import ComplianceEngine
from compliance_model.errors import (
    ExternalProviderUnavailable,
    InvalidInput,
    NotFound,
    PersistenceConflict,
)
from compliance_model.projections.simulation import Scenario
from compliance_model.rules.residency import ResidencyFact
from compliance_model.state.repository import InMemoryComplianceRepository
from compliance_model.utils.status_enums import (
    AlertType,
    ComplianceStatus,
    EligibilityReason,
    GraceState,
    GraceTrigger,
    ZoneType,
)


class FlakyRepository(InMemoryComplianceRepository):
    """Raises PersistenceConflict on the first ``failures`` appends."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def append_snapshot(self, organization_id, snapshot):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise PersistenceConflict("concurrent writer")
        super().append_snapshot(organization_id, snapshot)


class StaticProvider:
    def __init__(self, fact):
        self.fact = fact

    def resolve_residency(self, address):
        return self.fact


def _engine(repository, as_of, **kwargs):
    return ComplianceEngine(repository, clock=lambda: as_of, **kwargs)


def _seed(repo, org, employees):
    repo.save_organization(org)
    for emp in employees:
        repo.save_employee(emp)
    return repo


def test_calculate_compliance_appends_snapshot(repository, as_of):
    engine = _engine(repository, as_of)
    snap = engine.calculate_compliance("ORG1")
    assert snap.as_of == as_of
    assert engine.get_compliance_history("ORG1") == [snap]


def test_first_drop_opens_threshold_miss_grace(repository, as_of):
    engine = _engine(repository, as_of)
    snap = engine.calculate_compliance("ORG1")
    assert snap.percentage == pytest.approx(30.0)
    assert snap.status is ComplianceStatus.COMPLIANT
    assert snap.grace_period_active

    period = repository.get_active_grace_period("ORG1")
    assert period.trigger is GraceTrigger.THRESHOLD_MISS
    assert period.end_date == date(2026, 6, 30)


def test_grace_expires_and_status_reverts(repository, as_of):
    engine = _engine(repository, as_of)
    engine.calculate_compliance("ORG1")
    later = engine.calculate_compliance("ORG1", date(2026, 7, 1))
    assert later.status is ComplianceStatus.WARNING
    assert later.grace_period_active is False
    assert repository.get_active_grace_period("ORG1") is None
    assert [p.active for p in repository.get_grace_periods("ORG1")] == [False]


def test_repeated_calculation_is_idempotent(repository, as_of):
    engine = _engine(repository, as_of)
    first = engine.calculate_compliance("ORG1")
    second = engine.calculate_compliance("ORG1")
    assert (first.percentage, first.status) == (second.percentage, second.status)
    assert len(repository.get_grace_periods("ORG1")) == 1


def test_zero_employees_does_not_open_grace(org, as_of):
    repo = _seed(InMemoryComplianceRepository(), org, [])
    snap = _engine(repo, as_of).calculate_compliance("ORG1")
    assert snap.status is ComplianceStatus.CRITICAL
    assert repo.get_grace_periods("ORG1") == []


def test_unknown_organization(repository, as_of):
    engine = _engine(repository, as_of)
    with pytest.raises(NotFound):
        engine.calculate_compliance("NOPE")
    with pytest.raises(NotFound):
        engine.get_compliance_history("NOPE")


def test_concurrent_calculations_are_serialized(repository, as_of):
    engine = _engine(repository, as_of)
    errors = []

    def run():
        try:
            engine.calculate_compliance("ORG1")
        except Exception as e:  # pragma: no cover - surfaced by the assert below
            errors.append(e)

    threads = [threading.Thread(target=run) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(repository.get_history("ORG1")) == 8
    assert len(repository.get_grace_periods("ORG1")) == 1


def test_append_retries_with_backoff(org, workforce, as_of):
    repo = _seed(FlakyRepository(failures=2), org, workforce)
    delays = []
    engine = _engine(repo, as_of, sleep=delays.append)

    snap = engine.calculate_compliance("ORG1")

    assert repo.attempts == 3
    assert delays == pytest.approx([0.05, 0.1])
    assert [s.snapshot_id for s in repo.get_history("ORG1")] == [snap.snapshot_id]


def test_append_gives_up_after_max_retries(org, workforce, as_of):
    repo = _seed(FlakyRepository(failures=10), org, workforce)
    policy = CompliancePolicy(persistence=PersistenceRules(max_retries=2, backoff_seconds=0.0))
    engine = _engine(repo, as_of, policy=policy, sleep=lambda s: None)

    with pytest.raises(PersistenceConflict):
        engine.calculate_compliance("ORG1")
    assert repo.attempts == 3
    assert repo.get_history("ORG1") == []
    assert repo.get_grace_periods("ORG1") == []


def test_check_employee_status(repository, as_of, make_employee):
    repository.save_employee(make_employee("P1", resident_days=85, at_risk_redesignation=True))
    status = _engine(repository, as_of).check_employee_status("P1")
    assert status.reason is EligibilityReason.PENDING_90_DAY
    assert status.days_remaining == 5
    assert not status.meets_residency_requirement
    assert "Located in area at risk of redesignation" in status.risk_factors
    assert status.to_dict()["reason"] == "pending_90_day"


def test_check_unknown_employee(repository, as_of):
    with pytest.raises(NotFound):
        _engine(repository, as_of).check_employee_status("missing")


def test_simulate_hire_of_120_day_resident(repository, as_of, make_employee):
    engine = _engine(repository, as_of)
    snap = engine.simulate_hire("ORG1", make_employee("H1", resident_days=120))
    assert snap.total_employees == 11
    assert snap.qualifying_employees == 4
    assert snap.percentage == pytest.approx(36.3636, abs=1e-3)
    assert snap.status is ComplianceStatus.COMPLIANT
    assert repository.get_history("ORG1") == []
    with pytest.raises(NotFound):
        repository.get_employee("H1")


def test_simulate_hire_duplicate_id(repository, as_of, make_employee):
    with pytest.raises(InvalidInput):
        _engine(repository, as_of).simulate_hire("ORG1", make_employee("Q0", resident_days=120))


def test_simulate_termination(repository, as_of):
    engine = _engine(repository, as_of)
    snap = engine.simulate_termination("ORG1", "N0")
    assert snap.total_employees == 9
    assert snap.percentage == pytest.approx(100.0 / 3)
    with pytest.raises(NotFound):
        engine.simulate_termination("ORG1", "missing")
    assert repository.get_employee("N0").is_active


def test_scenario_analysis_via_engine(repository, as_of, make_employee):
    scenarios = [
        Scenario("hire two", hires=(make_employee("H1", resident_days=200), make_employee("H2", resident_days=200))),
        Scenario("lose one", terminations=("Q0",)),
    ]
    results = _engine(repository, as_of).scenario_analysis("ORG1", scenarios)
    assert [r.scenario for r in results] == ["hire two", "lose one"]


def test_generate_alerts_does_not_persist(repository, as_of):
    engine = _engine(repository, as_of)
    alerts = engine.generate_alerts("ORG1")
    assert AlertType.THRESHOLD_BREACHED in [a.alert_type for a in alerts]
    assert repository.get_history("ORG1") == []


def test_record_redesignation_opens_grace(org, as_of, make_employee):
    employees = [make_employee(f"Q{i}", resident_days=300) for i in range(4)]
    employees += [make_employee(f"N{i}") for i in range(6)]
    repo = _seed(InMemoryComplianceRepository(), org, employees)
    engine = _engine(repo, as_of)

    transition = engine.record_redesignation("ORG1", ["Q0", "Q1"], as_of)

    assert transition.event == "opened"
    assert transition.period.trigger is GraceTrigger.REDESIGNATION
    assert transition.period.end_date == date(2028, 6, 30)
    assert repo.get_employee("Q0").is_qualifying_resident is False
    snap = engine.calculate_compliance("ORG1")
    assert snap.percentage == pytest.approx(20.0)
    assert snap.status is ComplianceStatus.COMPLIANT
    assert len(repo.get_grace_periods("ORG1")) == 1


def test_record_redesignation_above_threshold(org, as_of, make_employee):
    employees = [make_employee(f"Q{i}", resident_days=300) for i in range(6)]
    employees += [make_employee(f"N{i}") for i in range(4)]
    repo = _seed(InMemoryComplianceRepository(), org, employees)
    transition = _engine(repo, as_of).record_redesignation("ORG1", ["Q0"], as_of)
    assert not transition.changed
    assert repo.get_grace_periods("ORG1") == []


def test_record_redesignation_rejects_foreign_employee(repository, as_of, make_employee):
    repository.save_employee(make_employee("X1", organization_id="ORG2"))
    with pytest.raises(InvalidInput):
        _engine(repository, as_of).record_redesignation("ORG1", ["Q0", "X1"], as_of)
    assert repository.get_employee("Q0").is_qualifying_resident


def test_promote_to_legacy_enforces_cap(repository, as_of):
    engine = _engine(repository, as_of)
    for emp_id in ["N0", "N1", "N2", "N3"]:
        assert engine.promote_to_legacy("ORG1", emp_id).is_legacy_employee
    with pytest.raises(InvalidInput):
        engine.promote_to_legacy("ORG1", "N4")
    assert repository.get_employee("N4").is_legacy_employee is False


def test_promote_to_legacy_rejects_repeat(repository, as_of):
    engine = _engine(repository, as_of)
    engine.promote_to_legacy("ORG1", "N0")
    with pytest.raises(InvalidInput):
        engine.promote_to_legacy("ORG1", "N0")


def test_refresh_residency(repository, as_of, make_employee):
    repository.save_employee(make_employee("R1", address="12 Elm St"))
    fact = ResidencyFact(True, ZoneType.QCT, as_of - timedelta(days=100), 0.95)
    engine = _engine(repository, as_of, residency_provider=StaticProvider(fact))

    updated = engine.refresh_residency("R1")

    assert updated.is_qualifying_resident
    assert repository.get_employee("R1") == updated
    assert engine.check_employee_status("R1").counts


def test_refresh_residency_without_provider(repository, as_of, make_employee):
    repository.save_employee(make_employee("R1", address="12 Elm St"))
    with pytest.raises(ExternalProviderUnavailable):
        _engine(repository, as_of).refresh_residency("R1")


def test_forecast_and_history_since(repository, as_of):
    days = [0, 30, 60, 90]
    for d in days:
        _engine(repository, as_of + timedelta(days=d)).calculate_compliance("ORG1")
    engine = _engine(repository, as_of)

    assert len(engine.get_compliance_history("ORG1", since=as_of + timedelta(days=45))) == 2
    forecast = engine.forecast_compliance("ORG1", 3)
    assert [p.period for p in forecast] == [1, 2, 3]
    assert all(p.percentage == pytest.approx(30.0) for p in forecast)
    assert not any(p.low_confidence for p in forecast)


def test_plan_workforce_and_assess_risk(repository, as_of):
    engine = _engine(repository, as_of)
    plan = engine.plan_workforce("ORG1", 35.0, planned_hires=10)
    assert plan.future_total == 20
    assert plan.qualifying_needed == 7
    assert plan.additional_qualifying_hires == 4

    risk = engine.assess_risk("ORG1")
    assert risk.overall_risk == "high"


def test_empty_workforce_does_not_mask_later_drop(org, as_of, make_employee):
    first = [make_employee(f"R{i}", resident_days=365) for i in range(2)]
    first += [make_employee(f"S{i}") for i in range(2)]
    repo = _seed(InMemoryComplianceRepository(), org, first)
    engine = _engine(repo, as_of)

    staffed = engine.calculate_compliance("ORG1", as_of - timedelta(days=60))
    assert staffed.percentage == pytest.approx(50.0)

    for emp in first:
        repo.save_employee(replace(emp, is_active=False))
    empty = engine.calculate_compliance("ORG1", as_of - timedelta(days=30))
    assert empty.status is ComplianceStatus.CRITICAL
    assert repo.get_grace_periods("ORG1") == []

    for emp in [make_employee(f"Q{i}", resident_days=365) for i in range(3)]:
        repo.save_employee(emp)
    for emp in [make_employee(f"N{i}") for i in range(7)]:
        repo.save_employee(emp)
    rehired = engine.calculate_compliance("ORG1", as_of)

    assert rehired.percentage == pytest.approx(30.0)
    assert rehired.status is ComplianceStatus.COMPLIANT
    period = repo.get_active_grace_period("ORG1")
    assert period.trigger is GraceTrigger.THRESHOLD_MISS
    assert period.start_date == as_of


def test_first_calculation_below_threshold_can_stay_uncovered(repository, as_of):
    policy = CompliancePolicy(grace=GraceRules(assume_compliant_at_certification=False))
    snap = _engine(repository, as_of, policy=policy).calculate_compliance("ORG1")
    assert snap.status is ComplianceStatus.WARNING
    assert snap.grace_period_active is False
    assert repository.get_grace_periods("ORG1") == []


def test_check_grace_period_without_history(repository, as_of):
    status = _engine(repository, as_of).check_grace_period("ORG1")
    assert status.state is GraceState.NONE
    assert not status.is_active
    assert status.end_date is None
    assert status.days_remaining is None


def test_check_grace_period_active_then_expired(repository, as_of):
    engine = _engine(repository, as_of)
    engine.calculate_compliance("ORG1")

    status = engine.check_grace_period("ORG1")
    assert status.is_active
    assert status.trigger is GraceTrigger.THRESHOLD_MISS
    assert status.start_date == as_of
    assert status.end_date == date(2026, 6, 30)
    assert status.days_remaining == 365
    assert status.to_dict()["state"] == "active"

    later = engine.check_grace_period("ORG1", date(2026, 7, 1))
    assert later.state is GraceState.EXPIRED
    assert later.end_date == date(2026, 6, 30)
    assert later.days_remaining is None


def test_check_grace_period_unknown_org(repository, as_of):
    with pytest.raises(NotFound):
        _engine(repository, as_of).check_grace_period("NOPE")


def test_legacy_roster(org, as_of, make_employee):
    employees = [
        make_employee("L0", is_legacy_employee=True),
        make_employee("L1", is_legacy_employee=True),
        make_employee("L2", is_legacy_employee=True, is_active=False),
        make_employee("Q0", resident_days=365),
    ]
    engine = _engine(_seed(InMemoryComplianceRepository(), org, employees), as_of)
    roster = engine.get_legacy_employees("ORG1")
    assert [e.employee_id for e in roster.employees] == ["L0", "L1"]
    assert roster.count == 2
    assert roster.max_allowed == 4
    assert roster.remaining == 2


def test_at_risk_roster(org, as_of, make_employee):
    employees = [
        make_employee("A0", resident_days=365, at_risk_redesignation=True),
        make_employee("A1", resident_days=365, at_risk_redesignation=True, is_active=False),
        make_employee("Q0", resident_days=365),
    ]
    engine = _engine(_seed(InMemoryComplianceRepository(), org, employees), as_of)
    roster = engine.get_at_risk_employees("ORG1")
    assert [e.employee_id for e in roster.employees] == ["A0"]
    assert roster.count == 1
    assert roster.recommendation.startswith("Consider assisting")

    engine.repository.save_employee(replace(employees[0], at_risk_redesignation=False))
    cleared = engine.get_at_risk_employees("ORG1")
    assert cleared.count == 0
    assert cleared.recommendation == "No employees at risk from redesignation"


def test_residency_requirements_roster(workforce, org, as_of, make_employee):
    employees = workforce + [
        make_employee("P0", resident_days=85),
        make_employee("L0", is_legacy_employee=True),
    ]
    engine = _engine(_seed(InMemoryComplianceRepository(), org, employees), as_of)
    roster = engine.check_residency_requirements("ORG1")
    assert roster.qualified == ["Q0", "Q1", "Q2"]
    assert [r.employee_id for r in roster.pending] == ["P0"]
    assert roster.pending[0].days_remaining == 5
    assert roster.message == "1 employee(s) pending residency qualification"


def test_residency_requirements_all_met(repository, as_of):
    roster = _engine(repository, as_of).check_residency_requirements("ORG1")
    assert len(roster.qualified) == 3
    assert roster.pending == []
    assert roster.message == "All qualifying residents meet residency requirements"
