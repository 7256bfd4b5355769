from datetime import date, datetime

import pandas as pd
import pytest

from compliance_model.errors import InvalidInput, NotFound
from compliance_model.state.ledger import DataReadError, EmployeeLedger, read_census
from compliance_model.state.models import Employee, GracePeriod, Organization
from compliance_model.utils.status_enums import GraceState, GraceTrigger, ZoneType


def test_employee_requires_ids_and_hire_date():
    with pytest.raises(InvalidInput):
        Employee(employee_id="", organization_id="ORG1", hire_date=date(2020, 1, 1))
    with pytest.raises(InvalidInput):
        Employee(employee_id="E1", organization_id="", hire_date=date(2020, 1, 1))
    with pytest.raises(InvalidInput):
        Employee(employee_id="E1", organization_id="ORG1", hire_date=None)


def test_organization_threshold_bounds():
    with pytest.raises(InvalidInput):
        Organization("ORG1", date(2022, 1, 1), threshold=0.0)
    with pytest.raises(InvalidInput):
        Organization("ORG1", date(2022, 1, 1), threshold=101.0)
    assert Organization("ORG1", date(2022, 1, 1)).threshold == 35.0


def test_grace_period_state_and_coverage():
    period = GracePeriod("ORG1", date(2025, 1, 1), date(2025, 12, 31), GraceTrigger.THRESHOLD_MISS)
    assert period.state(date(2025, 12, 31)) is GraceState.ACTIVE
    assert period.state(date(2026, 1, 1)) is GraceState.EXPIRED
    assert period.covers(date(2025, 1, 1))
    assert not period.covers(date(2024, 12, 31))
    assert period.days_remaining(date(2025, 12, 1)) == 30
    with pytest.raises(InvalidInput):
        GracePeriod("ORG1", date(2025, 1, 2), date(2025, 1, 1), GraceTrigger.REDESIGNATION)


def test_ledger_rejects_duplicates(make_employee):
    with pytest.raises(InvalidInput):
        EmployeeLedger([make_employee("E1"), make_employee("E1")])


def test_ledger_operations_return_new_ledgers(make_employee):
    ledger = EmployeeLedger([make_employee("E1"), make_employee("E2")])
    bigger = ledger.with_employee(make_employee("E3"))
    smaller = bigger.with_deactivated("E1")

    assert len(ledger) == 2
    assert len(bigger) == 3
    assert "E3" in bigger and "E3" not in ledger
    assert [e.employee_id for e in smaller.active()] == ["E2", "E3"]
    assert bigger.get("E1").is_active
    with pytest.raises(NotFound):
        ledger.get("E9")
    with pytest.raises(NotFound):
        ledger.with_deactivated("E9")


def test_frame_round_trip(make_employee):
    employees = [
        make_employee("E1", resident_days=120, zone_type=ZoneType.QCT, address="1 Main St",
                      first_name="Ada", last_name="Lovelace"),
        make_employee("E2", is_active=False, is_legacy_employee=True),
    ]
    ledger = EmployeeLedger(employees)
    restored = EmployeeLedger.from_frame(ledger.to_frame())
    assert restored.employees == ledger.employees


def test_from_frame_uses_default_org_and_parses_flags():
    df = pd.DataFrame(
        [
            {"employee_id": "E1", "employee_hire_date": "2021-03-01", "active": "yes",
             "is_qualifying_resident": "true", "residency_start_date": "2024-01-15",
             "zone_type": "QCT"},
            {"employee_id": "E2", "employee_hire_date": "2022-07-01", "active": None},
        ]
    )
    ledger = EmployeeLedger.from_frame(df, organization_id="ORG9")
    e1 = ledger.get("E1")
    assert e1.organization_id == "ORG9"
    assert e1.is_qualifying_resident
    assert e1.residency_start_date == date(2024, 1, 15)
    assert e1.zone_type is ZoneType.QCT
    assert ledger.get("E2").is_active is True
    assert ledger.get("E2").address is None


def test_from_frame_validation():
    with pytest.raises(InvalidInput):
        EmployeeLedger.from_frame(pd.DataFrame([{"employee_id": "E1"}]), organization_id="ORG1")
    with pytest.raises(InvalidInput):
        EmployeeLedger.from_frame(
            pd.DataFrame([{"employee_id": "E1", "employee_hire_date": "2021-01-01"}])
        )
    with pytest.raises(InvalidInput):
        EmployeeLedger.from_frame(
            pd.DataFrame([{"employee_id": "E1", "employee_hire_date": "not a date"}]),
            organization_id="ORG1",
        )


def test_read_census_csv(tmp_path):
    path = tmp_path / "census.csv"
    path.write_text(
        "employee_id,organization_id,employee_hire_date,active,is_qualifying_resident,residency_start_date\n"
        "001,ORG1,2020-01-01,true,true,2024-01-01\n"
        "002,ORG1,2021-06-01,false,false,\n"
    )
    ledger = read_census(path)
    assert len(ledger) == 2
    assert ledger.get("001").is_qualifying_resident
    assert ledger.get("002").is_active is False
    assert ledger.get("002").residency_start_date is None


def test_read_census_parquet(tmp_path, make_employee):
    path = tmp_path / "census.parquet"
    EmployeeLedger([make_employee("E1", resident_days=100)]).to_frame().to_parquet(path)
    assert read_census(path).get("E1").is_qualifying_resident


def test_read_census_errors(tmp_path):
    with pytest.raises(DataReadError):
        read_census(tmp_path / "missing.csv")
    other = tmp_path / "census.xlsx"
    other.write_text("x")
    with pytest.raises(DataReadError):
        read_census(other)


def test_snapshot_to_dict(workforce, org, as_of):
    from compliance_model.engines.calculator import calculate

    data = calculate(workforce, as_of, org).to_dict()
    assert data["percentage"] == 30.0
    assert data["status"] == "warning"
    assert data["as_of"] == "2025-06-30"
    datetime.fromisoformat(data["created_at"])
