from datetime import date, timedelta

import pytest

from compliance_model.state.models import Employee, Organization
from compliance_model.state.repository import InMemoryComplianceRepository

AS_OF = date(2025, 6, 30)
CERTIFIED = date(2022, 1, 1)
ORG = "ORG1"


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def org():
    return Organization(organization_id=ORG, certification_date=CERTIFIED, name="Acme Federal")


@pytest.fixture
def make_employee():
    """Factory for employees; ``resident_days`` sets a residency start that many days before AS_OF."""

    def _make(emp_id, resident_days=None, **overrides):
        fields = dict(
            employee_id=emp_id,
            organization_id=ORG,
            hire_date=date(2021, 1, 1),
        )
        if resident_days is not None:
            fields["is_qualifying_resident"] = True
            fields["residency_start_date"] = AS_OF - timedelta(days=resident_days)
            fields["last_verified"] = AS_OF - timedelta(days=10)
        fields.update(overrides)
        return Employee(**fields)

    return _make


@pytest.fixture
def workforce(make_employee):
    """10 active employees, 3 of them qualifying residents: 30.0%."""
    qualifying = [make_employee(f"Q{i}", resident_days=365) for i in range(3)]
    others = [make_employee(f"N{i}") for i in range(7)]
    return qualifying + others


@pytest.fixture
def repository(org, workforce):
    repo = InMemoryComplianceRepository()
    repo.save_organization(org)
    for emp in workforce:
        repo.save_employee(emp)
    return repo
