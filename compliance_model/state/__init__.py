# compliance_model/state/__init__.py
"""
State package: employee/organization records, the employee ledger and the
snapshot/grace-period repository.
"""

from .ledger import EmployeeLedger
from .models import ComplianceSnapshot, Employee, GracePeriod, Organization, ProjectedSnapshot
from .repository import (
    ComplianceRepository,
    InMemoryComplianceRepository,
    ParquetComplianceRepository,
)

__all__ = [
    "ComplianceSnapshot",
    "Employee",
    "EmployeeLedger",
    "GracePeriod",
    "Organization",
    "ProjectedSnapshot",
    "ComplianceRepository",
    "InMemoryComplianceRepository",
    "ParquetComplianceRepository",
]
