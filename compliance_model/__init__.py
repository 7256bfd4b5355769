# compliance_model/__init__.py
"""
Residency compliance model: eligibility, compliance calculation, grace
periods, alerts and projections for zone-residency requirements.
"""

from compliance_model.engines import ComplianceEngine, generate_alerts
from compliance_model.errors import (
    ComplianceModelError,
    ExternalProviderUnavailable,
    InvalidInput,
    NotFound,
    PersistenceConflict,
)
from compliance_model.projections import forecast_compliance, scenario_analysis
from compliance_model.state import (
    EmployeeLedger,
    Employee,
    InMemoryComplianceRepository,
    Organization,
    ParquetComplianceRepository,
)

__version__ = "0.1.0"

__all__ = [
    "ComplianceEngine",
    "ComplianceModelError",
    "Employee",
    "EmployeeLedger",
    "ExternalProviderUnavailable",
    "InMemoryComplianceRepository",
    "InvalidInput",
    "NotFound",
    "Organization",
    "ParquetComplianceRepository",
    "PersistenceConflict",
    "forecast_compliance",
    "generate_alerts",
    "scenario_analysis",
]
