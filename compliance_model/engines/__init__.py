# compliance_model/engines/__init__.py
"""
Compliance engines: calculator, grace period tracker, alert generator and the
caller-facing ComplianceEngine service.
"""

from .alerts import Alert, generate_alerts
from .calculator import calculate, classify_status
from .grace import GracePeriodTracker, GraceTransition
from .service import (
    AtRiskRoster,
    ComplianceEngine,
    EmployeeStatus,
    GraceStatus,
    LegacyRoster,
    ResidencyRoster,
)

__all__ = [
    "Alert",
    "AtRiskRoster",
    "ComplianceEngine",
    "EmployeeStatus",
    "GraceStatus",
    "GracePeriodTracker",
    "GraceTransition",
    "LegacyRoster",
    "ResidencyRoster",
    "calculate",
    "classify_status",
    "generate_alerts",
]
