# compliance_model/utils/status_enums.py

from enum import Enum


class EligibilityReason(Enum):
    """Why an employee does or does not count toward compliance."""

    INACTIVE = "inactive"
    LEGACY = "legacy"
    QUALIFIED_RESIDENT = "qualified_resident"
    PENDING_90_DAY = "pending_90_day"
    NON_RESIDENT = "non_resident"


class ComplianceStatus(Enum):
    """Organization-level compliance status."""

    COMPLIANT = "compliant"
    WARNING = "warning"
    CRITICAL = "critical"


class ZoneType(Enum):
    """Designation types reported by the residency fact provider."""

    QCT = "qualified_census_tract"
    QNMC = "qualified_nonmetropolitan_county"
    INDIAN_LANDS = "indian_lands"
    BRAC = "base_closure_area"
    DISASTER = "disaster_area"
    REDESIGNATED = "redesignated"
    GOVERNOR = "governor_designated"


class GraceTrigger(Enum):
    """Events that open or extend a grace period."""

    REDESIGNATION = "redesignation"
    THRESHOLD_MISS = "threshold_miss"


class GraceState(Enum):
    """States of the grace period tracker."""

    NONE = "none"
    ACTIVE = "active"
    EXPIRED = "expired"


class AlertSeverity(Enum):
    """Alert severities; ``rank`` orders critical first."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.INFO: 2,
}


class AlertType(Enum):
    """Enumeration of alert types emitted by the alert generator."""

    THRESHOLD_BREACH_IMMINENT = "threshold_breach_imminent"
    THRESHOLD_BREACHED = "threshold_breached"
    PRINCIPAL_OFFICE_NOT_QUALIFYING = "principal_office_not_qualifying"
    PENDING_RESIDENCY_NEAR_COMPLETE = "pending_residency_near_complete"
    LEGACY_CAP_EXCEEDED = "legacy_cap_exceeded"
    GRACE_PERIOD_EXPIRING = "grace_period_expiring"
    REDESIGNATION_RISK = "redesignation_risk"
    SMALL_WORKFORCE_RISK = "small_workforce_risk"
    STALE_VERIFICATION = "stale_verification"


class TrendDirection(Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class Volatility(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Explicit exports
__all__ = [
    "EligibilityReason",
    "ComplianceStatus",
    "ZoneType",
    "GraceTrigger",
    "GraceState",
    "AlertSeverity",
    "AlertType",
    "TrendDirection",
    "Volatility",
]
