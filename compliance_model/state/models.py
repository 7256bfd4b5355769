# compliance_model/state/models.py
"""
Record types shared by the evaluator, calculator, tracker and projections.

All records are frozen dataclasses: a change produces a new instance via
``dataclasses.replace`` so snapshots and simulations never alias live state.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Optional

from compliance_model.config.models import DEFAULT_THRESHOLD_PCT
from compliance_model.errors import InvalidInput
from compliance_model.utils.status_enums import (
    ComplianceStatus,
    GraceState,
    GraceTrigger,
    ZoneType,
)


@dataclass(frozen=True)
class Employee:
    """An employee with employment status and pre-resolved residency facts."""

    employee_id: str
    organization_id: str
    hire_date: date
    is_active: bool = True
    is_qualifying_resident: bool = False
    zone_type: Optional[ZoneType] = None
    residency_start_date: Optional[date] = None
    is_legacy_employee: bool = False
    at_risk_redesignation: bool = False
    last_verified: Optional[date] = None
    address: Optional[str] = None
    first_name: str = ""
    last_name: str = ""

    def __post_init__(self) -> None:
        if not self.employee_id:
            raise InvalidInput("Employee is missing employee_id")
        if not self.organization_id:
            raise InvalidInput(f"Employee {self.employee_id} is missing organization_id")
        if self.hire_date is None:
            raise InvalidInput(f"Employee {self.employee_id} is missing hire_date")
        if not isinstance(self.hire_date, date):
            raise InvalidInput(
                f"Employee {self.employee_id} hire_date must be a date, got {type(self.hire_date).__name__}"
            )
        if self.residency_start_date is not None and not isinstance(self.residency_start_date, date):
            raise InvalidInput(f"Employee {self.employee_id} residency_start_date must be a date")

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Organization:
    """A certified firm and the parameters of its residency requirement."""

    organization_id: str
    certification_date: date
    threshold: float = DEFAULT_THRESHOLD_PCT
    principal_office_qualifying: bool = True
    name: str = ""

    def __post_init__(self) -> None:
        if not self.organization_id:
            raise InvalidInput("Organization is missing organization_id")
        if not isinstance(self.certification_date, date):
            raise InvalidInput(
                f"Organization {self.organization_id} requires a certification_date"
            )
        if not (0.0 < self.threshold <= 100.0):
            raise InvalidInput(
                f"Organization {self.organization_id} threshold must be in (0, 100], got {self.threshold}"
            )


@dataclass(frozen=True)
class ComplianceSnapshot:
    """Immutable point-in-time result of a compliance calculation.

    ``percentage`` is always the raw percentage; a grace override only
    changes ``status``.
    """

    organization_id: str
    as_of: date
    total_employees: int
    qualifying_employees: int
    percentage: float
    status: ComplianceStatus
    grace_period_active: bool = False
    grace_period_end: Optional[date] = None
    principal_office_qualifying: bool = True
    legacy_employees: int = 0
    pending_employees: int = 0
    risk_score: int = 0
    snapshot_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshot_id": self.snapshot_id,
            "organization_id": self.organization_id,
            "as_of": self.as_of.isoformat(),
            "total_employees": self.total_employees,
            "qualifying_employees": self.qualifying_employees,
            "percentage": round(self.percentage, 2),
            "status": self.status.value,
            "grace_period_active": self.grace_period_active,
            "grace_period_end": self.grace_period_end.isoformat() if self.grace_period_end else None,
            "principal_office_qualifying": self.principal_office_qualifying,
            "legacy_employees": self.legacy_employees,
            "pending_employees": self.pending_employees,
            "risk_score": self.risk_score,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class GracePeriod:
    """A bounded window during which the organization is treated as compliant."""

    organization_id: str
    start_date: date
    end_date: date
    trigger: GraceTrigger
    active: bool = True
    period_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if self.end_date < self.start_date:
            raise InvalidInput(
                f"Grace period end {self.end_date} precedes its start {self.start_date}"
            )

    def state(self, as_of: date) -> GraceState:
        """
        Expired once ``as_of`` is past ``end_date`` (the end date itself is
        covered). A period that has not started yet does not apply.
        """
        if not self.active or as_of > self.end_date:
            return GraceState.EXPIRED
        if as_of < self.start_date:
            return GraceState.NONE
        return GraceState.ACTIVE

    def covers(self, as_of: date) -> bool:
        return self.active and self.start_date <= as_of <= self.end_date

    def days_remaining(self, as_of: date) -> int:
        return (self.end_date - as_of).days


@dataclass(frozen=True)
class ProjectedSnapshot:
    """One forecast point; bounds are clipped to [0, 100]."""

    period: int
    as_of: date
    percentage: float
    status: ComplianceStatus
    lower_bound: float
    upper_bound: float
    variance: float
    low_confidence: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "as_of": self.as_of.isoformat(),
            "percentage": round(self.percentage, 2),
            "status": self.status.value,
            "lower_bound": round(self.lower_bound, 2),
            "upper_bound": round(self.upper_bound, 2),
            "variance": round(self.variance, 4),
            "low_confidence": self.low_confidence,
        }
