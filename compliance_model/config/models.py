# compliance_model/config/models.py
"""
Pydantic models for validating the compliance policy loaded from YAML files
(e.g., config/compliance_policy.yaml).

Every rule constant the engine relies on lives here so that policy changes
never require code changes.
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

# --- Policy constants ---

DEFAULT_THRESHOLD_PCT = 35.0
WARNING_BUFFER_PCT = 10.0
RESIDENCY_MIN_DAYS = 90
REDESIGNATION_GRACE_YEARS = 3
THRESHOLD_MISS_GRACE_MONTHS = 12
LEGACY_MAX_COUNT = 4
LEGACY_CAP_FRACTION = 0.25


class ComplianceRules(BaseModel):
    """Threshold arithmetic for the organization-level status."""

    default_threshold: float = Field(
        DEFAULT_THRESHOLD_PCT,
        gt=0.0,
        le=100.0,
        description="Threshold used when an organization does not carry its own (percent)",
    )
    warning_buffer: float = Field(
        WARNING_BUFFER_PCT,
        ge=0.0,
        le=100.0,
        description="Percentage points below threshold that still count as 'warning'",
    )


class ResidencyRules(BaseModel):
    min_days: int = Field(
        RESIDENCY_MIN_DAYS, ge=0, description="Minimum days of residency before an employee counts"
    )
    unknown_start_qualifies: bool = Field(
        True,
        description="Whether a resident with no recorded residency start date satisfies the minimum",
    )
    min_confidence: float = Field(
        0.8, ge=0.0, le=1.0, description="Provider confidence below which a fact is not trusted"
    )
    stale_verification_days: int = Field(
        90, ge=0, description="Days after which a manual address verification is considered stale"
    )


class LegacyRules(BaseModel):
    cap_fraction: float = Field(
        LEGACY_CAP_FRACTION,
        ge=0.0,
        le=1.0,
        description="Maximum share of qualifying employees that may be legacy employees",
    )
    max_count: Optional[int] = Field(
        LEGACY_MAX_COUNT, ge=0, description="Absolute cap on legacy employees (None disables)"
    )


class GraceRules(BaseModel):
    redesignation_years: int = Field(REDESIGNATION_GRACE_YEARS, ge=0)
    threshold_miss_months: int = Field(THRESHOLD_MISS_GRACE_MONTHS, ge=0)
    assume_compliant_at_certification: bool = Field(
        True,
        description="Whether a first calculation below threshold counts as a downward crossing",
    )


class AlertRules(BaseModel):
    breach_margin: float = Field(
        5.0, ge=0.0, description="Points above threshold treated as 'approaching breach'"
    )
    pending_lead_days: int = Field(
        80, ge=0, description="Days of residency after which a pending employee is 'near complete'"
    )
    grace_expiry_lead_days: int = Field(90, ge=0)
    small_workforce_size: int = Field(10, ge=0)

    @model_validator(mode="after")
    def check_margin(self) -> "AlertRules":
        if self.breach_margin > 50.0:
            logger.warning(
                f"Alert breach_margin of {self.breach_margin:.1f} points is unusually wide. Check config."
            )
        return self


class ForecastRules(BaseModel):
    history_window: int = Field(
        12, ge=1, le=500, description="Trailing snapshots used to fit the trend"
    )
    max_periods: int = Field(60, ge=1, le=600)
    period_days: int = Field(30, ge=1)
    min_history: int = Field(3, ge=2, description="Points required for a confident forecast")
    z_score: float = Field(1.96, gt=0.0, description="Width multiplier of the projection band")
    trend_change_points: float = Field(
        2.0, ge=0.0, description="Change over the window that counts as improving/declining"
    )


class PersistenceRules(BaseModel):
    max_retries: int = Field(3, ge=0)
    backoff_seconds: float = Field(0.05, ge=0.0)


class CompliancePolicy(BaseModel):
    """Container for all policy sections."""

    compliance: ComplianceRules = Field(default_factory=ComplianceRules)
    residency: ResidencyRules = Field(default_factory=ResidencyRules)
    legacy: LegacyRules = Field(default_factory=LegacyRules)
    grace: GraceRules = Field(default_factory=GraceRules)
    alerts: AlertRules = Field(default_factory=AlertRules)
    forecast: ForecastRules = Field(default_factory=ForecastRules)
    persistence: PersistenceRules = Field(default_factory=PersistenceRules)

    @model_validator(mode="after")
    def check_pending_lead(self) -> "CompliancePolicy":
        """The 'near complete' lead must fall inside the residency window."""
        if self.alerts.pending_lead_days > self.residency.min_days:
            raise ValueError(
                f"alerts.pending_lead_days ({self.alerts.pending_lead_days}) cannot exceed "
                f"residency.min_days ({self.residency.min_days})"
            )
        if self.forecast.min_history > self.forecast.history_window:
            raise ValueError("forecast.min_history cannot exceed forecast.history_window")
        return self


DEFAULT_POLICY = CompliancePolicy()


def resolve_policy(policy: Optional[CompliancePolicy]) -> CompliancePolicy:
    """Return ``policy`` or the module default."""
    return policy if policy is not None else DEFAULT_POLICY
