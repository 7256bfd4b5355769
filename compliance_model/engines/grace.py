# compliance_model/engines/grace.py
"""
Grace Period Tracker.

State machine per organization::

    none    -> active   threshold miss (downward crossing) or redesignation
                        that leaves the organization below threshold
    active  -> active   a new trigger extends to the later end date
    active  -> expired  as_of > end_date

The tracker is stateless; the organization's periods live in the repository
and the tracker returns the transition to persist.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional, Sequence

from compliance_model.config.models import CompliancePolicy, resolve_policy
from compliance_model.state.models import ComplianceSnapshot, GracePeriod, Organization
from compliance_model.utils.date_utils import add_months, add_years
from compliance_model.utils.status_enums import GraceState, GraceTrigger

logger = logging.getLogger(__name__)

EVENT_UNCHANGED = "unchanged"
EVENT_OPENED = "opened"
EVENT_EXTENDED = "extended"
EVENT_EXPIRED = "expired"


@dataclass(frozen=True)
class GraceTransition:
    """Result of a tracker step. ``period`` is what must be persisted when ``changed``."""

    state: GraceState
    period: Optional[GracePeriod]
    event: str = EVENT_UNCHANGED

    @property
    def changed(self) -> bool:
        return self.event != EVENT_UNCHANGED

    @property
    def active_period(self) -> Optional[GracePeriod]:
        if self.state is GraceState.ACTIVE:
            return self.period
        return None


class GracePeriodTracker:
    """Applies grace period policy; holds only the policy."""

    def __init__(self, policy: Optional[CompliancePolicy] = None):
        self.policy = resolve_policy(policy)

    def end_date_for(self, trigger: GraceTrigger, start: date) -> date:
        if trigger is GraceTrigger.REDESIGNATION:
            return add_years(start, self.policy.grace.redesignation_years)
        return add_months(start, self.policy.grace.threshold_miss_months)

    def state(self, period: Optional[GracePeriod], as_of: date) -> GraceState:
        if period is None:
            return GraceState.NONE
        return period.state(as_of)

    def current_state(self, periods: Sequence[GracePeriod], as_of: date) -> GraceState:
        """State from the most recent period, which alone is authoritative."""
        return self.state(periods[-1] if periods else None, as_of)

    def open(self, organization_id: str, trigger: GraceTrigger, as_of: date) -> GracePeriod:
        period = GracePeriod(
            organization_id=organization_id,
            start_date=as_of,
            end_date=self.end_date_for(trigger, as_of),
            trigger=trigger,
        )
        logger.info(
            f"Opened {trigger.value} grace period for {organization_id}: "
            f"{period.start_date} to {period.end_date}"
        )
        return period

    def extend(self, period: GracePeriod, trigger: GraceTrigger, as_of: date) -> GracePeriod:
        """Keep the later of the current and the newly computed end dates."""
        candidate = self.end_date_for(trigger, as_of)
        if candidate <= period.end_date:
            return period
        logger.info(
            f"Extended grace period for {period.organization_id} from "
            f"{period.end_date} to {candidate} ({trigger.value})"
        )
        return replace(period, end_date=candidate, trigger=trigger)

    def _trigger(
        self,
        organization_id: str,
        period: Optional[GracePeriod],
        trigger: GraceTrigger,
        as_of: date,
    ) -> GraceTransition:
        if period is not None and period.state(as_of) is GraceState.ACTIVE:
            extended = self.extend(period, trigger, as_of)
            event = EVENT_EXTENDED if extended is not period else EVENT_UNCHANGED
            return GraceTransition(GraceState.ACTIVE, extended, event)
        return GraceTransition(
            GraceState.ACTIVE, self.open(organization_id, trigger, as_of), EVENT_OPENED
        )

    def expire(self, period: Optional[GracePeriod], as_of: date) -> GraceTransition:
        """Deactivate ``period`` once ``as_of`` is past its end date; no new triggers."""
        if period is not None and period.active and as_of > period.end_date:
            logger.info(f"Grace period for {period.organization_id} expired on {period.end_date}")
            return GraceTransition(GraceState.EXPIRED, replace(period, active=False), EVENT_EXPIRED)
        return GraceTransition(self.state(period, as_of), period, EVENT_UNCHANGED)

    def evaluate(
        self,
        organization: Organization,
        period: Optional[GracePeriod],
        previous_snapshot: Optional[ComplianceSnapshot],
        raw_percentage: float,
        as_of: date,
    ) -> GraceTransition:
        """
        Advance the state machine for a new calculation.

        Args:
            organization: The organization being calculated.
            period: Its most recent grace period (active or not), if any.
            previous_snapshot: The latest earlier snapshot with employees. None
                means no such snapshot; the organization then counts as compliant
                at certification unless
                ``grace.assume_compliant_at_certification`` is off.
            raw_percentage: The new raw percentage.
            as_of: Calculation date.
        """
        org_id = organization.organization_id
        threshold = organization.threshold
        expiry = self.expire(period, as_of)

        if previous_snapshot is None:
            was_compliant = self.policy.grace.assume_compliant_at_certification
        else:
            was_compliant = previous_snapshot.percentage >= threshold
        crossed_below = raw_percentage < threshold and was_compliant
        if crossed_below:
            logger.info(
                f"{org_id} fell below threshold ({raw_percentage:.2f}% < {threshold:.2f}%) on {as_of}"
            )
            return self._trigger(org_id, expiry.period, GraceTrigger.THRESHOLD_MISS, as_of)
        return expiry

    def on_redesignation(
        self,
        organization: Organization,
        period: Optional[GracePeriod],
        percentage_after: float,
        as_of: date,
    ) -> GraceTransition:
        """Open or extend a redesignation grace period if the loss threatens compliance."""
        expiry = self.expire(period, as_of)
        if percentage_after < organization.threshold:
            logger.info(
                f"Redesignation leaves {organization.organization_id} at {percentage_after:.2f}% "
                f"on {as_of}"
            )
            return self._trigger(
                organization.organization_id, expiry.period, GraceTrigger.REDESIGNATION, as_of
            )
        return expiry
