# compliance_model/rules/residency.py
"""
Consumption of residency facts from the external zone-lookup service.

The engine never geocodes. A provider resolves an address to a
``ResidencyFact``; this module decides how much of that fact to trust and
folds it into an employee record.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional, Protocol

from compliance_model.config.models import CompliancePolicy, resolve_policy
from compliance_model.errors import ExternalProviderUnavailable, InvalidInput
from compliance_model.state.models import Employee
from compliance_model.utils.status_enums import ZoneType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResidencyFact:
    """Zone membership of an address as reported by the provider."""

    is_qualifying_resident: bool
    zone_type: Optional[ZoneType] = None
    since: Optional[date] = None
    confidence: float = 1.0

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence <= 1.0):
            raise InvalidInput(f"Residency fact confidence must be in [0, 1], got {self.confidence}")


class ResidencyFactProvider(Protocol):
    """External zone-lookup oracle."""

    def resolve_residency(self, address: str) -> ResidencyFact:
        ...


def resolve_fact(provider: ResidencyFactProvider, address: str) -> ResidencyFact:
    """
    Ask the provider for a fact, translating any failure into
    ExternalProviderUnavailable. No default residency is ever assumed.
    """
    if not address:
        raise InvalidInput("Cannot resolve residency without an address")
    try:
        fact = provider.resolve_residency(address)
    except ExternalProviderUnavailable:
        raise
    except Exception as e:
        logger.error(f"Residency provider failed for address '{address}': {e}")
        raise ExternalProviderUnavailable(f"Residency lookup failed: {e}") from e
    if not isinstance(fact, ResidencyFact):
        raise ExternalProviderUnavailable(
            f"Residency provider returned {type(fact).__name__}, expected ResidencyFact"
        )
    return fact


def is_manually_verified(employee: Employee) -> bool:
    return employee.last_verified is not None


def is_verification_stale(
    employee: Employee, as_of: date, policy: Optional[CompliancePolicy] = None
) -> bool:
    """True when the address was never verified or the verification is too old."""
    policy = resolve_policy(policy)
    if employee.last_verified is None:
        return True
    return (as_of - employee.last_verified).days > policy.residency.stale_verification_days


def apply_residency_fact(
    employee: Employee,
    fact: ResidencyFact,
    as_of: date,
    policy: Optional[CompliancePolicy] = None,
) -> Employee:
    """
    Return a copy of ``employee`` updated with ``fact``.

    Low-confidence facts are treated as non-qualifying, unless the employee
    has a manual verification on file, in which case the stored residency
    attributes are kept unchanged. Confidence is never upgraded.
    """
    policy = resolve_policy(policy)

    if fact.confidence < policy.residency.min_confidence:
        if is_manually_verified(employee):
            logger.info(
                f"Low-confidence fact ({fact.confidence:.2f}) for {employee.employee_id}; "
                f"keeping manually verified residency from {employee.last_verified}"
            )
            return employee
        logger.info(
            f"Low-confidence fact ({fact.confidence:.2f}) for {employee.employee_id}; "
            "treating as non-resident"
        )
        return replace(
            employee, is_qualifying_resident=False, zone_type=None, residency_start_date=None
        )

    if not fact.is_qualifying_resident:
        return replace(
            employee, is_qualifying_resident=False, zone_type=None, residency_start_date=None
        )

    start = fact.since
    if start is None and employee.is_qualifying_resident:
        start = employee.residency_start_date
    if start is not None and start > as_of:
        raise InvalidInput(
            f"Residency start {start} for {employee.employee_id} is after the as-of date {as_of}"
        )
    return replace(
        employee,
        is_qualifying_resident=True,
        zone_type=fact.zone_type,
        residency_start_date=start,
    )
