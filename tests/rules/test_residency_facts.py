from datetime import date, timedelta

import pytest

from compliance_model.errors import ExternalProviderUnavailable, InvalidInput
from compliance_model.rules.residency import (
    ResidencyFact,
    apply_residency_fact,
    is_verification_stale,
    resolve_fact,
)
from compliance_model.utils.status_enums import ZoneType


class StaticProvider:
    def __init__(self, fact):
        self.fact = fact
        self.calls = []

    def resolve_residency(self, address):
        self.calls.append(address)
        return self.fact


class BrokenProvider:
    def resolve_residency(self, address):
        raise TimeoutError("zone service timed out")


def test_resolve_fact_wraps_provider_errors():
    with pytest.raises(ExternalProviderUnavailable):
        resolve_fact(BrokenProvider(), "1 Main St")


def test_resolve_fact_requires_address():
    with pytest.raises(InvalidInput):
        resolve_fact(StaticProvider(ResidencyFact(True)), "")


def test_resolve_fact_returns_provider_fact():
    fact = ResidencyFact(True, ZoneType.QCT, date(2024, 1, 1), 0.95)
    provider = StaticProvider(fact)
    assert resolve_fact(provider, "1 Main St") is fact
    assert provider.calls == ["1 Main St"]


def test_confidence_out_of_range_rejected():
    with pytest.raises(InvalidInput):
        ResidencyFact(True, confidence=1.5)


def test_qualifying_fact_sets_residency(make_employee, as_of):
    emp = make_employee("E1")
    fact = ResidencyFact(True, ZoneType.QNMC, as_of - timedelta(days=30), 0.9)
    updated = apply_residency_fact(emp, fact, as_of)
    assert updated.is_qualifying_resident
    assert updated.zone_type is ZoneType.QNMC
    assert updated.residency_start_date == as_of - timedelta(days=30)
    assert emp.is_qualifying_resident is False


def test_qualifying_fact_keeps_existing_start(make_employee, as_of):
    emp = make_employee("E1", resident_days=200)
    updated = apply_residency_fact(emp, ResidencyFact(True, ZoneType.QCT), as_of)
    assert updated.residency_start_date == emp.residency_start_date


def test_non_qualifying_fact_clears_residency(make_employee, as_of):
    emp = make_employee("E1", resident_days=200, zone_type=ZoneType.QCT)
    updated = apply_residency_fact(emp, ResidencyFact(False), as_of)
    assert updated.is_qualifying_resident is False
    assert updated.zone_type is None
    assert updated.residency_start_date is None


def test_low_confidence_without_verification_is_non_qualifying(make_employee, as_of):
    emp = make_employee("E1", is_qualifying_resident=True, residency_start_date=date(2024, 1, 1))
    updated = apply_residency_fact(emp, ResidencyFact(True, ZoneType.QCT, confidence=0.5), as_of)
    assert updated.is_qualifying_resident is False


def test_low_confidence_with_manual_verification_keeps_record(make_employee, as_of):
    emp = make_employee("E1", resident_days=200)
    updated = apply_residency_fact(emp, ResidencyFact(False, confidence=0.5), as_of)
    assert updated is emp


def test_future_residency_start_rejected(make_employee, as_of):
    fact = ResidencyFact(True, ZoneType.QCT, as_of + timedelta(days=1))
    with pytest.raises(InvalidInput):
        apply_residency_fact(make_employee("E1"), fact, as_of)


def test_verification_staleness(make_employee, as_of):
    assert is_verification_stale(make_employee("E1"), as_of)
    fresh = make_employee("E2", last_verified=as_of - timedelta(days=90))
    stale = make_employee("E3", last_verified=as_of - timedelta(days=91))
    assert not is_verification_stale(fresh, as_of)
    assert is_verification_stale(stale, as_of)
