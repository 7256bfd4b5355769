# compliance_model/state/repository.py
"""
Persistence boundary for organizations, employees, compliance snapshots and
grace periods.

The engine depends only on the ``ComplianceRepository`` protocol. Two
implementations are provided: an in-memory store and a variant that keeps the
append-only snapshot log in a Parquet file.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from compliance_model.errors import NotFound, PersistenceConflict
from compliance_model.state.models import ComplianceSnapshot, Employee, GracePeriod, Organization
from compliance_model.state.schema import (
    GRACE_ACTIVE,
    GRACE_END,
    GRACE_PERIOD_ID,
    GRACE_START,
    GRACE_TRIGGER,
    ORG_ID,
    SNAPSHOT_AS_OF,
    SNAPSHOT_COLS,
    SNAPSHOT_CREATED_AT,
    SNAPSHOT_GRACE_ACTIVE,
    SNAPSHOT_GRACE_END,
    SNAPSHOT_ID,
    SNAPSHOT_LEGACY,
    SNAPSHOT_OFFICE,
    SNAPSHOT_PENDING,
    SNAPSHOT_PERCENTAGE,
    SNAPSHOT_QUALIFYING,
    SNAPSHOT_RISK,
    SNAPSHOT_STATUS,
    SNAPSHOT_TOTAL,
)
from compliance_model.utils.date_utils import to_date
from compliance_model.utils.status_enums import ComplianceStatus, GraceTrigger

logger = logging.getLogger(__name__)


class ComplianceRepository(Protocol):
    """Record store consumed by the compliance engine."""

    def append_snapshot(self, organization_id: str, snapshot: ComplianceSnapshot) -> None:
        ...

    def get_history(
        self, organization_id: str, since: Optional[date] = None
    ) -> List[ComplianceSnapshot]:
        ...

    def get_active_grace_period(self, organization_id: str) -> Optional[GracePeriod]:
        ...

    def get_grace_periods(self, organization_id: str) -> List[GracePeriod]:
        ...

    def upsert_grace_period(self, organization_id: str, period: GracePeriod) -> None:
        ...

    def get_organization(self, organization_id: str) -> Organization:
        ...

    def save_organization(self, organization: Organization) -> None:
        ...

    def list_employees(self, organization_id: str) -> List[Employee]:
        ...

    def get_employee(self, employee_id: str) -> Employee:
        ...

    def save_employee(self, employee: Employee) -> None:
        ...


class InMemoryComplianceRepository:
    """Dictionary-backed repository; safe to share between threads."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._organizations: Dict[str, Organization] = {}
        self._employees: Dict[str, Employee] = {}
        self._snapshots: Dict[str, List[ComplianceSnapshot]] = defaultdict(list)
        self._grace_periods: Dict[str, List[GracePeriod]] = defaultdict(list)

    # --- Organizations & employees ---

    def save_organization(self, organization: Organization) -> None:
        with self._lock:
            self._organizations[organization.organization_id] = organization

    def get_organization(self, organization_id: str) -> Organization:
        with self._lock:
            try:
                return self._organizations[organization_id]
            except KeyError:
                raise NotFound(f"Organization not found: {organization_id}") from None

    def save_employee(self, employee: Employee) -> None:
        with self._lock:
            self._employees[employee.employee_id] = employee

    def get_employee(self, employee_id: str) -> Employee:
        with self._lock:
            try:
                return self._employees[employee_id]
            except KeyError:
                raise NotFound(f"Employee not found: {employee_id}") from None

    def list_employees(self, organization_id: str) -> List[Employee]:
        with self._lock:
            self.get_organization(organization_id)
            return [e for e in self._employees.values() if e.organization_id == organization_id]

    # --- Snapshot log ---

    def append_snapshot(self, organization_id: str, snapshot: ComplianceSnapshot) -> None:
        with self._lock:
            log = self._snapshots[organization_id]
            if any(s.snapshot_id == snapshot.snapshot_id for s in log):
                raise PersistenceConflict(
                    f"Snapshot {snapshot.snapshot_id} already appended for {organization_id}"
                )
            log.append(snapshot)
            logger.debug(
                f"Appended snapshot {snapshot.snapshot_id} for {organization_id} ({len(log)} total)"
            )

    def get_history(
        self, organization_id: str, since: Optional[date] = None
    ) -> List[ComplianceSnapshot]:
        """Snapshots in append order, optionally restricted to ``as_of >= since``."""
        with self._lock:
            log = list(self._snapshots.get(organization_id, []))
        if since is not None:
            log = [s for s in log if s.as_of >= since]
        return log

    # --- Grace periods ---

    def upsert_grace_period(self, organization_id: str, period: GracePeriod) -> None:
        with self._lock:
            periods = self._grace_periods[organization_id]
            for i, existing in enumerate(periods):
                if existing.period_id == period.period_id:
                    periods[i] = period
                    break
            else:
                # A new period supersedes any other active one
                for i, existing in enumerate(periods):
                    if existing.active:
                        periods[i] = replace(existing, active=False)
                periods.append(period)

    def get_grace_periods(self, organization_id: str) -> List[GracePeriod]:
        with self._lock:
            return list(self._grace_periods.get(organization_id, []))

    def get_active_grace_period(self, organization_id: str) -> Optional[GracePeriod]:
        with self._lock:
            active = [p for p in self._grace_periods.get(organization_id, []) if p.active]
        return active[-1] if active else None


# Explicit Parquet schema for the snapshot log
SNAPSHOT_SCHEMA = pa.schema(
    [
        pa.field(SNAPSHOT_ID, pa.string(), nullable=False),
        pa.field(ORG_ID, pa.string(), nullable=False),
        pa.field(SNAPSHOT_AS_OF, pa.date32(), nullable=False),
        pa.field(SNAPSHOT_TOTAL, pa.int64(), nullable=False),
        pa.field(SNAPSHOT_QUALIFYING, pa.int64(), nullable=False),
        pa.field(SNAPSHOT_PERCENTAGE, pa.float64(), nullable=False),
        pa.field(SNAPSHOT_STATUS, pa.string(), nullable=False),
        pa.field(SNAPSHOT_GRACE_ACTIVE, pa.bool_(), nullable=False),
        pa.field(SNAPSHOT_GRACE_END, pa.date32(), nullable=True),
        pa.field(SNAPSHOT_OFFICE, pa.bool_(), nullable=False),
        pa.field(SNAPSHOT_LEGACY, pa.int64(), nullable=False),
        pa.field(SNAPSHOT_PENDING, pa.int64(), nullable=False),
        pa.field(SNAPSHOT_RISK, pa.int64(), nullable=False),
        pa.field(SNAPSHOT_CREATED_AT, pa.timestamp("us"), nullable=False),
    ]
)


def _snapshot_row(snapshot: ComplianceSnapshot) -> Dict[str, object]:
    return {
        SNAPSHOT_ID: snapshot.snapshot_id,
        ORG_ID: snapshot.organization_id,
        SNAPSHOT_AS_OF: snapshot.as_of,
        SNAPSHOT_TOTAL: snapshot.total_employees,
        SNAPSHOT_QUALIFYING: snapshot.qualifying_employees,
        SNAPSHOT_PERCENTAGE: float(snapshot.percentage),
        SNAPSHOT_STATUS: snapshot.status.value,
        SNAPSHOT_GRACE_ACTIVE: snapshot.grace_period_active,
        SNAPSHOT_GRACE_END: snapshot.grace_period_end,
        SNAPSHOT_OFFICE: snapshot.principal_office_qualifying,
        SNAPSHOT_LEGACY: snapshot.legacy_employees,
        SNAPSHOT_PENDING: snapshot.pending_employees,
        SNAPSHOT_RISK: snapshot.risk_score,
        SNAPSHOT_CREATED_AT: snapshot.created_at,
    }


def _snapshot_from_row(row: Dict[str, object]) -> ComplianceSnapshot:
    created = row[SNAPSHOT_CREATED_AT]
    if isinstance(created, pd.Timestamp):
        created = created.to_pydatetime()
    return ComplianceSnapshot(
        organization_id=str(row[ORG_ID]),
        as_of=to_date(row[SNAPSHOT_AS_OF]),
        total_employees=int(row[SNAPSHOT_TOTAL]),
        qualifying_employees=int(row[SNAPSHOT_QUALIFYING]),
        percentage=float(row[SNAPSHOT_PERCENTAGE]),
        status=ComplianceStatus(row[SNAPSHOT_STATUS]),
        grace_period_active=bool(row[SNAPSHOT_GRACE_ACTIVE]),
        grace_period_end=to_date(row[SNAPSHOT_GRACE_END]),
        principal_office_qualifying=bool(row[SNAPSHOT_OFFICE]),
        legacy_employees=int(row[SNAPSHOT_LEGACY]),
        pending_employees=int(row[SNAPSHOT_PENDING]),
        risk_score=int(row[SNAPSHOT_RISK]),
        snapshot_id=str(row[SNAPSHOT_ID]),
        created_at=created if isinstance(created, datetime) else datetime.now(),
    )


def load_snapshot_log(path: Path) -> List[ComplianceSnapshot]:
    """
    Loads the snapshot log from a Parquet file.

    Returns an empty list if the file does not exist or is empty.
    """
    if not path.exists() or path.stat().st_size == 0:
        logger.debug(f"Snapshot log not found or empty at {path}. Starting fresh.")
        return []
    table = pq.read_table(path, schema=SNAPSHOT_SCHEMA)
    rows = table.to_pylist()
    logger.debug(f"Loaded {len(rows)} snapshots from {path}")
    return [_snapshot_from_row(r) for r in rows]


def save_snapshot_log(path: Path, snapshots: List[ComplianceSnapshot]) -> None:
    """Writes the full snapshot log to ``path`` (written to a temp file, then renamed)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    columns = {col: [] for col in SNAPSHOT_COLS}
    for snap in snapshots:
        row = _snapshot_row(snap)
        for col in SNAPSHOT_COLS:
            columns[col].append(row[col])
    table = pa.Table.from_pydict(columns, schema=SNAPSHOT_SCHEMA)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    pq.write_table(table, tmp_path)
    tmp_path.replace(path)


GRACE_SCHEMA = pa.schema(
    [
        pa.field(GRACE_PERIOD_ID, pa.string(), nullable=False),
        pa.field(ORG_ID, pa.string(), nullable=False),
        pa.field(GRACE_START, pa.date32(), nullable=False),
        pa.field(GRACE_END, pa.date32(), nullable=False),
        pa.field(GRACE_TRIGGER, pa.string(), nullable=False),
        pa.field(GRACE_ACTIVE, pa.bool_(), nullable=False),
    ]
)


def load_grace_periods(path: Path) -> List[GracePeriod]:
    """Loads grace periods from a Parquet file, in stored order."""
    if not path.exists() or path.stat().st_size == 0:
        return []
    rows = pq.read_table(path, schema=GRACE_SCHEMA).to_pylist()
    return [
        GracePeriod(
            organization_id=str(r[ORG_ID]),
            start_date=to_date(r[GRACE_START]),
            end_date=to_date(r[GRACE_END]),
            trigger=GraceTrigger(r[GRACE_TRIGGER]),
            active=bool(r[GRACE_ACTIVE]),
            period_id=str(r[GRACE_PERIOD_ID]),
        )
        for r in rows
    ]


def save_grace_periods(path: Path, periods: List[GracePeriod]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    columns = {
        GRACE_PERIOD_ID: [p.period_id for p in periods],
        ORG_ID: [p.organization_id for p in periods],
        GRACE_START: [p.start_date for p in periods],
        GRACE_END: [p.end_date for p in periods],
        GRACE_TRIGGER: [p.trigger.value for p in periods],
        GRACE_ACTIVE: [p.active for p in periods],
    }
    table = pa.Table.from_pydict(columns, schema=GRACE_SCHEMA)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    pq.write_table(table, tmp_path)
    tmp_path.replace(path)


class ParquetComplianceRepository(InMemoryComplianceRepository):
    """
    In-memory repository whose snapshot log and grace periods are persisted
    to Parquet files.

    Organizations and employees stay in memory; they are supplied by the
    caller on every run. Grace periods default to ``<snapshot stem>_grace.parquet``
    next to the snapshot log.
    """

    def __init__(
        self,
        snapshot_path: Union[str, Path],
        grace_path: Optional[Union[str, Path]] = None,
    ):
        super().__init__()
        self.snapshot_path = Path(snapshot_path)
        if grace_path is None:
            grace_path = self.snapshot_path.with_name(f"{self.snapshot_path.stem}_grace.parquet")
        self.grace_path = Path(grace_path)
        for snap in load_snapshot_log(self.snapshot_path):
            self._snapshots[snap.organization_id].append(snap)
        for period in load_grace_periods(self.grace_path):
            self._grace_periods[period.organization_id].append(period)

    def append_snapshot(self, organization_id: str, snapshot: ComplianceSnapshot) -> None:
        with self._lock:
            super().append_snapshot(organization_id, snapshot)
            all_snapshots = [s for log in self._snapshots.values() for s in log]
            try:
                save_snapshot_log(self.snapshot_path, all_snapshots)
            except OSError as e:
                # Roll back the in-memory append so memory and disk agree
                self._snapshots[organization_id].remove(snapshot)
                logger.error(f"Failed to persist snapshot log to {self.snapshot_path}: {e}")
                raise PersistenceConflict(
                    f"Could not persist snapshot {snapshot.snapshot_id}: {e}"
                ) from e

    def upsert_grace_period(self, organization_id: str, period: GracePeriod) -> None:
        with self._lock:
            previous = {org: list(ps) for org, ps in self._grace_periods.items()}
            super().upsert_grace_period(organization_id, period)
            all_periods = [p for ps in self._grace_periods.values() for p in ps]
            try:
                save_grace_periods(self.grace_path, all_periods)
            except OSError as e:
                self._grace_periods.clear()
                self._grace_periods.update(previous)
                logger.error(f"Failed to persist grace periods to {self.grace_path}: {e}")
                raise PersistenceConflict(f"Could not persist grace period {period.period_id}: {e}") from e
