# compliance_model/state/ledger.py
"""
The employee ledger: an immutable collection of employees for one
organization, convertible to and from a pandas DataFrame.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

import pandas as pd

from compliance_model.errors import InvalidInput, NotFound
from compliance_model.state.models import Employee
from compliance_model.state.schema import (
    AT_RISK_REDESIGNATION,
    EMP_ACTIVE,
    EMP_ADDRESS,
    EMP_FIRST_NAME,
    EMP_HIRE_DATE,
    EMP_ID,
    EMP_LAST_NAME,
    IS_LEGACY,
    IS_QUALIFYING_RESIDENT,
    LAST_VERIFIED,
    LEDGER_BOOL_COLS,
    LEDGER_COLS,
    LEDGER_DATE_COLS,
    ORG_ID,
    RESIDENCY_START_DATE,
    ZONE_TYPE,
)
from compliance_model.utils.date_utils import to_date
from compliance_model.utils.status_enums import ZoneType

logger = logging.getLogger(__name__)

_TRUTHY = {"true", "1", "yes", "y", "t"}
_FALSY = {"false", "0", "no", "n", "f", ""}


class DataReadError(Exception):
    """Custom exception for errors during ledger reading."""

    pass


def _to_bool(value, default: bool = False) -> bool:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return default
    if isinstance(value, str):
        norm = value.strip().casefold()
        if norm in _TRUTHY:
            return True
        if norm in _FALSY:
            return False
        raise InvalidInput(f"Cannot interpret '{value}' as a boolean flag")
    return bool(value)


def _to_text(value) -> Optional[str]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return str(value)


def _to_zone(value) -> Optional[ZoneType]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, ZoneType):
        return value
    text = str(value).strip()
    if not text:
        return None
    for zone in ZoneType:
        if text.casefold() in (zone.value, zone.name.casefold()):
            return zone
    raise InvalidInput(f"Unknown zone type '{value}'")


class EmployeeLedger:
    """
    Ordered, immutable set of employee records keyed by employee id.

    Mutating operations return a new ledger; the original is never changed,
    which lets simulations fork a ledger without copying business state back.
    """

    def __init__(self, employees: Iterable[Employee] = ()):
        records: Dict[str, Employee] = {}
        for emp in employees:
            if emp.employee_id in records:
                raise InvalidInput(f"Duplicate employee id in ledger: {emp.employee_id}")
            records[emp.employee_id] = emp
        self._employees: Tuple[Employee, ...] = tuple(records.values())
        self._index = records

    def __iter__(self) -> Iterator[Employee]:
        return iter(self._employees)

    def __len__(self) -> int:
        return len(self._employees)

    def __contains__(self, employee_id: object) -> bool:
        return employee_id in self._index

    @property
    def employees(self) -> Tuple[Employee, ...]:
        return self._employees

    def get(self, employee_id: str) -> Employee:
        try:
            return self._index[employee_id]
        except KeyError:
            raise NotFound(f"Employee not found in ledger: {employee_id}") from None

    def active(self) -> List[Employee]:
        return [e for e in self._employees if e.is_active]

    def with_employee(self, employee: Employee) -> "EmployeeLedger":
        """Return a new ledger with ``employee`` appended."""
        if employee.employee_id in self._index:
            raise InvalidInput(f"Employee id already present in ledger: {employee.employee_id}")
        return EmployeeLedger(self._employees + (employee,))

    def with_replaced(self, employee: Employee) -> "EmployeeLedger":
        """Return a new ledger with the record of the same id replaced."""
        self.get(employee.employee_id)
        return EmployeeLedger(
            employee if e.employee_id == employee.employee_id else e for e in self._employees
        )

    def with_deactivated(self, employee_id: str) -> "EmployeeLedger":
        """Return a new ledger in which ``employee_id`` is inactive."""
        target = self.get(employee_id)
        return self.with_replaced(replace(target, is_active=False))

    # --- DataFrame conversion ---

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                EMP_ID: e.employee_id,
                ORG_ID: e.organization_id,
                EMP_HIRE_DATE: e.hire_date,
                EMP_ACTIVE: e.is_active,
                IS_QUALIFYING_RESIDENT: e.is_qualifying_resident,
                ZONE_TYPE: e.zone_type.value if e.zone_type else None,
                RESIDENCY_START_DATE: e.residency_start_date,
                IS_LEGACY: e.is_legacy_employee,
                AT_RISK_REDESIGNATION: e.at_risk_redesignation,
                LAST_VERIFIED: e.last_verified,
                EMP_ADDRESS: e.address,
                EMP_FIRST_NAME: e.first_name,
                EMP_LAST_NAME: e.last_name,
            }
            for e in self._employees
        ]
        df = pd.DataFrame(rows, columns=LEDGER_COLS)
        for col in LEDGER_DATE_COLS:
            df[col] = pd.to_datetime(df[col], errors="coerce")
        for col in LEDGER_BOOL_COLS:
            df[col] = df[col].astype(bool)
        return df

    @classmethod
    def from_frame(
        cls, df: pd.DataFrame, organization_id: Optional[str] = None
    ) -> "EmployeeLedger":
        """
        Build a ledger from a census DataFrame.

        Args:
            df: Frame with at least ``employee_id`` and ``employee_hire_date``.
            organization_id: Used when the frame has no ``organization_id`` column.

        Raises:
            InvalidInput: On missing columns or unparseable values.
        """
        missing = [c for c in (EMP_ID, EMP_HIRE_DATE) if c not in df.columns]
        if missing:
            raise InvalidInput(f"Ledger frame is missing required columns: {missing}")
        if ORG_ID not in df.columns and not organization_id:
            raise InvalidInput("Ledger frame has no organization_id column and none was given")

        employees = []
        for idx, row in df.iterrows():
            try:
                hire = to_date(row.get(EMP_HIRE_DATE))
                residency_start = to_date(row.get(RESIDENCY_START_DATE))
                last_verified = to_date(row.get(LAST_VERIFIED))
            except (ValueError, TypeError) as e:
                raise InvalidInput(f"Row {idx}: unparseable date ({e})") from e
            org = row.get(ORG_ID) if ORG_ID in df.columns else None
            if org is None or (not isinstance(org, str) and pd.isna(org)):
                org = organization_id
            employees.append(
                Employee(
                    employee_id=str(row[EMP_ID]),
                    organization_id=str(org) if org else "",
                    hire_date=hire,
                    is_active=_to_bool(row.get(EMP_ACTIVE), default=True),
                    is_qualifying_resident=_to_bool(row.get(IS_QUALIFYING_RESIDENT)),
                    zone_type=_to_zone(row.get(ZONE_TYPE)),
                    residency_start_date=residency_start,
                    is_legacy_employee=_to_bool(row.get(IS_LEGACY)),
                    at_risk_redesignation=_to_bool(row.get(AT_RISK_REDESIGNATION)),
                    last_verified=last_verified,
                    address=_to_text(row.get(EMP_ADDRESS)),
                    first_name=_to_text(row.get(EMP_FIRST_NAME)) or "",
                    last_name=_to_text(row.get(EMP_LAST_NAME)) or "",
                )
            )
        logger.debug(f"Built ledger with {len(employees)} employees from frame")
        return cls(employees)


def read_census(file_path: Union[str, Path], organization_id: Optional[str] = None) -> EmployeeLedger:
    """
    Reads an employee census from a CSV or Parquet file into a ledger.

    Raises:
        DataReadError: If the file cannot be found or read.
        InvalidInput: If its rows do not describe valid employees.
    """
    if not isinstance(file_path, Path):
        file_path = Path(file_path)

    logger.info(f"Attempting to read census data from: {file_path}")

    if not file_path.exists():
        logger.error(f"Census file not found: {file_path}")
        raise DataReadError(f"Census file not found: {file_path}")

    suffix = file_path.suffix.lower()
    try:
        if suffix == ".parquet":
            df = pd.read_parquet(file_path)
        elif suffix == ".csv":
            df = pd.read_csv(file_path, dtype={EMP_ID: str, ORG_ID: str})
        else:
            raise DataReadError(f"Unsupported census file type: {suffix}")
    except (OSError, ValueError) as e:
        logger.error(f"Error reading census file {file_path}: {e}")
        raise DataReadError(f"Error reading census file {file_path}: {e}") from e

    logger.info(f"Loaded {len(df)} records from census: {file_path}")
    return EmployeeLedger.from_frame(df, organization_id=organization_id)
