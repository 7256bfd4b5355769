# compliance_model/state/schema.py
"""
Canonical column names for ledger frames and the snapshot log.
"""

# Employee ledger columns
EMP_ID = "employee_id"
ORG_ID = "organization_id"
EMP_HIRE_DATE = "employee_hire_date"
EMP_ACTIVE = "active"
EMP_FIRST_NAME = "first_name"
EMP_LAST_NAME = "last_name"
EMP_ADDRESS = "address"
IS_QUALIFYING_RESIDENT = "is_qualifying_resident"
ZONE_TYPE = "zone_type"
RESIDENCY_START_DATE = "residency_start_date"
IS_LEGACY = "is_legacy_employee"
AT_RISK_REDESIGNATION = "at_risk_redesignation"
LAST_VERIFIED = "last_verified"

# Evaluation columns added by rules.eligibility.evaluate_frame
COUNTS_TOWARD_COMPLIANCE = "counts_toward_compliance"
ELIGIBILITY_REASON = "eligibility_reason"
DAYS_RESIDENT = "days_resident"

LEDGER_COLS = [
    EMP_ID,
    ORG_ID,
    EMP_HIRE_DATE,
    EMP_ACTIVE,
    IS_QUALIFYING_RESIDENT,
    ZONE_TYPE,
    RESIDENCY_START_DATE,
    IS_LEGACY,
    AT_RISK_REDESIGNATION,
    LAST_VERIFIED,
    EMP_ADDRESS,
    EMP_FIRST_NAME,
    EMP_LAST_NAME,
]

LEDGER_DATE_COLS = [EMP_HIRE_DATE, RESIDENCY_START_DATE, LAST_VERIFIED]
LEDGER_BOOL_COLS = [EMP_ACTIVE, IS_QUALIFYING_RESIDENT, IS_LEGACY, AT_RISK_REDESIGNATION]

# Snapshot log columns
SNAPSHOT_ID = "snapshot_id"
SNAPSHOT_AS_OF = "as_of"
SNAPSHOT_TOTAL = "total_employees"
SNAPSHOT_QUALIFYING = "qualifying_employees"
SNAPSHOT_PERCENTAGE = "percentage"
SNAPSHOT_STATUS = "status"
SNAPSHOT_GRACE_ACTIVE = "grace_period_active"
SNAPSHOT_GRACE_END = "grace_period_end"
SNAPSHOT_OFFICE = "principal_office_qualifying"
SNAPSHOT_LEGACY = "legacy_employees"
SNAPSHOT_PENDING = "pending_employees"
SNAPSHOT_RISK = "risk_score"
SNAPSHOT_CREATED_AT = "created_at"

SNAPSHOT_COLS = [
    SNAPSHOT_ID,
    ORG_ID,
    SNAPSHOT_AS_OF,
    SNAPSHOT_TOTAL,
    SNAPSHOT_QUALIFYING,
    SNAPSHOT_PERCENTAGE,
    SNAPSHOT_STATUS,
    SNAPSHOT_GRACE_ACTIVE,
    SNAPSHOT_GRACE_END,
    SNAPSHOT_OFFICE,
    SNAPSHOT_LEGACY,
    SNAPSHOT_PENDING,
    SNAPSHOT_RISK,
    SNAPSHOT_CREATED_AT,
]

# Grace period columns
GRACE_PERIOD_ID = "period_id"
GRACE_START = "start_date"
GRACE_END = "end_date"
GRACE_TRIGGER = "trigger"
GRACE_ACTIVE = "active"

GRACE_COLS = [GRACE_PERIOD_ID, ORG_ID, GRACE_START, GRACE_END, GRACE_TRIGGER, GRACE_ACTIVE]
