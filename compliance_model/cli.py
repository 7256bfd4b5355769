# compliance_model/cli.py
# Command-line interface entry point (argparse)
import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from compliance_model.config.loaders import ConfigLoadError, load_policy
from compliance_model.engines.service import ComplianceEngine
from compliance_model.errors import ComplianceModelError
from compliance_model.projections.forecast import analyze_trend
from compliance_model.reporting.metrics import build_recommendations
from compliance_model.state.ledger import DataReadError, read_census
from compliance_model.state.models import Organization
from compliance_model.state.repository import (
    InMemoryComplianceRepository,
    ParquetComplianceRepository,
)
from compliance_model.utils.date_utils import to_date

from logging_config import (
    COMPLIANCE_LOGGER,
    DEFAULT_LOG_DIR,
    ERROR_LOGGER,
    PERFORMANCE_LOGGER,
    setup_logging,
)

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Calculate residency compliance for an organization and report alerts and forecast."
    )

    parser.add_argument(
        "--census", type=str, required=True, help="Path to the CSV or Parquet employee census."
    )
    parser.add_argument("--org-id", type=str, required=True, help="Organization id.")
    parser.add_argument(
        "--certification-date",
        type=str,
        required=True,
        help="Organization certification date (YYYY-MM-DD).",
    )

    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Required qualifying percentage (default: compliance.default_threshold from config).",
    )
    parser.add_argument(
        "--office-not-qualifying",
        action="store_true",
        help="The principal office is not located in a qualifying zone.",
    )
    parser.add_argument(
        "--as-of", type=str, default=None, help="Evaluation date (YYYY-MM-DD, default: today)."
    )
    parser.add_argument("--config", type=str, default=None, help="Path to the YAML policy file.")
    parser.add_argument(
        "--history",
        type=str,
        default=None,
        help="Parquet snapshot log to read and append to (default: in-memory only).",
    )
    parser.add_argument(
        "--forecast-periods",
        type=int,
        default=6,
        help="Number of forecast periods to project (default: 6).",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=str(DEFAULT_LOG_DIR),
        help=f"Directory to store log files (default: {DEFAULT_LOG_DIR})",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return parser.parse_args(argv)


def initialize_logging(debug: bool = False, log_dir: Path = DEFAULT_LOG_DIR) -> None:
    setup_logging(log_dir=log_dir, debug=debug)
    logger.info("Starting residency compliance run")
    logger.info(f"Command line arguments: {sys.argv}")
    logger.info(f"Pandas version: {pd.__version__}")
    logger.info(f"NumPy version: {np.__version__}")
    if debug:
        logger.debug("Debug logging enabled")


def build_report(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Run the calculation described by ``args`` and assemble the JSON report.

    Raises:
        ConfigLoadError: If the policy file is invalid.
        DataReadError: If the census cannot be read.
        ComplianceModelError: On invalid input or persistence failures.
    """
    perf_logger = logging.getLogger(PERFORMANCE_LOGGER)
    compliance_logger = logging.getLogger(COMPLIANCE_LOGGER)
    started = time.perf_counter()

    policy = load_policy(args.config)
    as_of = to_date(args.as_of) if args.as_of else None
    certification_date = to_date(args.certification_date)
    threshold = args.threshold if args.threshold is not None else policy.compliance.default_threshold

    organization = Organization(
        organization_id=args.org_id,
        certification_date=certification_date,
        threshold=threshold,
        principal_office_qualifying=not args.office_not_qualifying,
    )

    ledger = read_census(args.census, organization_id=args.org_id)
    employees = [e for e in ledger if e.organization_id == args.org_id]
    skipped = len(ledger) - len(employees)
    if skipped:
        logger.warning(f"Ignoring {skipped} census row(s) belonging to other organizations")

    if args.history:
        repository = ParquetComplianceRepository(args.history)
    else:
        repository = InMemoryComplianceRepository()
    repository.save_organization(organization)
    for emp in employees:
        repository.save_employee(emp)

    engine = ComplianceEngine(repository, policy)
    snapshot = engine.calculate_compliance(args.org_id, as_of)
    as_of = snapshot.as_of
    alerts = engine.generate_alerts(args.org_id, as_of)
    risk = engine.assess_risk(args.org_id, as_of)
    forecast = engine.forecast_compliance(args.org_id, args.forecast_periods)
    trend = analyze_trend(engine.get_compliance_history(args.org_id), policy)

    compliance_logger.info(
        f"{args.org_id} as of {as_of}: {snapshot.qualifying_employees}/{snapshot.total_employees} "
        f"= {snapshot.percentage:.2f}% ({snapshot.status.value}), {len(alerts)} alert(s)"
    )
    perf_logger.info(
        f"Compliance run for {args.org_id} over {snapshot.total_employees} active employee(s) "
        f"took {time.perf_counter() - started:.3f}s"
    )

    return {
        "organization_id": args.org_id,
        "as_of": as_of.isoformat(),
        "snapshot": snapshot.to_dict(),
        "risk_score": snapshot.risk_score,
        "overall_risk": risk.overall_risk,
        "recommendations": build_recommendations(snapshot, threshold),
        "alerts": [a.to_dict() for a in alerts],
        "trend": {
            "direction": trend.direction.value,
            "volatility": trend.volatility.value,
            "change": round(trend.change, 2),
            "snapshots": trend.snapshots,
        },
        "forecast": [p.to_dict() for p in forecast],
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the compliance CLI."""
    err_logger = logging.getLogger(ERROR_LOGGER)

    try:
        args = parse_arguments(argv)
        initialize_logging(debug=args.debug, log_dir=Path(args.log_dir))
    except Exception as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1

    try:
        report = build_report(args)
    except ConfigLoadError as e:
        err_logger.error(f"Invalid configuration: {e}", exc_info=True)
    except DataReadError as e:
        err_logger.error(f"Could not read census: {e}", exc_info=True)
    except (ComplianceModelError, ValueError) as e:
        err_logger.error(f"Compliance run failed: {e}", exc_info=True)
    else:
        print(json.dumps(report, indent=2, default=str))
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
