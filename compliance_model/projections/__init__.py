# compliance_model/projections/__init__.py
"""
What-if projections: simulated hires/terminations, scenario analysis,
workforce planning and compliance forecasting.
"""

from .forecast import TrendAnalysis, analyze_trend, forecast_compliance
from .simulation import (
    Scenario,
    ScenarioResult,
    WorkforcePlan,
    plan_workforce,
    scenario_analysis,
    simulate_hire,
    simulate_termination,
)

__all__ = [
    "Scenario",
    "ScenarioResult",
    "TrendAnalysis",
    "WorkforcePlan",
    "analyze_trend",
    "forecast_compliance",
    "plan_workforce",
    "scenario_analysis",
    "simulate_hire",
    "simulate_termination",
]
