# flowsight/analytics/__init__.py
#
# Analytics Package API
# This file initializes the analytics package and defines its public API:
# journey reconstruction, duration statistics, bottleneck classification,
# delay propagation, forecasting, readmission risk, intervention simulation,
# optimisation advice and operational alerts.

"""
Initializes the analytics package, making key functions and classes
available at the top level for easier, cleaner imports in other modules.
"""

# --- Value Objects ---
# Imported first; every analytics module builds on these models.
from .models import (
    TransitRecord,
    AdmissionRecord,
    UnitResources,
    Intervention,
    InterventionType,
    Journey,
    Stage,
    UnitProfile,
    BottleneckRecord,
    BottleneckType,
    DelayEdge,
    ForecastPoint,
    RiskLevel,
    RiskScore,
    SimulationResult,
    InterventionComparison,
    UnitUtilization,
    OptimizationRecommendation,
    RecommendationType,
    StaffReallocation,
    CostToImpactEntry,
    Alert,
    AlertSeverity,
    AlertCategory,
)

# --- Journeys & Statistics ---
from .journeys import reconstruct_journeys, categorize_unit, stage_waits
from .aggregation import calculate_duration_statistics, profile_units, profile_global

# --- Bottlenecks & Flow ---
# Rule-based classification of congested units and the waits they propagate.
from .bottlenecks import detect_bottlenecks, bottleneck_timeline
from .propagation import analyze_delay_propagation
from .flow import (
    department_delays,
    flow_paths,
    time_contributions,
    category_time_breakdown,
    generate_flow_insights
)

# --- Forecasting & Risk ---
from .forecasting import (
    forecast_admissions,
    predict_unit_bottlenecks,
    predict_capacity_risks,
    predict_resource_shortages
)
from .readmission import (
    score_readmission_risk,
    score_discharged_patients,
    identify_high_risk_patients,
    analyze_readmission_trends
)

# --- Simulation ---
from .simulation import simulate_intervention, compare_interventions, InvalidInterventionError

# --- Optimisation & Alerts ---
from .optimization import (
    unit_utilization,
    prioritized_optimizations,
    staff_reallocation_opportunities,
    cost_to_impact_analysis
)
from .alerts import (
    detect_bottleneck_alerts,
    detect_capacity_alerts,
    detect_readmission_risk_alerts,
    collect_alerts
)

# --- Facade ---
from .engine import FlowAnalyticsEngine


__all__ = [
    # Models
    "TransitRecord",
    "AdmissionRecord",
    "UnitResources",
    "Intervention",
    "InterventionType",
    "Journey",
    "Stage",
    "UnitProfile",
    "BottleneckRecord",
    "BottleneckType",
    "DelayEdge",
    "ForecastPoint",
    "RiskLevel",
    "RiskScore",
    "SimulationResult",
    "InterventionComparison",
    "UnitUtilization",
    "OptimizationRecommendation",
    "RecommendationType",
    "StaffReallocation",
    "CostToImpactEntry",
    "Alert",
    "AlertSeverity",
    "AlertCategory",

    # Journeys & statistics
    "reconstruct_journeys",
    "categorize_unit",
    "stage_waits",
    "calculate_duration_statistics",
    "profile_units",
    "profile_global",

    # Bottlenecks & flow
    "detect_bottlenecks",
    "bottleneck_timeline",
    "analyze_delay_propagation",
    "department_delays",
    "flow_paths",
    "time_contributions",
    "category_time_breakdown",
    "generate_flow_insights",

    # Forecasting & risk
    "forecast_admissions",
    "predict_unit_bottlenecks",
    "predict_capacity_risks",
    "predict_resource_shortages",
    "score_readmission_risk",
    "score_discharged_patients",
    "identify_high_risk_patients",
    "analyze_readmission_trends",

    # Simulation
    "simulate_intervention",
    "compare_interventions",
    "InvalidInterventionError",

    # Optimisation & alerts
    "unit_utilization",
    "prioritized_optimizations",
    "staff_reallocation_opportunities",
    "cost_to_impact_analysis",
    "detect_bottleneck_alerts",
    "detect_capacity_alerts",
    "detect_readmission_risk_alerts",
    "collect_alerts",

    # Facade
    "FlowAnalyticsEngine",
]
