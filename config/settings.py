# flowsight/config/settings.py
#
# Centralized Engine Configuration
# This file defines the engine's configuration using Pydantic for validation
# and type safety. Every scoring threshold used by the analytics modules lives
# here as a named field, so values can be tuned from the environment or a .env
# file and unit-tested independently of the scoring code.

import logging
from pathlib import Path
from typing import Dict, List, Literal

from pydantic import BaseModel, Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Define Project Root ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# --- Logger for Settings Module ---
settings_logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# 1. NESTED CONFIGURATION MODELS
# -----------------------------------------------------------------------------

class AppConfig(BaseModel):
    """Core engine metadata and logging settings."""
    name: str = "FlowSight Patient-Flow Intelligence"
    version: str = "1.0.0"
    organization_name: str = "FlowSight Analytics"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: str = "%(asctime)s - %(name)s.%(funcName)s - %(levelname)s - %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"


class BottleneckThresholds(BaseModel):
    """Scoring weights and classification cut-offs for bottleneck detection."""
    min_samples: int = 3

    # Sub-score weights
    volume_weight: float = 0.4
    deviation_weight: float = 0.6
    congestion_weight: float = 30.0
    variance_weight: float = 40.0
    z_score_weight: float = 30.0
    patient_impact_weight: float = 0.35
    delay_propagation_weight: float = 0.35
    resource_strain_weight: float = 0.30
    score_cap: float = 100.0

    # Congestion is only reported when std-dev exceeds this share of the mean
    congestion_std_ratio: float = 0.5
    downstream_unit_ratio: float = 0.2

    # Load levels, expressed as volume percentile
    low_load_below: float = 60.0
    moderate_load_below: float = 100.0

    # Classification rule, evaluated in order
    invisible_min_propagation: float = 30.0
    obvious_min_deviation: float = 50.0
    emerging_min_variance_ratio: float = 1.3
    emerging_min_congestion: float = 0.8

    # Bottleneck timeline window
    timeline_window_hours: int = 4


class ExplanationThresholds(BaseModel):
    """Threshold crossings that drive the narrative text of a bottleneck."""
    time_deviation: float = 50.0
    severe_time_deviation: float = 100.0
    variance_ratio: float = 1.5
    z_score: float = 2.0
    congestion: float = 1.0
    queuing_congestion: float = 1.2
    cascading_propagation: float = 50.0
    high_volume_patients: int = 50
    moderate_volume_patients: int = 20
    max_patient_types: int = 3
    max_downstream_effects: int = 3


class FlowInsightThresholds(BaseModel):
    """Cut-offs for the plain-language flow insights and department delay summary."""
    min_patients: int = 5
    # Queue build-up is only reported when variance exceeds this share of the mean
    queue_variance_ratio: float = 0.5
    delay_ratio: float = 1.5
    severe_delay_ratio: float = 2.0
    disproportionate_max_share: float = 15.0
    disproportionate_min_los_impact: float = 10.0
    variance_to_mean: float = 0.8
    severe_variance_to_mean: float = 1.5
    queue_buildup: float = 1.2
    severe_queue_buildup: float = 1.5
    long_journey_factor: float = 1.5
    long_journey_share: float = 0.2


class PropagationThresholds(BaseModel):
    """Delay propagation noise filter and saturation point."""
    min_wait_minutes: float = 5.0
    saturation_minutes: float = 60.0


class ForecastConfig(BaseModel):
    """Admission forecasting parameters."""
    smoothing_alpha: float = 0.3
    seasonal_amplitude: float = 0.1
    season_length_days: int = 7
    confidence_z: float = 1.96
    trend_threshold: float = 0.5
    default_horizon_days: int = 30


class UnitPredictionThresholds(BaseModel):
    """Forward-looking per-unit bottleneck prediction tiers."""
    delay_minutes: float = 60.0
    critical_frequency: float = 0.3
    critical_avg_delay: float = 120.0
    high_frequency: float = 0.2
    high_avg_delay: float = 90.0
    medium_frequency: float = 0.1
    medium_avg_delay: float = 60.0
    probabilities: Dict[str, float] = {"critical": 0.85, "high": 0.65, "medium": 0.40, "low": 0.15}
    lead_days: Dict[str, int] = {"critical": 3, "high": 7, "medium": 14, "low": 30}
    peak_ratio_pattern: float = 1.5
    critical_staff_share: float = 0.3
    high_staff_share: float = 0.2


class ReadmissionThresholds(BaseModel):
    """Weights and cut-offs for rule-based readmission risk scoring."""
    short_los_days: float = 2.0
    short_los_weight: int = 25
    long_los_days: float = 14.0
    long_los_weight: int = 20
    # (average wait per stage in minutes, weight), checked from the top down
    wait_tiers: List[List[float]] = [[120.0, 30], [90.0, 20], [60.0, 10]]
    max_transfers: int = 5
    transfers_weight: int = 15
    history_window_days: int = 90
    history_weight_per_visit: int = 15
    history_weight_cap: int = 30
    weekend_weekdays: List[int] = [4, 5]  # Friday, Saturday
    weekend_weight: int = 10
    critical_score: int = 70
    high_score: int = 50
    medium_score: int = 30
    recurrence_days: Dict[str, int] = {"critical": 7, "high": 14, "medium": 30, "low": 90}
    max_actions: int = 5
    high_risk_unit_wait_minutes: float = 120.0
    preventable_delay_influence: int = 10


class CapacityConfig(BaseModel):
    """Demand extrapolation and resource ratios for shortage projection."""
    growth_rate: float = 0.05
    monthly_trend: float = 0.02
    seasonal_amplitude: float = 0.15
    peak_capacity_factor: float = 1.2
    beds_per_projected_patient: float = 1.1
    current_beds_per_patient: float = 1.2
    patients_per_required_staff: int = 8
    patients_per_current_staff: int = 10
    utilization_critical: float = 95.0
    utilization_high: float = 85.0
    utilization_medium: float = 75.0
    bed_shortage_lead_days: int = 14
    staff_shortage_lead_days: int = 21
    staff_high_gap: int = 5
    los_reduction_share: float = 0.15


class SimulationConfig(BaseModel):
    """Closed-form projection coefficients and cost table for interventions."""
    default_staff_count: int = 10
    default_bed_capacity: int = 20

    base_readmission_risk: float = 15.0
    risk_per_processing_hour: float = 0.5
    risk_per_wait: float = 0.3

    staff_los_factor: float = 0.8
    staff_utilization_factor: float = 5.0
    staff_readmission_factor: float = 0.3
    staff_throughput_factor: float = 0.5

    beds_wait_factor: float = 0.3
    beds_wait_cap: float = 0.5
    beds_los_factor: float = 0.4
    beds_processing_factor: float = 0.2
    beds_readmission_factor: float = 0.2
    beds_throughput_factor: float = 0.3

    process_los_factor: float = 0.6
    process_utilization_factor: float = 0.4
    process_readmission_factor: float = 0.4
    process_throughput_factor: float = 0.7

    min_los_days: float = 0.1
    min_processing_minutes: float = 5.0
    max_utilization: float = 100.0

    cost_per_staff: float = 75_000.0
    cost_per_bed: float = 50_000.0
    cost_per_processing_unit: float = 10_000.0
    processing_unit_minutes: float = 10.0

    impact_los_weight: float = 0.4
    impact_utilization_weight: float = 0.3
    impact_readmission_weight: float = 0.3
    roi_scale: float = 1000.0

    # Comparison recommendation cut-offs
    high_los_reduction_pct: float = 20.0
    excellent_roi: float = 2.0
    notable_readmission_reduction: float = 5.0
    low_cost_ceiling: float = 200_000.0
    high_impact_score: float = 20.0


class OptimizationConfig(BaseModel):
    """Rules for ranking optimisation opportunities across units."""
    # Overall bottleneck score -> urgency, checked from the top down (strictly greater)
    urgency_critical: float = 75.0
    urgency_high: float = 50.0
    urgency_medium: float = 30.0
    process_min_propagation: float = 40.0
    cost_per_los_day: float = 2000.0
    throughput_share: float = 0.15
    staff_multiplier: float = 1.2
    staff_throughput_multiplier: float = 1.3
    beds_multiplier: float = 0.8
    beds_throughput_multiplier: float = 1.5
    overloaded_patients_per_staff: float = 8.0
    bed_utilization_pressure: float = 85.0

    # Staff reallocation
    underused_patients_per_staff: float = 4.0
    min_source_staff: int = 5
    strained_min_score: float = 40.0
    max_staff_moved: int = 2
    staff_moved_share: float = 0.2
    source_after_move_below: float = 7.0
    target_after_move_above: float = 5.0
    min_feasibility: float = 50.0
    processing_gain_pct_per_staff: float = 8.0

    # Cost-to-impact scenarios per top bottleneck
    top_bottlenecks: int = 5
    scenario_staff: float = 2.0
    scenario_beds: float = 5.0
    scenario_minutes: float = 30.0
    quick_win_max_cost: float = 150_000.0
    quick_win_min_impact: float = 25.0


class AlertThresholds(BaseModel):
    """Rule-based alert detection thresholds."""
    bottleneck_score: float = 60.0
    bottleneck_warning_score: float = 60.0
    bottleneck_critical_score: float = 80.0
    time_deviation: float = 50.0
    severe_time_deviation: float = 100.0
    bed_utilization_critical: float = 90.0
    bed_utilization_warning: float = 80.0
    staff_overload_patients: float = 10.0
    staff_reference_patients: float = 8.0
    readmission_risk_high: float = 25.0
    readmission_risk_critical: float = 35.0
    base_readmission_risk: float = 15.0
    risk_per_processing_hour: float = 0.5
    risk_per_downstream_unit: float = 2.0


class ThresholdConfig(BaseModel):
    """Groups every analytic threshold by the module that consumes it."""
    bottleneck: BottleneckThresholds = Field(default_factory=BottleneckThresholds)
    explanation: ExplanationThresholds = Field(default_factory=ExplanationThresholds)
    propagation: PropagationThresholds = Field(default_factory=PropagationThresholds)
    forecast: ForecastConfig = Field(default_factory=ForecastConfig)
    unit_prediction: UnitPredictionThresholds = Field(default_factory=UnitPredictionThresholds)
    readmission: ReadmissionThresholds = Field(default_factory=ReadmissionThresholds)
    capacity: CapacityConfig = Field(default_factory=CapacityConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    flow: FlowInsightThresholds = Field(default_factory=FlowInsightThresholds)
    optimization: OptimizationConfig = Field(default_factory=OptimizationConfig)
    alerts: AlertThresholds = Field(default_factory=AlertThresholds)

# -----------------------------------------------------------------------------
# 2. MAIN SETTINGS CLASS
# -----------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Main settings class for the FlowSight engine.
    Aggregates all configuration models and loads from environment variables,
    e.g. FLOWSIGHT_THRESHOLDS__PROPAGATION__MIN_WAIT_MINUTES=10.
    """
    model_config = SettingsConfigDict(
        env_prefix='FLOWSIGHT_',
        case_sensitive=False,
        env_nested_delimiter='__',
        env_file=f"{PROJECT_ROOT}/.env",
        extra='ignore'
    )

    app: AppConfig = Field(default_factory=AppConfig)
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)

    # Unit name -> category taxonomy; unknown units fall back to the default.
    default_unit_category: str = "Treatment"
    unit_categories: Dict[str, str] = {
        "Emergency": "Emergency", "ER": "Emergency", "Trauma": "Emergency",
        "ICU": "Treatment", "Surgery": "Treatment", "Operating Room": "Treatment",
        "Cardiology": "Treatment", "Neurology": "Treatment", "Oncology": "Treatment",
        "Orthopedics": "Treatment", "Pediatrics": "Treatment", "Internal Medicine": "Treatment",
        "Radiology": "Diagnostics", "Laboratory": "Diagnostics",
        "Imaging": "Diagnostics", "Pathology": "Diagnostics",
        "Recovery": "Recovery", "Post-Op": "Recovery", "Rehabilitation": "Recovery",
        "Discharge": "Discharge", "Discharge Planning": "Discharge", "Pharmacy": "Discharge",
    }

    @computed_field
    @property
    def engine_label(self) -> str:
        """Human-readable engine name and version for log lines."""
        return f"{self.app.name} v{self.app.version}"

# -----------------------------------------------------------------------------
# 3. SINGLETON INSTANCE
# -----------------------------------------------------------------------------

try:
    settings = Settings()
    settings_logger.info(
        f"Settings loaded for '{settings.engine_label}'. "
        f"LOG_LEVEL={settings.app.log_level}. PROJECT_ROOT='{PROJECT_ROOT}'"
    )
except Exception as e:
    settings_logger.critical(f"FATAL: Could not initialize engine settings. Error: {e}", exc_info=True)
    raise
