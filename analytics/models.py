"""
Value objects exchanged by the FlowSight analytics engine.

Inputs (TransitRecord, AdmissionRecord, UnitResources, Intervention) are
supplied by the ingestion collaborator; every other model is a derived result.
All models are frozen: once produced they are safe to share between threads
and to serialize with `model_dump(mode="json")`.
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from data_processing.helpers import to_naive_utc


class FrozenModel(BaseModel):
    """Base for immutable engine models."""
    model_config = ConfigDict(frozen=True)


# -----------------------------------------------------------------------------
# Enumerations
# -----------------------------------------------------------------------------

class UnitCategory(str, Enum):
    """Fixed taxonomy of facility units."""
    EMERGENCY = "Emergency"
    DIAGNOSTICS = "Diagnostics"
    TREATMENT = "Treatment"
    RECOVERY = "Recovery"
    DISCHARGE = "Discharge"


class BottleneckType(str, Enum):
    INVISIBLE = "invisible"
    OBVIOUS = "obvious"
    EMERGING = "emerging"


class LoadLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class RiskLevel(str, Enum):
    """Four-tier risk scale shared by readmission, capacity and unit prediction."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def order(self) -> int:
        return {"low": 1, "medium": 2, "high": 3, "critical": 4}[self.value]


class TrendLabel(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class InterventionType(str, Enum):
    STAFF = "staff"
    BEDS = "beds"
    PROCESSING_TIME = "processing_time"


class RecommendationType(str, Enum):
    STAFF = "staff"
    BEDS = "beds"
    PROCESS_IMPROVEMENT = "process_improvement"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def order(self) -> int:
        return {"info": 1, "warning": 2, "critical": 3}[self.value]


class AlertCategory(str, Enum):
    BOTTLENECK = "bottleneck"
    DISCHARGE_DELAY = "discharge_delay"
    READMISSION_RISK = "readmission_risk"
    CAPACITY = "capacity"


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------

class TransitRecord(FrozenModel):
    """One patient's stay in one facility unit, as delivered by ingestion."""
    patient_id: str = Field(..., description="Patient identifier")
    unit: str = Field(..., description="Facility unit name")
    entry_time: datetime
    exit_time: Optional[datetime] = Field(None, description="Null while the stay is open")
    process_type: str = ""

    @field_validator("entry_time", "exit_time")
    @classmethod
    def _normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class AdmissionRecord(FrozenModel):
    """Admission-level fields used for forecasting and readmission scoring."""
    record_id: str
    patient_id: str
    admission_date: datetime
    discharge_date: Optional[datetime] = None
    severity: Optional[str] = None
    admission_type: Optional[str] = None
    unit: Optional[str] = Field(None, description="Current or last unit")

    @field_validator("admission_date", "discharge_date")
    @classmethod
    def _normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class UnitResources(FrozenModel):
    """Staffing and bed capacity of a unit."""
    unit: str
    staff_count: int = Field(..., gt=0)
    bed_capacity: int = Field(..., gt=0)


class Intervention(FrozenModel):
    """A hypothetical change to one unit's staff, beds or processing time."""
    type: InterventionType
    unit: str
    magnitude: float = Field(..., ge=0, description="Staff heads, beds, or minutes saved")

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, value):
        allowed = [t.value for t in InterventionType]
        raw = value.value if isinstance(value, InterventionType) else value
        if raw not in allowed:
            raise ValueError(f"Unknown intervention type {value!r}; expected one of {allowed}")
        return raw


# -----------------------------------------------------------------------------
# Journeys & statistics
# -----------------------------------------------------------------------------

class Stage(FrozenModel):
    unit: str
    category: UnitCategory
    entry_time: datetime
    exit_time: datetime
    duration_minutes: float = Field(..., ge=0)


class Journey(FrozenModel):
    """A patient's chronologically ordered path through facility units."""
    patient_id: str
    stages: List[Stage]
    total_duration: float = Field(..., ge=0, description="Sum of stage durations, minutes")

    @property
    def first_entry(self) -> Optional[datetime]:
        return self.stages[0].entry_time if self.stages else None

    @property
    def last_exit(self) -> Optional[datetime]:
        return self.stages[-1].exit_time if self.stages else None

    def visits(self, unit: str) -> bool:
        return any(stage.unit == unit for stage in self.stages)


class UnitProfile(FrozenModel):
    """Descriptive statistics over a set of stage durations (minutes)."""
    unit: str
    sample_count: int
    samples: List[float]
    mean: float
    median: float
    q1: float
    q3: float
    iqr: float
    variance: float
    std_dev: float


# -----------------------------------------------------------------------------
# Bottlenecks & propagation
# -----------------------------------------------------------------------------

class BottleneckRecord(FrozenModel):
    unit: str
    rank: int = Field(..., ge=1)
    bottleneck_type: BottleneckType
    expected_time: float
    actual_time: float
    time_deviation: float
    z_score: float
    iqr_position: float
    variance_ratio: float
    patient_impact_score: float
    delay_propagation_score: float
    resource_strain_score: float
    overall_score: float
    patients_affected: int
    downstream_units: List[str]
    why_bottleneck: str
    affected_patient_types: List[str]
    downstream_effects: List[str]
    load_level: LoadLevel
    congestion_indicator: float


class DelayEdge(FrozenModel):
    source_unit: str
    target_unit: str
    avg_delay_minutes: float
    patient_count: int
    propagation_strength: float = Field(..., ge=0, le=100)


class TimelinePoint(FrozenModel):
    """Congestion of one unit within one time window."""
    window_start: datetime
    unit: str
    congestion_level: float
    bottleneck_score: float


# -----------------------------------------------------------------------------
# Flow summaries
# -----------------------------------------------------------------------------

class DepartmentDelay(FrozenModel):
    unit: str
    category: UnitCategory
    median_time: float
    actual_avg_time: float
    delay_ratio: float
    variance: float
    queue_buildup: float
    impact_on_los: float
    patient_count: int


class FlowPath(FrozenModel):
    source_unit: str
    target_unit: str
    count: int
    avg_duration: float


class TimeContribution(FrozenModel):
    unit: str
    avg_time: float
    percentage: float
    patient_count: int


class FlowInsight(FrozenModel):
    insight_type: str  # delay | variance | bottleneck | impact
    severity: str  # high | medium | low
    title: str
    description: str
    unit: str
    metric: float


# -----------------------------------------------------------------------------
# Forecasting & risk
# -----------------------------------------------------------------------------

class ForecastPoint(FrozenModel):
    forecast_date: date
    predicted: int
    lower: int
    upper: int
    trend: TrendLabel


class BottleneckPrediction(FrozenModel):
    unit: str
    unit_id: str
    risk_level: RiskLevel
    predicted_date: date
    probability: float
    expected_impact: float
    delay_frequency: float
    avg_delay_minutes: float
    peak_hour_ratio: float
    historical_pattern: str
    recommendation: str


class CapacityRisk(FrozenModel):
    risk_date: date
    unit: str
    current_capacity: int
    predicted_demand: int
    utilization_rate: float
    risk_level: RiskLevel


class ResourceShortageWarning(FrozenModel):
    resource_type: str  # beds | staff
    unit: str
    shortage_date: date
    severity: RiskLevel
    estimated_gap: int
    recommendation: str


class RiskFactor(FrozenModel):
    name: str
    weight: int
    description: str


class RiskScore(FrozenModel):
    patient_id: str
    record_id: str
    score: int
    risk_level: RiskLevel
    factors: List[RiskFactor]
    estimated_readmission_date: date
    recommended_actions: List[str]
    delay_influence: int
    high_risk_units: List[str]


class ReadmissionTrend(FrozenModel):
    period: str  # YYYY-MM
    total: int
    risk_distribution: Dict[str, int]
    preventable: int


# -----------------------------------------------------------------------------
# Simulation
# -----------------------------------------------------------------------------

class MetricsSnapshot(FrozenModel):
    average_los: float = Field(..., description="Days")
    bed_utilization: float = Field(..., description="Percent")
    avg_processing_time: float = Field(..., description="Minutes")
    readmission_risk: float = Field(..., description="Percent")
    throughput: int


class Improvements(FrozenModel):
    los_reduction: float
    los_reduction_percent: float
    bed_utilization_change: float
    readmission_risk_reduction: float
    patients_impacted: int


class CostBenefit(FrozenModel):
    estimated_cost: float
    impact_score: float
    roi: float


class SimulationResult(FrozenModel):
    intervention: Intervention
    baseline: MetricsSnapshot
    projected: MetricsSnapshot
    improvements: Improvements
    cost_benefit: CostBenefit


class InterventionComparison(FrozenModel):
    simulations: List[SimulationResult]
    recommendations: List[str]
    optimal: Optional[SimulationResult] = None


# -----------------------------------------------------------------------------
# Optimisation
# -----------------------------------------------------------------------------

class UnitUtilization(FrozenModel):
    """Load placed on one unit's staff and beds by the patients that visited it."""
    unit: str
    staff_count: int
    bed_capacity: int
    patient_volume: int
    stage_count: int
    avg_processing_time: float = Field(..., description="Minutes")
    bed_utilization: float = Field(..., ge=0, le=100, description="Percent, capped at 100")
    staff_utilization: float = Field(..., description="Patients per staff member")


class ExpectedImpact(FrozenModel):
    los_reduction: float = Field(..., description="Days")
    cost_savings: float
    throughput_increase: int


class OptimizationRecommendation(FrozenModel):
    priority: int = Field(..., ge=1, description="Rank of the underlying bottleneck")
    unit: str
    recommendation_type: RecommendationType
    rationale: str
    expected_impact: ExpectedImpact
    action_items: List[str]
    urgency: RiskLevel


class StaffReallocation(FrozenModel):
    from_unit: str
    to_unit: str
    staff_count: int
    rationale: str
    expected_impact: str
    feasibility_score: int = Field(..., ge=0, le=100)


class CostToImpactEntry(FrozenModel):
    unit: str
    intervention_type: InterventionType
    magnitude: float
    estimated_cost: float
    impact_score: float
    roi: float
    description: str
    quick_win: bool


# -----------------------------------------------------------------------------
# Alerts
# -----------------------------------------------------------------------------

class AlertMetric(FrozenModel):
    current: float
    threshold: float
    unit: str = Field(..., description="Measurement label, e.g. 'minutes' or '%'")


class Alert(FrozenModel):
    alert_id: str
    severity: AlertSeverity
    category: AlertCategory
    unit: str
    title: str
    message: str
    timestamp: datetime
    metric: AlertMetric
    actionable: bool = True
    recommended_actions: List[str]
