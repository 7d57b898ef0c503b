# flowsight/analytics/engine.py
#
# FlowAnalyticsEngine
# One-stop facade over the analytics modules. An engine instance wraps a
# single input snapshot: journeys are reconstructed once at construction and
# every analysis method recomputes its result from them on each call.

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Union

try:
    from config.settings import settings as default_settings, Settings
    from .aggregation import profile_global, profile_units
    from .alerts import collect_alerts
    from .bottlenecks import bottleneck_timeline, detect_bottlenecks
    from .flow import (
        category_time_breakdown, department_delays, flow_paths, generate_flow_insights, time_contributions
    )
    from .forecasting import (
        forecast_admissions, predict_capacity_risks, predict_resource_shortages, predict_unit_bottlenecks
    )
    from .journeys import reconstruct_journeys
    from .models import (
        AdmissionRecord, Alert, BottleneckPrediction, BottleneckRecord, CapacityRisk, CostToImpactEntry, DelayEdge,
        DepartmentDelay, FlowInsight, FlowPath, ForecastPoint, Intervention, InterventionComparison, Journey,
        OptimizationRecommendation, ReadmissionTrend, ResourceShortageWarning, RiskScore, SimulationResult,
        StaffReallocation, TimeContribution, TimelinePoint, TransitRecord, UnitProfile, UnitResources,
        UnitUtilization
    )
    from .optimization import (
        cost_to_impact_analysis, prioritized_optimizations, staff_reallocation_opportunities, unit_utilization
    )
    from .propagation import analyze_delay_propagation
    from .readmission import analyze_readmission_trends, identify_high_risk_patients, score_discharged_patients
    from .simulation import compare_interventions, simulate_intervention
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in engine.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)


class FlowAnalyticsEngine:
    """
    Runs the patient-flow analyses over one snapshot of records.

    Example:
        engine = FlowAnalyticsEngine(records, admissions=admissions)
        for record in engine.bottlenecks():
            print(record.rank, record.unit, record.bottleneck_type)
    """

    def __init__(
        self,
        records: Iterable[TransitRecord],
        admissions: Iterable[AdmissionRecord] = (),
        resources: Iterable[UnitResources] = (),
        settings: Optional[Settings] = None
    ):
        self.settings = settings or default_settings
        self.admissions: List[AdmissionRecord] = list(admissions)
        self.resources: List[UnitResources] = list(resources)
        self._journeys: Dict[str, Journey] = reconstruct_journeys(
            records, self.settings.unit_categories, self.settings.default_unit_category
        )
        logger.info(
            f"{self.settings.engine_label} ready: {len(self._journeys)} journeys, "
            f"{len(self.admissions)} admissions, {len(self.resources)} unit resource entries."
        )

    @property
    def journeys(self) -> List[Journey]:
        return list(self._journeys.values())

    def journey(self, patient_id: str) -> Optional[Journey]:
        return self._journeys.get(patient_id)

    @property
    def _min_wait_minutes(self) -> float:
        return self.settings.thresholds.propagation.min_wait_minutes

    # --- Statistics & bottlenecks ---

    def unit_profiles(self, unit: Optional[str] = None) -> Dict[str, UnitProfile]:
        return profile_units(self.journeys, unit)

    def global_profile(self) -> UnitProfile:
        return profile_global(self.journeys)

    def bottlenecks(self) -> List[BottleneckRecord]:
        thresholds = self.settings.thresholds
        return detect_bottlenecks(self.journeys, thresholds.bottleneck, thresholds.explanation)

    def bottleneck_timeline(self) -> List[TimelinePoint]:
        return bottleneck_timeline(self.journeys, self.settings.thresholds.bottleneck)

    def delay_propagation(self) -> List[DelayEdge]:
        return analyze_delay_propagation(self.journeys, self.settings.thresholds.propagation)

    # --- Flow summaries ---

    def department_delays(self) -> List[DepartmentDelay]:
        return department_delays(self.journeys, self.settings.thresholds.flow)

    def flow_paths(self, unit: Optional[str] = None) -> List[FlowPath]:
        return flow_paths(self.journeys, unit)

    def time_contributions(self) -> List[TimeContribution]:
        return time_contributions(self.journeys)

    def category_breakdown(self) -> Dict[str, float]:
        return category_time_breakdown(self.journeys)

    def flow_insights(self) -> List[FlowInsight]:
        return generate_flow_insights(self.journeys, self.settings.thresholds.flow)

    # --- Forecasting & risk ---

    def admission_forecast(self, days: Optional[int] = None) -> List[ForecastPoint]:
        return forecast_admissions(self.admissions, days, self.settings.thresholds.forecast)

    def predict_unit_bottlenecks(self, as_of: Optional[date] = None) -> List[BottleneckPrediction]:
        return predict_unit_bottlenecks(self.journeys, as_of, self.settings.thresholds.unit_prediction)

    def capacity_risks(self, days: int = 30, as_of: Optional[date] = None) -> List[CapacityRisk]:
        return predict_capacity_risks(self.journeys, days, as_of, self.settings.thresholds.capacity)

    def resource_shortages(self, as_of: Optional[date] = None) -> List[ResourceShortageWarning]:
        return predict_resource_shortages(self.journeys, self.admissions, as_of, self.settings.thresholds.capacity)

    def readmission_risks(self) -> List[RiskScore]:
        return score_discharged_patients(
            self.admissions, self._journeys, thresholds=self.settings.thresholds.readmission
        )

    def high_risk_patients(self) -> List[RiskScore]:
        return identify_high_risk_patients(
            self.admissions, self._journeys, thresholds=self.settings.thresholds.readmission
        )

    def readmission_trends(self) -> List[ReadmissionTrend]:
        return analyze_readmission_trends(
            self.admissions, self._journeys, thresholds=self.settings.thresholds.readmission
        )

    # --- Simulation ---

    def simulate(self, intervention: Union[Intervention, dict]) -> SimulationResult:
        return simulate_intervention(
            intervention, self.journeys, self.admissions, self.resources,
            self.settings.thresholds.simulation, self._min_wait_minutes
        )

    def compare(self, interventions: Iterable[Union[Intervention, dict]]) -> InterventionComparison:
        return compare_interventions(
            interventions, self.journeys, self.admissions, self.resources,
            self.settings.thresholds.simulation, self._min_wait_minutes
        )

    # --- Optimisation & alerts ---

    def unit_utilization(self) -> List[UnitUtilization]:
        return unit_utilization(self.journeys, self.resources, self.settings.thresholds.simulation)

    def optimizations(self) -> List[OptimizationRecommendation]:
        return prioritized_optimizations(
            self.bottlenecks(), self.unit_utilization(), self.settings.thresholds.optimization
        )

    def staff_reallocations(self) -> List[StaffReallocation]:
        return staff_reallocation_opportunities(
            self.unit_utilization(), self.bottlenecks(), self.settings.thresholds.optimization
        )

    def cost_to_impact(self) -> List[CostToImpactEntry]:
        thresholds = self.settings.thresholds
        return cost_to_impact_analysis(
            self.bottlenecks(), self.journeys, self.admissions, self.resources,
            thresholds.optimization, thresholds.simulation, self._min_wait_minutes
        )

    def alerts(self, as_of: Optional[datetime] = None) -> List[Alert]:
        return collect_alerts(
            self.bottlenecks(), self.unit_utilization(), self.settings.thresholds.alerts, as_of
        )
