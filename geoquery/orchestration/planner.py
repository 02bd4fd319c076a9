import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Any, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from geoquery.analysis.query_classifier import QueryType
from geoquery.errors import PlanningError
from geoquery.orchestration.query_understanding import QueryAnalysis

logger = logging.getLogger("execution_planner")


# ============================================================================
# PYDANTIC MODELS FOR PLAN STRUCTURE
# ============================================================================

class Phase(BaseModel):
    """
    One unit of work in an execution plan.

    A phase names the executor role that reasons over its inputs, the
    external operations it may call, and the earlier phases whose results
    it consumes.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique phase name within the plan")
    executor: str = Field(..., description="Executor role (planner, collector, summarizer, map-formatter)")
    description: str = Field(default="", description="Human-readable description of what this phase does")
    capabilities: List[str] = Field(default_factory=list, description="External operation ids this phase may call")
    dependencies: List[str] = Field(default_factory=list, description="Names of earlier phases this phase consumes")
    parallel: bool = Field(default=False, description="May run concurrently with phases sharing its dependency level")
    critical: bool = Field(default=True, description="If True, dependents are blocked when this phase fails")


def validate_phase_graph(phases: List[Phase]) -> None:
    """
    Validate a phase list as a dependency graph.

    Checks:
    - At least one phase exists
    - Phase names are unique
    - Dependencies reference phases declared strictly earlier (this also
      rules out self references and cycles)

    Raises:
        ValueError: If the graph is invalid
    """
    if not phases:
        raise ValueError("Plan has no phases")

    declared = set()
    for phase in phases:
        if phase.name in declared:
            raise ValueError(f"Duplicate phase name '{phase.name}'")
        for dep in phase.dependencies:
            if dep == phase.name:
                raise ValueError(f"Phase '{phase.name}' has circular dependency (depends on itself)")
            if dep not in declared:
                raise ValueError(
                    f"Phase '{phase.name}' depends on '{dep}', which is not declared earlier in the plan"
                )
        declared.add(phase.name)


class ExecutionPlan(BaseModel):
    """
    Validated, immutable execution plan.

    The phase graph is checked at construction time, so an ExecutionPlan
    instance is always topologically valid.
    """
    model_config = ConfigDict(frozen=True)

    plan_id: str = Field(default_factory=lambda: f"plan-{uuid.uuid4().hex[:8]}", description="Unique plan identifier")
    query_type: QueryType = Field(..., description="Query type this plan was built for")
    phases: List[Phase] = Field(..., description="Phases in topologically valid order")
    estimated_duration_ms: int = Field(..., description="Coarse planning estimate, not a deadline")
    parallelizable: bool = Field(default=False, description="Whether any phases may run concurrently")
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat(), description="Plan creation timestamp")

    @model_validator(mode="after")
    def _check_graph(self) -> "ExecutionPlan":
        validate_phase_graph(self.phases)
        return self

    def get_phase(self, name: str) -> Optional[Phase]:
        for phase in self.phases:
            if phase.name == name:
                return phase
        return None

    def levels(self) -> List[List[str]]:
        """Topological levels: each level only depends on earlier levels."""
        depth: Dict[str, int] = {}
        for phase in self.phases:
            depth[phase.name] = 1 + max((depth[dep] for dep in phase.dependencies), default=-1)

        grouped: List[List[str]] = [[] for _ in range(max(depth.values()) + 1)]
        for phase in self.phases:
            grouped[depth[phase.name]].append(phase.name)
        return grouped

    def sinks(self) -> List[str]:
        """Phases no other phase depends on."""
        depended_on = {dep for phase in self.phases for dep in phase.dependencies}
        return [phase.name for phase in self.phases if phase.name not in depended_on]


# ============================================================================
# PHASE TEMPLATES
# ============================================================================

COLLECT_OPERATIONS = ["search_places", "get_weather", "search_events"]
DIRECT_SEARCH_OPERATIONS = ["search_places"]
AGGREGATE_OPERATIONS = ["get_aggregated_metric", "get_foot_traffic"]
GEOSPATIAL_OPERATIONS = ["search_places", "search_events"]

BASE_DURATION_MS = 2000
PER_PHASE_DURATION_MS = 1500


def _plan_phase() -> Phase:
    # Non-critical: collection falls back to the raw query without a plan
    return Phase(
        name="plan",
        executor="planner",
        description="Break the request into data needs and search parameters",
        critical=False,
    )


def _map_phase(dependency: str, parallel: bool) -> Phase:
    return Phase(
        name="map",
        executor="map-formatter",
        description="Format collected places and events as a GeoJSON FeatureCollection",
        dependencies=[dependency],
        parallel=parallel,
        critical=False,
    )


def comprehensive_template(analysis: QueryAnalysis) -> List[Phase]:
    phases = [
        _plan_phase(),
        Phase(
            name="collect",
            executor="collector",
            description="Collect places, weather and events for the requested area",
            capabilities=COLLECT_OPERATIONS,
            dependencies=["plan"],
        ),
    ]
    if analysis.requires_mapping:
        phases.append(_map_phase("collect", parallel=True))
    phases.append(
        Phase(
            name="summarize",
            executor="summarizer",
            description="Summarize the collected data into an answer",
            dependencies=["collect"],
            parallel=analysis.requires_mapping,
            critical=False,
        )
    )
    return phases


def map_data_template(analysis: QueryAnalysis) -> List[Phase]:
    return [
        _plan_phase(),
        Phase(
            name="geospatial_collect",
            executor="map-formatter",
            description="Collect geo-tagged places and events and format them for a map",
            capabilities=GEOSPATIAL_OPERATIONS,
            dependencies=["plan"],
        ),
    ]


def search_template(analysis: QueryAnalysis) -> List[Phase]:
    phases = [
        Phase(
            name="direct_search",
            executor="collector",
            description="Search for matching places",
            capabilities=DIRECT_SEARCH_OPERATIONS,
        ),
    ]
    if analysis.requires_mapping:
        phases.append(_map_phase("direct_search", parallel=False))
    return phases


def analytics_template(analysis: QueryAnalysis) -> List[Phase]:
    phases = [
        _plan_phase(),
        Phase(
            name="aggregate",
            executor="collector",
            description="Compute aggregate metrics and foot traffic for the requested area",
            capabilities=AGGREGATE_OPERATIONS,
            dependencies=["plan"],
        ),
        Phase(
            name="summarize",
            executor="summarizer",
            description="Explain the aggregated figures",
            dependencies=["aggregate"],
            parallel=analysis.visualization_requested,
            critical=False,
        ),
    ]
    # Analytics answers are numbers; a map is added only when asked for explicitly
    if analysis.visualization_requested:
        phases.append(_map_phase("aggregate", parallel=True))
    return phases


PhaseTemplate = Callable[[QueryAnalysis], List[Phase]]

PHASE_TEMPLATES: Dict[QueryType, PhaseTemplate] = {
    QueryType.COMPREHENSIVE: comprehensive_template,
    QueryType.MAP_DATA_ONLY: map_data_template,
    QueryType.SEARCH_ONLY: search_template,
    QueryType.ANALYTICS: analytics_template,
    QueryType.LOCATION_BASED: comprehensive_template,
}


def estimate_duration_ms(phase_count: int) -> int:
    return BASE_DURATION_MS + PER_PHASE_DURATION_MS * phase_count


# ============================================================================
# PLANNER
# ============================================================================

class ExecutionPlanner:
    """Builds a validated ExecutionPlan from a QueryAnalysis using fixed templates."""

    def __init__(self, templates: Optional[Dict[QueryType, PhaseTemplate]] = None):
        self.templates = dict(PHASE_TEMPLATES if templates is None else templates)

    def plan(self, analysis: QueryAnalysis) -> ExecutionPlan:
        """
        Create the execution plan for an analysis.

        Raises:
            PlanningError: If no template is registered for the query type,
                or the template produced an invalid phase graph
        """
        template = self.templates.get(analysis.query_type)
        if template is None:
            raise PlanningError(f"No phase template registered for query type '{analysis.query_type.value}'")

        phases = template(analysis)

        try:
            plan = ExecutionPlan(
                query_type=analysis.query_type,
                phases=phases,
                estimated_duration_ms=estimate_duration_ms(len(phases)),
                parallelizable=any(phase.parallel for phase in phases),
            )
        except (ValidationError, ValueError) as e:
            raise PlanningError(f"Invalid plan for '{analysis.query_type.value}': {e}") from e

        logger.info("=" * 60)
        logger.info(f"PLANNER: {plan.plan_id} for {plan.query_type.value}")
        logger.info(f"Phases: {[phase.name for phase in plan.phases]}")
        logger.info(f"Levels: {plan.levels()}")
        logger.info(f"Estimated duration: {plan.estimated_duration_ms}ms")
        logger.info("=" * 60)

        return plan


def get_plan_explanation(plan: ExecutionPlan) -> Dict[str, Any]:
    """
    Generate a human-readable explanation of the plan for logs and diagnostics.
    """
    return {
        "plan_id": plan.plan_id,
        "summary": f"{len(plan.phases)}-phase plan for a {plan.query_type.value} query",
        "what_will_happen": [
            f"{phase.name} ({phase.executor}): {phase.description}" for phase in plan.phases
        ],
        "execution_order": plan.levels(),
        "data_sources": sorted({op for phase in plan.phases for op in phase.capabilities}),
        "estimated_time": f"{plan.estimated_duration_ms / 1000:.1f} seconds",
        "parallelizable": plan.parallelizable,
        "created_at": plan.created_at,
    }
