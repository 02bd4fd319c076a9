import asyncio
import logging
import time
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Set
from pydantic import BaseModel, Field

from geoquery.analysis.entity_extractor import parse_coordinates
from geoquery.analysis.query_classifier import QueryType
from geoquery.config import MAX_EXECUTION_TIME_MS, MAX_QUERY_LENGTH, USE_LLM
from geoquery.errors import ClassificationError, ConfigurationError, PlanningError
from geoquery.llm.reasoning import LangChainReasoningExecutor, ReasoningExecutor
from geoquery.orchestration.phase_coordinator import PhaseCoordinator
from geoquery.orchestration.planner import ExecutionPlanner, get_plan_explanation
from geoquery.orchestration.query_understanding import QueryAnalysis, QueryRouter, get_query_router
from geoquery.security.pii_redactor import redact_pii
from geoquery.services.external_operations import ExternalOperation, HttpExternalOperation
from geoquery.services.operation_gateway import OperationGateway
from geoquery.services.result_cache import ResultCache
from geoquery.synthesis.recommendations import generate_recommendations
from geoquery.synthesis.result_synthesizer import (
    ResponseMetadata,
    ResultSynthesizer,
    SynthesizedResponse,
)
from geoquery.utils.sanitization import sanitize_text_input

logger = logging.getLogger("orchestrator")


class RequestState(str, Enum):
    RECEIVED = "RECEIVED"
    ANALYZED = "ANALYZED"
    ENRICHED = "ENRICHED"
    PLANNED = "PLANNED"
    PREWARMED = "PREWARMED"
    EXECUTING = "EXECUTING"
    SYNTHESIZED = "SYNTHESIZED"
    DONE = "DONE"
    FAILED = "FAILED"


class UserLocation(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class QueryPreferences(BaseModel):
    cache_strategy: Literal["aggressive", "normal", "minimal"] = "normal"
    response_format: Literal["summary", "detailed", "geojson", "hybrid"] = "hybrid"
    max_execution_time_ms: Optional[int] = Field(None, gt=0, description="Budget after which no new phase starts")
    include_raw_data: bool = False


class QueryContext(BaseModel):
    user_location: Optional[UserLocation] = None
    domain_focus: Optional[Literal["places", "events", "analytics", "navigation"]] = None
    previous_queries: List[str] = Field(default_factory=list)


# domain focus -> (query types it matches, confidence boost)
DOMAIN_FOCUS_BOOSTS: Dict[str, tuple] = {
    "places": ({QueryType.SEARCH_ONLY, QueryType.COMPREHENSIVE, QueryType.LOCATION_BASED}, 0.1),
    "analytics": ({QueryType.ANALYTICS}, 0.2),
    "navigation": ({QueryType.MAP_DATA_ONLY, QueryType.LOCATION_BASED}, 0.1),
    "events": ({QueryType.COMPREHENSIVE}, 0.1),
}

PREWARM_OPERATIONS = ["get_weather", "search_events"]
PREWARM_EVENT_RADIUS = 1000


def enrich_analysis(analysis: QueryAnalysis, context: Optional[QueryContext]) -> QueryAnalysis:
    """
    Apply caller context to an analysis, returning one adjusted copy.

    A known user location is injected as a "lat,lon" entity when the query
    named no place; a domain focus matching the query type nudges confidence
    upward, capped at 1.0.
    """
    if context is None:
        return analysis

    update: Dict[str, Any] = {}

    entities = analysis.extracted_entities
    if context.user_location and not entities.locations:
        location = f"{context.user_location.lat:.6f},{context.user_location.lon:.6f}"
        update["extracted_entities"] = entities.model_copy(update={"locations": [location]})

    if context.domain_focus in DOMAIN_FOCUS_BOOSTS:
        matching_types, boost = DOMAIN_FOCUS_BOOSTS[context.domain_focus]
        if analysis.query_type in matching_types:
            update["confidence"] = min(round(analysis.confidence + boost, 4), 1.0)

    if not update:
        return analysis
    return analysis.model_copy(update=update)


class Orchestrator:
    """
    Top-level request handler.

    RECEIVED -> ANALYZED -> ENRICHED -> PLANNED -> PREWARMED -> EXECUTING
    -> SYNTHESIZED -> DONE, or FAILED when the query cannot be analyzed or
    planned. Phase and operation failures degrade the answer but never reach
    FAILED.
    """

    def __init__(
        self,
        reasoning: ReasoningExecutor,
        operation: ExternalOperation,
        cache: Optional[ResultCache] = None,
        router: Optional[QueryRouter] = None,
        planner: Optional[ExecutionPlanner] = None,
        synthesizer: Optional[ResultSynthesizer] = None,
        parallel: Optional[bool] = None,
        default_max_execution_time_ms: int = MAX_EXECUTION_TIME_MS
    ):
        self.cache = cache if cache is not None else ResultCache()
        self.gateway = OperationGateway(operation, self.cache)
        self.router = router or get_query_router()
        self.planner = planner or ExecutionPlanner()
        self.synthesizer = synthesizer or ResultSynthesizer()
        coordinator_kwargs = {} if parallel is None else {"parallel": parallel}
        self.coordinator = PhaseCoordinator(reasoning, self.gateway, **coordinator_kwargs)
        self.default_max_execution_time_ms = default_max_execution_time_ms
        self._background_tasks: Set[asyncio.Task] = set()

    async def handle(
        self,
        query: str,
        session_id: Optional[str] = None,
        preferences: Optional[QueryPreferences] = None,
        context: Optional[QueryContext] = None
    ) -> SynthesizedResponse:
        """
        Answer one query. Always returns a SynthesizedResponse, never raises.
        """
        start = time.monotonic()
        preferences = preferences or QueryPreferences()

        logger.info("=" * 60)
        logger.info(f"ORCHESTRATOR: session={session_id or '-'}")
        self._transition(RequestState.RECEIVED, redact_pii(query or ""))
        if context and context.previous_queries:
            logger.debug(f"{len(context.previous_queries)} previous queries in context")

        try:
            clean_query = sanitize_text_input(query or "", max_length=MAX_QUERY_LENGTH)
            analysis = self.router.analyze(clean_query)
            self._transition(RequestState.ANALYZED, f"type={analysis.query_type.value}")

            analysis = enrich_analysis(analysis, context)
            self._transition(RequestState.ENRICHED, f"confidence={analysis.confidence}")

            plan = self.planner.plan(analysis)
            self._transition(RequestState.PLANNED, get_plan_explanation(plan)["summary"])

        except (ClassificationError, PlanningError) as e:
            self._transition(RequestState.FAILED, str(e))
            return self._failed_response(e, session_id, start)

        self._apply_cache_strategy(analysis, preferences)
        self._transition(RequestState.PREWARMED, f"cache_strategy={preferences.cache_strategy}")

        self._transition(RequestState.EXECUTING, plan.plan_id)
        try:
            execution = await self.coordinator.execute(
                plan,
                clean_query,
                analysis,
                max_execution_time_ms=preferences.max_execution_time_ms or self.default_max_execution_time_ms
            )
            include_raw = preferences.include_raw_data or preferences.response_format == "detailed"
            response = self.synthesizer.combine(analysis, execution.phase_results, include_raw_data=include_raw)
        except Exception as e:
            logger.exception(f"Unexpected error while answering query: {e}")
            self._transition(RequestState.FAILED, str(e))
            return self._failed_response(e, session_id, start)

        response.success = execution.success
        response.errors = list(execution.errors)
        response.metadata.execution_time_ms = round((time.monotonic() - start) * 1000, 2)
        response.metadata.cache_hits = execution.cache_hits
        response.metadata.parallel_phases = execution.parallel_phases
        response.metadata.session_id = session_id
        response.metadata.plan_id = plan.plan_id
        self._transition(RequestState.SYNTHESIZED, f"features={len(response.geo_collection.features)}")

        response.recommendations = generate_recommendations(analysis, response)

        self._transition(
            RequestState.DONE,
            f"success={response.success} in {response.metadata.execution_time_ms:.0f}ms"
        )
        logger.info("=" * 60)
        return response

    @staticmethod
    def _transition(state: RequestState, detail: str = "") -> None:
        logger.info(f"[{state.value}] {detail}")

    def _failed_response(
        self,
        error: Exception,
        session_id: Optional[str],
        start: float
    ) -> SynthesizedResponse:
        if isinstance(error, ClassificationError):
            summary = f"I couldn't understand this request: {error}. Please describe the place or area you are interested in."
        elif isinstance(error, PlanningError):
            summary = f"I couldn't plan how to answer this request: {error}."
        else:
            summary = "Something went wrong while gathering the data for this request. Please try again."

        return SynthesizedResponse(
            summary_text=summary,
            success=False,
            errors=[str(error)],
            metadata=ResponseMetadata(
                execution_time_ms=round((time.monotonic() - start) * 1000, 2),
                session_id=session_id,
            ),
        )

    # ------------------------------------------------------------------
    # Cache policy
    # ------------------------------------------------------------------

    def _apply_cache_strategy(self, analysis: QueryAnalysis, preferences: QueryPreferences) -> None:
        if preferences.cache_strategy == "aggressive":
            self._prewarm(analysis)
        elif preferences.cache_strategy == "minimal":
            removed = self.gateway.sweep()
            logger.info(f"Minimal cache strategy: swept {removed} expired entries")

    def _prewarm(self, analysis: QueryAnalysis) -> None:
        """Start background weather/events lookups for every coordinate-shaped location."""
        for location in analysis.extracted_entities.locations:
            coordinates = parse_coordinates(location)
            if coordinates is None:
                continue
            task = asyncio.create_task(self._prewarm_location(coordinates[0], coordinates[1]))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

    async def _prewarm_location(self, lat: float, lon: float) -> None:
        calls = [
            ("get_weather", {"lat": lat, "lon": lon}),
            ("search_events", {"lat": lat, "lon": lon, "radius": PREWARM_EVENT_RADIUS}),
        ]
        outcomes = await asyncio.gather(
            *[self.gateway.call(op, params) for op, params in calls],
            return_exceptions=True
        )
        for (op, _), outcome in zip(calls, outcomes):
            if isinstance(outcome, Exception):
                # Pre-warm is speculative; the real phase will retry
                logger.debug(f"Pre-warm of {op} failed: {outcome}")

    async def wait_for_background_tasks(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def get_cache_statistics(self) -> Dict[str, Any]:
        return self.gateway.cache_statistics()

    def clear_all_caches(self) -> Dict[str, Any]:
        removed = self.gateway.clear_cache()
        return {"cleared": removed}


_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    """Get singleton orchestrator wired to the LangChain and HTTP adapters."""
    global _orchestrator
    if _orchestrator is None:
        if not USE_LLM:
            raise ConfigurationError("OPENAI_API_KEY missing. Add it to .env to run the query engine.")
        _orchestrator = Orchestrator(
            reasoning=LangChainReasoningExecutor(),
            operation=HttpExternalOperation(),
        )
    return _orchestrator
