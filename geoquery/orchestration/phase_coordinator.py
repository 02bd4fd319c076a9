import asyncio
import logging
import operator
import time
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, TypedDict
from pydantic import BaseModel, Field
from langgraph.graph import StateGraph, START, END

from geoquery.analysis.entity_extractor import parse_coordinates
from geoquery.config import ENABLE_PARALLEL_PHASES, PHASE_TIMEOUT_SECONDS
from geoquery.errors import PhaseExecutionError
from geoquery.llm.output_parsing import (
    ReasoningOutput,
    StructuredOutput,
    TextOutput,
    ParseFailedOutput,
    parse_reasoning_output,
)
from geoquery.llm.reasoning import ReasoningExecutor
from geoquery.orchestration.planner import ExecutionPlan, Phase
from geoquery.orchestration.query_understanding import QueryAnalysis
from geoquery.prompts.phase_prompts import build_phase_prompt
from geoquery.services.operation_gateway import OperationGateway

logger = logging.getLogger("phase_coordinator")


# ============================================================================
# Results
# ============================================================================

class PhaseStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"
    SKIPPED = "skipped"


class PhaseResult(BaseModel):
    """Outcome of one phase, stored under the phase name for the rest of the request."""
    phase: str
    executor: str
    status: PhaseStatus
    output: Optional[ReasoningOutput] = None
    operations: Dict[str, Any] = Field(default_factory=dict, description="operation_id -> returned data")
    operation_errors: Dict[str, str] = Field(default_factory=dict, description="operation_id -> failure message")
    cache_hits: int = 0
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def completed(self) -> bool:
        return self.status == PhaseStatus.COMPLETED

    def payload(self) -> Any:
        """What dependents see: the parsed output plus any operation data."""
        if isinstance(self.output, StructuredOutput):
            output: Any = self.output.data
        elif isinstance(self.output, TextOutput):
            output = self.output.text
        elif isinstance(self.output, ParseFailedOutput):
            output = self.output.raw
        else:
            output = None

        if self.operations:
            return {"output": output, "operations": self.operations}
        return output


class ExecutionResult(BaseModel):
    phase_results: Dict[str, PhaseResult] = Field(default_factory=dict)
    final_output: Any = None
    duration_ms: float = 0.0
    success: bool = True
    errors: List[str] = Field(default_factory=list)
    skipped_phases: List[str] = Field(default_factory=list)
    parallel_phases: int = 0
    cache_hits: int = 0


# ============================================================================
# State Management
# ============================================================================

def merge_phase_results(
    left: Optional[Dict[str, PhaseResult]],
    right: Optional[Dict[str, PhaseResult]]
) -> Dict[str, PhaseResult]:
    """Reducer for concurrent phase writes; each phase writes only its own key."""
    merged = dict(left or {})
    merged.update(right or {})
    return merged


class CoordinationState(TypedDict):
    """
    LangGraph state for one plan execution.

    phase_results and errors have reducers because phases in the same level
    write to them concurrently. The remaining keys are read-only inputs.
    """
    query: str
    analysis: QueryAnalysis
    deadline: Optional[float]  # time.monotonic() after which no new phase starts
    phase_results: Annotated[Dict[str, PhaseResult], merge_phase_results]
    errors: Annotated[List[str], operator.add]


# ============================================================================
# Operation parameters
# ============================================================================

def build_operation_params(
    operation_id: str,
    query: str,
    analysis: QueryAnalysis,
    plan_hints: Optional[Dict[str, Any]] = None
) -> Optional[Dict[str, Any]]:
    """
    Parameters for one external operation, or None when the operation cannot
    run for this query (weather, events and foot traffic need a location).
    """
    entities = analysis.extracted_entities
    location = entities.locations[0] if entities.locations else None
    coordinates = parse_coordinates(location) if location else None

    if coordinates:
        where: Dict[str, Any] = {"lat": coordinates[0], "lon": coordinates[1]}
    elif location:
        where = {"location": location}
    else:
        where = {}

    if operation_id == "search_places":
        search_terms = (plan_hints or {}).get("search_terms")
        terms: List[str] = []
        if isinstance(search_terms, list):
            # planner output is untrusted; bools and nested values are dropped
            for term in search_terms:
                if isinstance(term, (str, int, float)) and not isinstance(term, bool) and str(term).strip():
                    terms.append(str(term).strip())
        params: Dict[str, Any] = {
            "query": " ".join(terms) if terms else query,
            **where,
        }
        if entities.categories:
            params["categories"] = entities.categories
        return params

    if operation_id in ("get_weather", "get_foot_traffic", "get_foot_traffic_summary"):
        return where or None

    if operation_id == "search_events":
        if not where:
            return None
        params = dict(where)
        if coordinates:
            params["radius"] = 1000
        if entities.timeframes:
            params["timeframe"] = entities.timeframes[0]
        return params

    if operation_id == "get_aggregated_metric":
        params = {"metric": entities.metrics[0] if entities.metrics else "count", **where}
        if entities.categories:
            params["category"] = entities.categories[0]
        return params

    return {"query": query, **where}


# ============================================================================
# Coordinator
# ============================================================================

class PhaseCoordinator:
    """
    Executes an ExecutionPlan as a LangGraph task graph.

    One node per phase; edges follow phase dependencies, so LangGraph runs
    each topological level concurrently and joins it before the next.
    In sequential mode the same nodes are chained in plan order.
    """

    def __init__(
        self,
        reasoning: ReasoningExecutor,
        gateway: OperationGateway,
        parallel: bool = ENABLE_PARALLEL_PHASES,
        phase_timeout_seconds: float = PHASE_TIMEOUT_SECONDS
    ):
        self.reasoning = reasoning
        self.gateway = gateway
        self.parallel = parallel
        self.phase_timeout_seconds = phase_timeout_seconds

    def build_phase_graph(self, plan: ExecutionPlan):
        workflow = StateGraph(CoordinationState)

        for phase in plan.phases:
            workflow.add_node(self._node_id(phase.name), self._make_phase_node(phase, plan))

        if self.parallel:
            for phase in plan.phases:
                node = self._node_id(phase.name)
                if not phase.dependencies:
                    workflow.add_edge(START, node)
                elif len(phase.dependencies) == 1:
                    workflow.add_edge(self._node_id(phase.dependencies[0]), node)
                else:
                    # Join: waits for every dependency
                    workflow.add_edge([self._node_id(dep) for dep in phase.dependencies], node)
            for sink in plan.sinks():
                workflow.add_edge(self._node_id(sink), END)
        else:
            nodes = [self._node_id(phase.name) for phase in plan.phases]
            workflow.add_edge(START, nodes[0])
            for current, following in zip(nodes, nodes[1:]):
                workflow.add_edge(current, following)
            workflow.add_edge(nodes[-1], END)

        return workflow.compile()

    @staticmethod
    def _node_id(phase_name: str) -> str:
        return f"run_{phase_name}"

    async def execute(
        self,
        plan: ExecutionPlan,
        query: str,
        analysis: QueryAnalysis,
        max_execution_time_ms: Optional[int] = None
    ) -> ExecutionResult:
        """
        Execute every phase of the plan.

        Never raises for phase or operation failures: they are recorded on the
        phase results and in errors. success is False only when a critical
        phase failed or a phase was blocked by one.
        """
        start = time.monotonic()
        deadline = start + max_execution_time_ms / 1000 if max_execution_time_ms else None

        logger.info(f"Executing plan {plan.plan_id}: {len(plan.phases)} phases, "
                    f"mode={'parallel' if self.parallel else 'sequential'}")

        initial_state: CoordinationState = {
            "query": query,
            "analysis": analysis,
            "deadline": deadline,
            "phase_results": {},
            "errors": [],
        }

        try:
            graph = self.build_phase_graph(plan)
            final_state = await graph.ainvoke(
                initial_state,
                config={"recursion_limit": len(plan.phases) + 5}
            )
        except Exception as e:
            logger.exception(f"Plan {plan.plan_id} execution failed: {e}")
            return ExecutionResult(
                duration_ms=(time.monotonic() - start) * 1000,
                success=False,
                errors=[f"Execution error: {e}"],
            )

        phase_results: Dict[str, PhaseResult] = final_state.get("phase_results", {})
        result = ExecutionResult(
            phase_results=phase_results,
            final_output=self._final_output(plan, phase_results),
            duration_ms=(time.monotonic() - start) * 1000,
            success=self._is_success(plan, phase_results),
            errors=list(final_state.get("errors", [])),
            skipped_phases=[name for name, r in phase_results.items() if r.status == PhaseStatus.SKIPPED],
            parallel_phases=self._count_parallel(plan, phase_results),
            cache_hits=sum(r.cache_hits for r in phase_results.values()),
        )

        logger.info(
            f"Plan {plan.plan_id} finished in {result.duration_ms:.0f}ms: success={result.success}, "
            f"statuses={ {name: r.status.value for name, r in phase_results.items()} }"
        )
        return result

    # ------------------------------------------------------------------
    # Phase node
    # ------------------------------------------------------------------

    def _make_phase_node(self, phase: Phase, plan: ExecutionPlan):
        async def run_phase(state: CoordinationState) -> dict:
            result, errors = await self._run_phase(phase, plan, state)
            return {"phase_results": {phase.name: result}, "errors": errors}

        return run_phase

    async def _run_phase(
        self,
        phase: Phase,
        plan: ExecutionPlan,
        state: CoordinationState
    ) -> tuple:
        start = time.monotonic()
        results = state.get("phase_results") or {}

        def finish(status: PhaseStatus, **fields) -> PhaseResult:
            return PhaseResult(
                phase=phase.name,
                executor=phase.executor,
                status=status,
                duration_ms=(time.monotonic() - start) * 1000,
                **fields
            )

        deadline = state.get("deadline")
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning(f"Phase '{phase.name}' skipped: execution time budget exhausted")
            return finish(PhaseStatus.SKIPPED, error="execution time budget exhausted"), [
                f"Phase '{phase.name}' skipped: execution time budget exhausted"
            ]

        blocked_by = [
            dep for dep in phase.dependencies
            if plan.get_phase(dep).critical and not (dep in results and results[dep].completed)
        ]
        if blocked_by:
            message = f"Phase '{phase.name}' blocked: required phase(s) {blocked_by} did not complete"
            logger.warning(message)
            return finish(PhaseStatus.BLOCKED, error=message), [message]

        dependency_results = {
            dep: results[dep].payload() for dep in phase.dependencies
            if dep in results and results[dep].completed
        }

        errors: List[str] = []
        operations: Dict[str, Any] = {}
        operation_errors: Dict[str, str] = {}
        cache_hits = 0

        try:
            operations, operation_errors, cache_hits = await self._run_operations(
                phase, state["query"], state["analysis"], results
            )
            for op, message in operation_errors.items():
                errors.append(f"Operation '{op}' in phase '{phase.name}' failed: {message}")

            prompt = build_phase_prompt(
                phase.name,
                state["query"],
                dependency_results=dependency_results,
                operation_data=operations,
                operation_errors=operation_errors,
            )

            raw = await asyncio.wait_for(
                self.reasoning.invoke(phase.executor, prompt),
                timeout=self.phase_timeout_seconds
            )
        except asyncio.TimeoutError:
            error = PhaseExecutionError(phase.name, f"timed out after {self.phase_timeout_seconds}s")
            logger.error(str(error))
            return finish(
                PhaseStatus.FAILED,
                operations=operations,
                operation_errors=operation_errors,
                cache_hits=cache_hits,
                error=str(error),
            ), errors + [str(error)]
        except Exception as e:
            error = PhaseExecutionError(phase.name, str(e))
            logger.exception(str(error))
            return finish(
                PhaseStatus.FAILED,
                operations=operations,
                operation_errors=operation_errors,
                cache_hits=cache_hits,
                error=str(error),
            ), errors + [str(error)]

        output = parse_reasoning_output(raw)
        result = finish(
            PhaseStatus.COMPLETED,
            output=output,
            operations=operations,
            operation_errors=operation_errors,
            cache_hits=cache_hits,
        )
        logger.info(f"Phase '{phase.name}' ({phase.executor}) completed in {result.duration_ms:.0f}ms "
                    f"[output={output.kind}, operations={list(operations)}, cache_hits={cache_hits}]")
        return result, errors

    async def _run_operations(
        self,
        phase: Phase,
        query: str,
        analysis: QueryAnalysis,
        results: Dict[str, PhaseResult]
    ) -> tuple:
        plan_result = results.get("plan")
        plan_hints = None
        if plan_result is not None and plan_result.completed and isinstance(plan_result.output, StructuredOutput):
            if isinstance(plan_result.output.data, dict):
                plan_hints = plan_result.output.data

        calls = []
        for operation_id in phase.capabilities:
            params = build_operation_params(operation_id, query, analysis, plan_hints)
            if params is None:
                logger.debug(f"Skipping {operation_id} in '{phase.name}': no location available")
                continue
            calls.append((operation_id, params))

        if not calls:
            return {}, {}, 0

        outcomes = await asyncio.gather(
            *[self.gateway.call(op, params) for op, params in calls],
            return_exceptions=True
        )

        operations: Dict[str, Any] = {}
        operation_errors: Dict[str, str] = {}
        cache_hits = 0
        for (operation_id, _), outcome in zip(calls, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                operation_errors[operation_id] = str(outcome) or outcome.__class__.__name__
                continue
            operations[operation_id] = outcome.data
            if outcome.cached:
                cache_hits += 1

        return operations, operation_errors, cache_hits

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    @staticmethod
    def _is_success(plan: ExecutionPlan, results: Dict[str, PhaseResult]) -> bool:
        for phase in plan.phases:
            result = results.get(phase.name)
            if result is None:
                return False
            if result.status == PhaseStatus.BLOCKED:
                return False
            if result.status == PhaseStatus.FAILED and phase.critical:
                return False
        return True

    @staticmethod
    def _final_output(plan: ExecutionPlan, results: Dict[str, PhaseResult]) -> Any:
        for phase in reversed(plan.phases):
            result = results.get(phase.name)
            if result is not None and result.completed:
                return result.payload()
        return None

    def _count_parallel(self, plan: ExecutionPlan, results: Dict[str, PhaseResult]) -> int:
        if not self.parallel:
            return 0
        executed = {
            name for name, r in results.items()
            if r.status in (PhaseStatus.COMPLETED, PhaseStatus.FAILED)
        }
        count = 0
        for level in plan.levels():
            ran = [name for name in level if name in executed]
            if len(ran) > 1:
                count += len(ran)
        return count
