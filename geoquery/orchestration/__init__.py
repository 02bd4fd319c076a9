"""
Orchestration Module

Coordinates the end-to-end handling of a location query.

Components:
- query_understanding: Step 1 - Extracts entities and classifies the query
- planner: Step 2 - Builds a validated phase graph from a fixed template
- phase_coordinator: Step 3 - Executes the phase graph (LangGraph), calling
  external operations through the cached gateway and the reasoning executor
- orchestrator: Entry point; enrichment, cache policy, synthesis, recommendations

Architecture:
┌─────────────────────────────────────────────────────────────┐
│                       Orchestrator                          │
│                   (handle: main entry)                      │
└─────────────────────────────────────────────────────────────┘
                            │
                            ▼
┌─────────────────────────────────────────────────────────────┐
│                  QueryRouter (analysis)                     │
│         EntityExtractor  +  QueryClassifier                 │
└─────────────────────────────────────────────────────────────┘
                            │ context enrichment
                            ▼
                  ┌──────────────────┐
                  │ ExecutionPlanner │
                  │ (phase template) │
                  └──────────────────┘
                            │           cache pre-warm (optional)
                            ▼
┌─────────────────────────────────────────────────────────────┐
│                    PhaseCoordinator                         │
│   level 0 ──► level 1 ──► [level 2 phases run concurrently] │
│   ReasoningExecutor    OperationGateway ──► ResultCache     │
└─────────────────────────────────────────────────────────────┘
                            │
                            ▼
                  ┌──────────────────┐
                  │ ResultSynthesizer│
                  │ + recommendations│
                  └──────────────────┘

The orchestrator module is imported directly (geoquery.orchestration.orchestrator)
because it depends on the synthesis package, which depends on this one.
"""

from geoquery.orchestration.query_understanding import (
    get_query_router,
    QueryAnalysis,
    QueryRouter
)

from geoquery.orchestration.planner import (
    ExecutionPlan,
    ExecutionPlanner,
    Phase,
    get_plan_explanation
)

from geoquery.orchestration.phase_coordinator import (
    ExecutionResult,
    PhaseCoordinator,
    PhaseResult,
    PhaseStatus
)

__all__ = [
    # Query Understanding
    "get_query_router",
    "QueryAnalysis",
    "QueryRouter",

    # Planning
    "ExecutionPlan",
    "ExecutionPlanner",
    "Phase",
    "get_plan_explanation",

    # Execution
    "ExecutionResult",
    "PhaseCoordinator",
    "PhaseResult",
    "PhaseStatus",
]
