"""
Keyword heuristics that decide what kind of question a query is.

Fast, deterministic classification with no reasoning-service call. The
precedence is intentional: visualization intent dominates analytics intent,
which dominates plain search.
"""
import logging
from enum import Enum
from typing import List

from geoquery.analysis.entity_extractor import ExtractedEntities

logger = logging.getLogger(__name__)


class QueryType(str, Enum):
    SEARCH_ONLY = "search_only"
    MAP_DATA_ONLY = "map_data_only"
    COMPREHENSIVE = "comprehensive"
    ANALYTICS = "analytics"
    LOCATION_BASED = "location_based"


MAPPING_KEYWORDS = ["map", "show on map", "geojson", "coordinates", "plot", "visualize"]
ANALYTICS_KEYWORDS = ["average", "count", "sum", "how many", "statistics", "foot traffic", "busy"]
SEARCH_KEYWORDS = ["find", "search", "look for", "locate"]
SEARCH_EXCLUSIONS = ["weather", "events"]

VISUALIZATION_KEYWORDS = ["map", "show", "plot", "visualize", "geojson", "coordinates"]
AREA_KEYWORDS = ["area", "around", "near", "location", "suitability", "competition", "analyze"]
SUMMARY_KEYWORDS = ["tell me", "explain", "describe", "what", "how"]

BASELINE_CONFIDENCE = 0.8


def _contains_any(text_lower: str, keywords: List[str]) -> bool:
    return any(keyword in text_lower for keyword in keywords)


class QueryClassifier:
    """Assigns a QueryType and the mapping/summary flags to a query."""

    def classify(self, text: str, entities: ExtractedEntities) -> QueryType:
        """
        Classify a query, first match wins:

        1. mapping keyword          -> MAP_DATA_ONLY
        2. analytics keyword        -> ANALYTICS
        3. search keyword, and no
           weather/events mention   -> SEARCH_ONLY
        4. anything else            -> COMPREHENSIVE
        """
        text_lower = text.lower()

        if _contains_any(text_lower, MAPPING_KEYWORDS):
            query_type = QueryType.MAP_DATA_ONLY
        elif _contains_any(text_lower, ANALYTICS_KEYWORDS):
            query_type = QueryType.ANALYTICS
        elif _contains_any(text_lower, SEARCH_KEYWORDS) and not _contains_any(text_lower, SEARCH_EXCLUSIONS):
            query_type = QueryType.SEARCH_ONLY
        else:
            query_type = QueryType.COMPREHENSIVE

        logger.debug(f"Classified query as {query_type.value} ({len(entities.locations)} location(s))")
        return query_type

    def visualization_requested(self, text: str) -> bool:
        """Explicit request for a map or coordinates in the wording itself."""
        return _contains_any(text.lower(), VISUALIZATION_KEYWORDS)

    def requires_mapping(self, text: str, entities: ExtractedEntities) -> bool:
        """Geo output is useful: explicit visualization, a known place, or an area question."""
        text_lower = text.lower()
        return (
            _contains_any(text_lower, VISUALIZATION_KEYWORDS)
            or len(entities.locations) > 0
            or _contains_any(text_lower, AREA_KEYWORDS)
        )

    def requires_summary(self, text: str) -> bool:
        return _contains_any(text.lower(), SUMMARY_KEYWORDS)

    def confidence(self, query_type: QueryType) -> float:
        # Keyword routing has no graded signal; enrichment may nudge this later.
        return BASELINE_CONFIDENCE

    def suggested_executors(
        self,
        query_type: QueryType,
        requires_mapping: bool,
        visualization_requested: bool = False
    ) -> List[str]:
        """Executor roles a plan for this query is expected to use."""
        if query_type == QueryType.SEARCH_ONLY:
            executors = ["collector"]
            if requires_mapping:
                executors.append("map-formatter")
        elif query_type == QueryType.MAP_DATA_ONLY:
            executors = ["planner", "map-formatter"]
        elif query_type == QueryType.ANALYTICS:
            executors = ["planner", "collector", "summarizer"]
            if visualization_requested:
                executors.append("map-formatter")
        else:
            executors = ["planner", "collector", "summarizer"]
            if requires_mapping:
                executors.append("map-formatter")
        return executors
