"""
Follow-up suggestions attached to a synthesized response.
"""
from typing import List

from geoquery.orchestration.query_understanding import QueryAnalysis
from geoquery.synthesis.result_synthesizer import Recommendations, SynthesizedResponse

MAX_RELATED_QUERIES = 3
MAX_SUGGESTED_ACTIONS = 2


def generate_recommendations(analysis: QueryAnalysis, response: SynthesizedResponse) -> Recommendations:
    """
    Derive related queries from the extracted entities, and suggested actions
    from whether the requested map and summary were actually delivered.

    Pure function of its arguments.
    """
    entities = analysis.extracted_entities
    related_queries: List[str] = []
    suggested_actions: List[str] = []

    if entities.locations:
        location = entities.locations[0]
        related_queries.append(f"What are the popular events in {location}?")
        related_queries.append(f"Show me restaurants near {location} on a map")

    if entities.categories:
        category = entities.categories[0]
        related_queries.append(f"Find {category} with good foot traffic")
        related_queries.append(f"Compare {category} ratings across different areas")

    if response.success:
        if analysis.requires_mapping and not response.geo_collection.features:
            suggested_actions.append("Generate map visualization of these results")

        summarized = response.metadata.phase_statuses.get("summarize") == "completed"
        if not analysis.requires_summary and not summarized:
            suggested_actions.append("Get a summary of these findings")

    return Recommendations(
        related_queries=related_queries[:MAX_RELATED_QUERIES],
        suggested_actions=suggested_actions[:MAX_SUGGESTED_ACTIONS],
    )
