"""
Query analysis: entity extraction and keyword classification.
"""

from geoquery.analysis.entity_extractor import EntityExtractor, ExtractedEntities
from geoquery.analysis.query_classifier import QueryClassifier, QueryType

__all__ = [
    "EntityExtractor",
    "ExtractedEntities",
    "QueryClassifier",
    "QueryType",
]
