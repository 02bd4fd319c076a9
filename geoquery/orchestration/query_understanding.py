import logging
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from geoquery.analysis.entity_extractor import EntityExtractor, ExtractedEntities
from geoquery.analysis.query_classifier import QueryClassifier, QueryType
from geoquery.errors import ClassificationError
from geoquery.security.pii_redactor import redact_pii

logger = logging.getLogger("query_understanding")


class QueryAnalysis(BaseModel):
    """
    Immutable analysis of one query.

    Context enrichment produces a single adjusted copy (confidence and
    entities only) through model_copy(); the original is never mutated.
    """
    model_config = ConfigDict(frozen=True)

    query_type: QueryType = Field(..., description="Classified query type, drives plan shape")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Classification confidence (0.0 to 1.0)")
    extracted_entities: ExtractedEntities = Field(default_factory=ExtractedEntities)
    requires_mapping: bool = Field(False, description="Geo output would be useful for this query")
    requires_summary: bool = Field(False, description="The query asks for an explanation")
    visualization_requested: bool = Field(False, description="The query explicitly asks for a map/plot")
    suggested_executors: List[str] = Field(default_factory=list, description="Executor roles the plan is expected to use")


class QueryRouter:
    """Combines entity extraction and keyword classification into a QueryAnalysis."""

    def __init__(
        self,
        extractor: Optional[EntityExtractor] = None,
        classifier: Optional[QueryClassifier] = None
    ):
        self.extractor = extractor or EntityExtractor()
        self.classifier = classifier or QueryClassifier()

    def analyze(self, query: str) -> QueryAnalysis:
        """
        Analyze a (sanitized) query.

        Raises:
            ClassificationError: If the query is empty or extraction fails
        """
        if not query or not query.strip():
            raise ClassificationError("Query is empty")

        try:
            entities = self.extractor.extract(query)
            query_type = self.classifier.classify(query, entities)
            requires_mapping = self.classifier.requires_mapping(query, entities)
            visualization = self.classifier.visualization_requested(query)
        except ClassificationError:
            raise
        except Exception as e:
            logger.exception(f"Query analysis failed: {e}")
            raise ClassificationError(f"Could not analyze query: {e}") from e

        analysis = QueryAnalysis(
            query_type=query_type,
            confidence=self.classifier.confidence(query_type),
            extracted_entities=entities,
            requires_mapping=requires_mapping,
            requires_summary=self.classifier.requires_summary(query),
            visualization_requested=visualization,
            suggested_executors=self.classifier.suggested_executors(query_type, requires_mapping, visualization),
        )

        logger.info(f"Query: {redact_pii(query)}")
        logger.info(
            f"Analysis: type={analysis.query_type.value}, confidence={analysis.confidence}, "
            f"mapping={analysis.requires_mapping}, summary={analysis.requires_summary}, "
            f"locations={len(entities.locations)}, categories={entities.categories}"
        )
        return analysis


_query_router: Optional[QueryRouter] = None


def get_query_router() -> QueryRouter:
    """Get singleton instance of the query router."""
    global _query_router
    if _query_router is None:
        _query_router = QueryRouter()
    return _query_router
