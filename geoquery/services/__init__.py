from geoquery.services.external_operations import ExternalOperation, HttpExternalOperation
from geoquery.services.operation_gateway import (
    OPERATION_POLICIES,
    OperationGateway,
    OperationPolicy,
    OperationResult,
)
from geoquery.services.result_cache import CacheEntry, ResultCache, make_cache_key

__all__ = [
    "ExternalOperation",
    "HttpExternalOperation",
    "OPERATION_POLICIES",
    "OperationGateway",
    "OperationPolicy",
    "OperationResult",
    "CacheEntry",
    "ResultCache",
    "make_cache_key",
]
